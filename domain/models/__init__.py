"""
Domain models - pure data structures representing queue state.
"""

from domain.models.entry import Entry, QueueEntry
from domain.models.queue_state import PresencePartition, QueueSnapshot, QueueStore
from domain.models.submitter import Submitter
from domain.models.waiting import WeightRecord

__all__ = [
    "Entry",
    "QueueEntry",
    "PresencePartition",
    "QueueSnapshot",
    "QueueStore",
    "Submitter",
    "WeightRecord",
]
