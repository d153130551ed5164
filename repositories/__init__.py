"""
Repository layer for data access abstraction.
"""

from repositories.base_repository import BaseRepository
from repositories.interfaces import IQueueRepository
from repositories.queue_repository import QueueRepository

__all__ = [
    "BaseRepository",
    "QueueRepository",
    "IQueueRepository",
]
