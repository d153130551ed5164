"""
Selection domain service.

Pure functions that pick entries from the queue. They never touch the
presence feed themselves; callers fetch online users beforehand and pass
them in, so everything here is synchronous and safe to run inside the
queue's critical section.
"""

import logging
import random
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from domain.models.entry import QueueEntry
from domain.models.queue_state import PresencePartition
from domain.models.submitter import Submitter
from domain.models.waiting import WeightRecord

logger = logging.getLogger("queso_queue.domain.selection")


@dataclass
class WeightedEntry:
    entry: QueueEntry
    record: WeightRecord
    position: int

    def weight(self) -> int:
        return self.record.weight()


@dataclass
class WeightedList:
    total_weight: int = 0
    entries: list[WeightedEntry] = field(default_factory=list)
    offline_length: int = 0


def is_online(submitter: Submitter, online_users: Iterable[Submitter]) -> bool:
    return any(submitter.equals(user) for user in online_users)


def partition_entries(entries: list[QueueEntry], online_users: Iterable[Submitter]) -> PresencePartition:
    """Split entries into online and offline, keeping the queue order within each side."""
    online_users = list(online_users)
    partition = PresencePartition()
    for entry in entries:
        if is_online(entry.submitter, online_users):
            partition.online.append(entry)
        else:
            partition.offline.append(entry)
    return partition


def fifo_order(partition: PresencePartition) -> list[QueueEntry]:
    """Online entries always come before offline ones."""
    return partition.online + partition.offline


def pick_next(partition: PresencePartition) -> QueueEntry | None:
    ordered = fifo_order(partition)
    return ordered[0] if ordered else None


def pick_random(partition: PresencePartition, rng: random.Random) -> QueueEntry | None:
    """Uniform choice among online entries, falling back to offline entries."""
    eligible = partition.online or partition.offline
    if not eligible:
        return None
    return eligible[rng.randrange(len(eligible))]


def weighted_list(
    partition: PresencePartition,
    waiting: Mapping[str, WeightRecord],
    sort: bool = True,
) -> WeightedList:
    """
    Build the list of entries taking part in the weighted lottery.

    Only online entries with a weight record are eligible. ``position`` is the
    index among eligible entries in queue order and breaks weight ties.
    """
    online = partition.online
    if not online or not waiting:
        return WeightedList(
            total_weight=0,
            entries=[],
            offline_length=len(partition.offline) + len(online),
        )

    entries = []
    for entry in online:
        record = _find_record(waiting, entry.submitter)
        if record is not None:
            entries.append(WeightedEntry(entry=entry, record=record, position=len(entries)))

    if sort:
        entries.sort(key=lambda weighted: (-weighted.weight(), weighted.position))

    return WeightedList(
        total_weight=sum(weighted.weight() for weighted in entries),
        entries=entries,
        offline_length=len(partition.offline) + (len(online) - len(entries)),
    )


def _find_record(waiting: Mapping[str, WeightRecord], submitter: Submitter) -> WeightRecord | None:
    if submitter.id is not None and submitter.id in waiting:
        return waiting[submitter.id]
    return next((record for record in waiting.values() if record.user.equals(submitter)), None)


def pick_weighted_random(weighted: WeightedList, rng: random.Random) -> WeightedEntry | None:
    """
    Weighted lottery over the unsorted weighted list.

    Draws an integer in [1, total_weight] and walks the entries in queue order
    until the cumulative weight reaches the draw.
    """
    if not weighted.entries or weighted.total_weight <= 0:
        return None

    draw = rng.randint(1, weighted.total_weight)
    logger.debug(
        f"Weighted draw {draw} of {weighted.total_weight} over "
        f"{[(w.entry.submitter.name, w.weight()) for w in weighted.entries]}"
    )
    cumulative = 0
    for candidate in weighted.entries:
        cumulative += candidate.weight()
        if cumulative >= draw:
            return candidate
    # unreachable while total_weight is the sum of all weights
    return weighted.entries[-1]


def pick_weighted_next(weighted: WeightedList) -> WeightedEntry | None:
    """Highest weight wins; expects a list built with sort=True."""
    if not weighted.entries or weighted.total_weight <= 0:
        return None
    return weighted.entries[0]


def percent(weight: int, total_weight: int) -> str:
    """
    Format a selection chance with one decimal.

    Rounding never implies certainty or impossibility: ">99.9" is shown
    instead of "100.0" and "<0.1" instead of "0.0" unless exact.
    """
    if total_weight == 0:
        value = 0.0
    else:
        value = min(max(weight / total_weight * 100.0, 0.0), 100.0)
    formatted = f"{value:.1f}"
    if formatted == "100.0" and weight != total_weight:
        return ">99.9"
    if formatted == "0.0" and weight != 0:
        return "<0.1"
    return formatted
