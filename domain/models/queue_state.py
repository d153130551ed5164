"""
In-memory queue state and its persisted snapshot form.
"""

from dataclasses import dataclass, field
from typing import Any

from domain.models.entry import QueueEntry
from domain.models.submitter import Submitter
from domain.models.waiting import WeightRecord

CURRENT_SNAPSHOT_VERSION = "3.1"


@dataclass
class PresencePartition:
    """Queued entries split by whether their submitter is currently online."""

    online: list[QueueEntry] = field(default_factory=list)
    offline: list[QueueEntry] = field(default_factory=list)


@dataclass
class QueueStore:
    """
    Current entry, pending entries and weight records.

    Only mutate through QueueAccessor.access().
    """

    current: QueueEntry | None = None
    queue: list[QueueEntry] = field(default_factory=list)
    waiting: dict[str, WeightRecord] = field(default_factory=dict)

    def all_entries(self) -> list[QueueEntry]:
        """The current entry (if any) followed by the queue."""
        return ([self.current] if self.current is not None else []) + list(self.queue)

    def size(self) -> int:
        return len(self.queue) + (1 if self.current is not None else 0)

    def find(self, submitter: Submitter) -> QueueEntry | None:
        return next((entry for entry in self.queue if entry.submitter.equals(submitter)), None)

    def has_queued(self, submitter: Submitter) -> bool:
        return self.find(submitter) is not None

    def get_waiting(self, submitter: Submitter) -> WeightRecord | None:
        if submitter.id is not None:
            return self.waiting.get(submitter.id)
        return next((record for record in self.waiting.values() if record.user.equals(submitter)), None)

    def ensure_waiting(self, submitter: Submitter, now=None) -> WeightRecord:
        record = self.get_waiting(submitter)
        if record is None:
            record = WeightRecord.create(submitter, now)
            self.waiting[waiting_key(submitter)] = record
        return record

    def remove_waiting(self, submitter: Submitter) -> None:
        for key, record in list(self.waiting.items()):
            if record.user.equals(submitter):
                del self.waiting[key]

    def make_current(self, entry: QueueEntry) -> QueueEntry | None:
        """
        Move a queued entry into ``current`` and drop its weight record.

        Returns:
            The previous current entry, or None
        """
        previous = self.current
        self.queue.remove(entry)
        self.current = entry
        self.remove_waiting(entry.submitter)
        return previous

    def prune_waiting(self) -> list[WeightRecord]:
        """Drop weight records of submitters that no longer wait in the queue."""
        pruned = []
        for key, record in list(self.waiting.items()):
            if not self.has_queued(record.user):
                pruned.append(self.waiting.pop(key))
        return pruned

    def to_snapshot(self, extensions: dict[str, dict] | None = None) -> "QueueSnapshot":
        return QueueSnapshot(
            current=self.current,
            queue=list(self.queue),
            waiting=list(self.waiting.values()),
            extensions=dict(extensions or {}),
        )


def waiting_key(submitter: Submitter) -> str:
    if submitter.id is not None:
        return submitter.id
    return f"name:{submitter.name or submitter.display_name}"


@dataclass
class QueueSnapshot:
    """The full persisted state of the queue at the current schema version."""

    current: QueueEntry | None = None
    queue: list[QueueEntry] = field(default_factory=list)
    waiting: list[WeightRecord] = field(default_factory=list)
    extensions: dict[str, dict[str, Any]] = field(default_factory=dict)
    version: str = CURRENT_SNAPSHOT_VERSION

    def to_store(self) -> QueueStore:
        return QueueStore(
            current=self.current,
            queue=list(self.queue),
            waiting={waiting_key(record.user): record for record in self.waiting},
        )

    def to_dict(self) -> dict:
        return {
            "version": CURRENT_SNAPSHOT_VERSION,
            "entries": {
                "current": self.current.to_dict() if self.current is not None else None,
                "queue": [entry.to_dict() for entry in self.queue],
            },
            "waiting": [record.to_dict() for record in self.waiting],
            "extensions": self.extensions,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "QueueSnapshot":
        current = data["entries"].get("current")
        return cls(
            current=QueueEntry.from_dict(current) if current is not None else None,
            queue=[QueueEntry.from_dict(entry) for entry in data["entries"]["queue"]],
            waiting=[WeightRecord.from_dict(record) for record in data["waiting"]],
            extensions=data.get("extensions", {}),
            version=data.get("version", CURRENT_SNAPSHOT_VERSION),
        )
