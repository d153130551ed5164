"""
Queue entry domain models.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from domain.models.submitter import Submitter


def truncate_timestamp(value: datetime) -> datetime:
    """Drop sub-millisecond precision, which the save file does not keep."""
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def utc_now() -> datetime:
    return truncate_timestamp(datetime.now(timezone.utc))


def format_timestamp(value: datetime) -> str:
    """ISO 8601 with millisecond precision and a trailing Z."""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Entry:
    """A submitted work item without submission metadata."""

    type: str | None
    code: str | None = None
    data: Any = None

    def __str__(self) -> str:
        if self.code is not None:
            return self.code
        return self.type or "unknown entry"

    def to_dict(self) -> dict:
        result: dict[str, Any] = {"type": self.type}
        if self.code is not None:
            result["code"] = self.code
        if self.data is not None:
            result["data"] = self.data
        return result


@dataclass
class QueueEntry(Entry):
    """An entry that has been submitted to the queue."""

    submitter: Submitter = field(default_factory=Submitter)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    submitted: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        self.submitted = truncate_timestamp(self.submitted)

    @classmethod
    def create(cls, entry: Entry, submitter: Submitter, now: datetime | None = None) -> "QueueEntry":
        return cls(
            type=entry.type,
            code=entry.code,
            data=entry.data,
            submitter=submitter,
            submitted=now or utc_now(),
        )

    def replace_with(self, entry: Entry) -> None:
        """Swap the submitted work item, keeping id, submitter and submission time."""
        self.type = entry.type
        self.code = entry.code
        self.data = entry.data

    def rename(self, submitter: Submitter) -> bool:
        """
        Take over the name and display name of the same user.

        Returns:
            True if the name or display name changed
        """
        if not self.submitter.equals(submitter):
            return False
        changed = False
        if submitter.name is not None and submitter.name != self.submitter.name:
            self.submitter.name = submitter.name
            changed = True
        if submitter.display_name is not None and submitter.display_name != self.submitter.display_name:
            self.submitter.display_name = submitter.display_name
            changed = True
        return changed

    def to_dict(self) -> dict:
        result = {"id": self.id, **super().to_dict()}
        result["submitter"] = self.submitter.to_dict()
        result["submitted"] = format_timestamp(self.submitted)
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "QueueEntry":
        return cls(
            id=data["id"],
            type=data.get("type"),
            code=data.get("code"),
            data=data.get("data"),
            submitter=Submitter.from_dict(data["submitter"]),
            submitted=parse_timestamp(data["submitted"]),
        )
