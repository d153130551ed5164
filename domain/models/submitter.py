"""
Submitter domain model.
"""

from dataclasses import dataclass


@dataclass
class Submitter:
    """
    Identity of someone who submits entries to the queue.

    ``id`` is authoritative. ``name`` and ``display_name`` are only used for
    comparison when an id is missing on either side (legacy data, user input).
    """

    id: str | None = None
    name: str | None = None
    display_name: str | None = None

    def equals(self, other: "Submitter") -> bool:
        """
        Compare the first property present on both sides, in the order
        id, name, display name.
        """
        if self.id is not None and other.id is not None:
            return self.id == other.id
        if self.name is not None and other.name is not None:
            return self.name == other.name
        if self.display_name is not None and other.display_name is not None:
            return self.display_name == other.display_name
        return False

    def matches_username(self, username_argument: str) -> bool:
        """Match a user-typed name (optionally prefixed with @) against name or display name."""
        username_argument = username_argument.strip().removeprefix("@")
        return username_argument in (self.name, self.display_name)

    def __str__(self) -> str:
        return self.display_name or self.name or ""

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "displayName": self.display_name}

    @classmethod
    def from_dict(cls, data: dict) -> "Submitter":
        return cls(
            id=data.get("id"),
            name=data.get("name"),
            display_name=data.get("displayName"),
        )
