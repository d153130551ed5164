"""
Collaborator interfaces (ABCs) consumed by the queue.

Chat transport, code parsing and identity services live outside the queue
state engine; these contracts are all it needs from them. Every method is a
suspension point and must be awaited before entering the critical section.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from domain.models.entry import Entry, QueueEntry
    from domain.models.queue_state import PresencePartition
    from domain.models.submitter import Submitter


class PresenceScope(str, Enum):
    ALL = "all"
    SUBSCRIBERS = "subscribers"
    MODERATORS = "moderators"


class IEntryResolver(ABC):
    """Turns a user-typed code into an entry, or rejects it."""

    @abstractmethod
    async def resolve(self, code: str, submitter: "Submitter") -> "Entry | None":
        """Return the resolved entry or None if the code is invalid."""
        ...


class IPresenceProvider(ABC):
    """Live presence feed of the community."""

    @abstractmethod
    async def online_users(self, scope: PresenceScope = PresenceScope.ALL) -> "list[Submitter]":
        """Users currently online, restricted to the given scope."""
        ...

    async def partition(
        self,
        entries: "list[QueueEntry]",
        scope: PresenceScope = PresenceScope.ALL,
    ) -> "PresencePartition":
        from domain.services.selection import partition_entries

        return partition_entries(entries, await self.online_users(scope))


class IIdentityLookup(ABC):
    """Batch lookup of stable identities by login name (legacy migration only)."""

    @abstractmethod
    async def resolve(self, names: list[str]) -> "list[Submitter]":
        """
        Resolve login names to identities.

        Names that do not exist any more are simply missing from the result.
        """
        ...
