"""
QueueService: submission and selection operations of the queue.

Every operation has two phases. First it awaits whatever it needs from the
outside (code resolution, presence); then it commits in a single synchronous
QueueAccessor.access() call, which also schedules the save.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from domain.models.entry import QueueEntry, utc_now
from domain.models.queue_state import PresencePartition, QueueStore
from domain.models.submitter import Submitter
from domain.services import selection
from infrastructure.schema_manager import SchemaManager
from services import error_codes
from services.interfaces import IEntryResolver, IPresenceProvider, PresenceScope
from services.queue_accessor import QueueAccess, QueueAccessor
from services.queue_bindings import QueueBindingRegistry
from services.result import Result
from services.waiting_service import WaitingService

logger = logging.getLogger("queso_queue.services.queue")


@dataclass
class Selection:
    """An entry that became the current entry."""

    entry: QueueEntry
    selection_chance: str | None = None

    def __str__(self) -> str:
        return f"{self.entry} submitted by {self.entry.submitter}"


Chooser = Callable[[QueueStore, PresencePartition], tuple[QueueEntry | None, str | None]]


class QueueService:
    """
    Orchestrates the queue: submissions, removals and the selection policies.

    Args:
        accessor: Guards the queue store
        schema_manager: Loads and upgrades the save data
        resolver: Resolves submitted codes
        presence: Live presence feed
        bindings: Extension data and entry listeners
        owner: The channel owner, who may queue several entries
        max_size: Maximum number of queued entries, None for unlimited
        rng: Random source for the random selections
    """

    def __init__(
        self,
        accessor: QueueAccessor,
        schema_manager: SchemaManager,
        resolver: IEntryResolver,
        presence: IPresenceProvider,
        bindings: QueueBindingRegistry | None = None,
        owner: Submitter | None = None,
        max_size: int | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utc_now,
        waiting: WaitingService | None = None,
    ):
        self.accessor = accessor
        self.schema_manager = schema_manager
        self.resolver = resolver
        self.presence = presence
        self.bindings = bindings or QueueBindingRegistry()
        self.owner = owner
        self.max_size = max_size
        self.rng = rng or random.Random()
        self.clock = clock
        self.waiting = waiting or WaitingService(accessor, presence, clock=clock)
        self.bindings.set_save_handler(self.accessor.request_save)

    # --- Loading ---

    async def load(self) -> list[str]:
        """
        Load (or reload) the queue state from disk.

        Returns:
            Warnings produced while upgrading old save files
        """
        loaded = await self.schema_manager.initialize(persist=self.accessor.persist_enabled)
        snapshot = loaded.snapshot
        self.bindings.from_persisted(snapshot.extensions)

        entries = ([snapshot.current] if snapshot.current is not None else []) + snapshot.queue
        resolved = {}
        for entry in entries:
            if entry.type is None and entry.code is not None:
                resolved[entry.id] = await self.resolver.resolve(entry.code, entry.submitter)

        self.accessor.override(snapshot)

        def commit(access: QueueAccess) -> None:
            changed = False
            for entry in access.store.all_entries():
                typed = resolved.get(entry.id)
                if typed is not None and entry.type is None:
                    entry.replace_with(typed)
                    changed = True
            if self.bindings.notify_entries_changed(access.store.all_entries()) or changed:
                access.save_later()

        self.accessor.access(commit)
        logger.info(f"Queue loaded: {len(snapshot.queue)} queued, current: {snapshot.current}")
        return loaded.warnings

    async def reload(self) -> list[str]:
        return await self.load()

    # --- Submissions ---

    def is_owner(self, submitter: Submitter) -> bool:
        return self.owner is not None and self.owner.equals(submitter)

    async def add(self, code: str, submitter: Submitter) -> Result[str]:
        resolved = await self.resolver.resolve(code, submitter)
        now = self.clock()

        def commit(access: QueueAccess) -> Result[str]:
            store = access.store
            if self.max_size and len(store.queue) >= self.max_size:
                return Result.fail("Sorry, the level queue is full!", code=error_codes.QUEUE_FULL)
            if resolved is None:
                return Result.fail(f"{submitter}, that is an invalid level code.", code=error_codes.INVALID_CODE)
            owner = self.is_owner(submitter)
            if store.current is not None and store.current.submitter.equals(submitter) and not owner:
                return Result.fail(
                    "Please wait for your level to be completed before you submit again.",
                    code=error_codes.ALREADY_CURRENT,
                )
            if store.has_queued(submitter) and not owner:
                return Result.fail(
                    f"Sorry, {submitter}, you may only submit one level at a time.",
                    code=error_codes.ALREADY_QUEUED,
                )
            entry = QueueEntry.create(resolved, submitter, now)
            store.queue.append(entry)
            store.ensure_waiting(submitter, now)
            access.save_later()
            return Result.ok(f"{submitter}, {entry} has been added to the queue.")

        return self.accessor.access(commit)

    def remove(self, submitter: Submitter) -> Result[str]:
        def commit(access: QueueAccess) -> Result[str]:
            store = access.store
            if store.current is not None and store.current.submitter.equals(submitter):
                return Result.fail("Sorry, we're playing that level right now!", code=error_codes.ALREADY_CURRENT)
            self._remove_submitter(access, submitter)
            return Result.ok(f"{submitter}, your level has been removed from the queue.")

        return self.accessor.access(commit)

    def mod_remove(self, username_argument: str) -> Result[str]:
        if not username_argument.strip():
            return Result.fail(
                "You can use !remove <username> to kick out someone else's level.",
                code=error_codes.MISSING_ARGUMENT,
            )

        def commit(access: QueueAccess) -> Result[str]:
            match = self._match_username(access.store, username_argument)
            if match is None:
                return Result.fail(
                    f"No levels from {username_argument} were found in the queue.",
                    code=error_codes.NOT_FOUND,
                )
            self._remove_submitter(access, match.submitter)
            return Result.ok(f"{username_argument}'s level has been removed from the queue.")

        return self.accessor.access(commit)

    async def replace(self, submitter: Submitter, code: str) -> Result[str]:
        resolved = await self.resolver.resolve(code, submitter)

        def commit(access: QueueAccess) -> Result[str]:
            if resolved is None:
                return Result.fail(f"{submitter}, that level code is invalid.", code=error_codes.INVALID_CODE)
            store = access.store
            entry = store.find(submitter)
            if entry is None and store.current is not None and store.current.submitter.equals(submitter):
                entry = store.current
            if entry is None:
                return Result.fail(
                    f"{submitter}, you were not found in the queue. Use !add to add a level.",
                    code=error_codes.NOT_IN_QUEUE,
                )
            entry.replace_with(resolved)
            access.save_later()
            return Result.ok(f"{submitter}, your level in the queue has been replaced with {entry}.")

        return self.accessor.access(commit)

    def punt(self) -> Result[str]:
        """Put the current entry back at the end of the queue."""
        now = self.clock()

        def commit(access: QueueAccess) -> Result[str]:
            store = access.store
            if store.current is None:
                return Result.fail(
                    "The nothing you aren't playing cannot be punted.", code=error_codes.NO_CURRENT_ENTRY
                )
            entry = store.current
            store.current = None
            store.queue.append(entry)
            store.ensure_waiting(entry.submitter, now)
            access.save_later()
            return Result.ok("Ok, adding the current level back into the queue.")

        return self.accessor.access(commit)

    def dismiss(self) -> Result[str]:
        def commit(access: QueueAccess) -> Result[str]:
            store = access.store
            if store.current is None:
                return Result.fail(
                    "The nothing you aren't playing cannot be dismissed.", code=error_codes.NO_CURRENT_ENTRY
                )
            dismissed = store.current
            store.current = None
            self._on_remove(access, [dismissed])
            access.save_later()
            return Result.ok(f"Dismissed {dismissed} submitted by {dismissed.submitter}.")

        return self.accessor.access(commit)

    def clear(self) -> Result[str]:
        def commit(access: QueueAccess) -> Result[str]:
            store = access.store
            removed = store.all_entries()
            store.current = None
            store.queue = []
            store.waiting.clear()
            self._on_remove(access, removed)
            access.save_later()
            return Result.ok("The queue has been cleared.")

        return self.accessor.access(commit)

    # --- Reading ---

    def current(self) -> QueueEntry | None:
        return self.accessor.access(lambda access: access.store.current)

    def size(self) -> int:
        return self.accessor.access(lambda access: access.store.size())

    async def list(self, scope: PresenceScope = PresenceScope.ALL) -> PresencePartition:
        online = await self.presence.online_users(scope)
        return self.accessor.access(lambda access: selection.partition_entries(access.store.queue, online))

    async def sub_list(self) -> PresencePartition:
        return await self.list(PresenceScope.SUBSCRIBERS)

    async def mod_list(self) -> PresencePartition:
        return await self.list(PresenceScope.MODERATORS)

    async def position(self, submitter: Submitter) -> int:
        """
        Position in the order ``next`` would pick entries.

        Returns:
            0 for the current entry, -1 if not in the queue
        """
        online = await self.presence.online_users()

        def read(access: QueueAccess) -> int:
            store = access.store
            if store.current is not None and store.current.submitter.equals(submitter):
                return 0
            ordered = selection.fifo_order(selection.partition_entries(store.queue, online))
            return self._position_in(store, [entry.submitter for entry in ordered], submitter)

        return self.accessor.access(read)

    def absolute_position(self, submitter: Submitter) -> int:
        def read(access: QueueAccess) -> int:
            store = access.store
            if store.current is not None and store.current.submitter.equals(submitter):
                return 0
            return self._position_in(store, [entry.submitter for entry in store.queue], submitter)

        return self.accessor.access(read)

    async def weighted_position(self, submitter: Submitter) -> int:
        online = await self.presence.online_users()

        def read(access: QueueAccess) -> int:
            store = access.store
            if store.current is not None and store.current.submitter.equals(submitter):
                return 0
            weighted = self._weighted_list(store, online, sort=True)
            return self._position_in(store, [w.entry.submitter for w in weighted.entries], submitter)

        return self.accessor.access(read)

    async def weighted_chance(self, submitter: Submitter) -> Result[str]:
        """Chance of ``submitter`` to win the next weighted lottery."""
        online = await self.presence.online_users()

        def read(access: QueueAccess) -> Result[str]:
            store = access.store
            if store.current is not None and store.current.submitter.equals(submitter):
                return Result.fail(f"{submitter}, your level is being played right now.", code=error_codes.ALREADY_CURRENT)
            weighted = self._weighted_list(store, online, sort=False)
            candidate = next((w for w in weighted.entries if w.entry.submitter.equals(submitter)), None)
            if candidate is None:
                return Result.fail(
                    f"{submitter}, you are not eligible for the weighted selection right now.",
                    code=error_codes.NOT_IN_QUEUE,
                )
            logger.info(
                f"{submitter}'s weight is {candidate.weight()} with total weight {weighted.total_weight}"
            )
            return Result.ok(selection.percent(candidate.weight(), weighted.total_weight))

        return self.accessor.access(read)

    async def submitted_entry(self, submitter: Submitter) -> QueueEntry | None:
        def read(access: QueueAccess) -> QueueEntry | None:
            store = access.store
            if store.current is not None and store.current.submitter.equals(submitter):
                return store.current
            return store.find(submitter)

        return self.accessor.access(read)

    # --- Selection ---

    async def next(self) -> Selection | None:
        return await self._select(PresenceScope.ALL, self._choose_next, "next")

    async def sub_next(self) -> Selection | None:
        return await self._select(PresenceScope.SUBSCRIBERS, self._choose_next, "subnext")

    async def mod_next(self) -> Selection | None:
        return await self._select(PresenceScope.MODERATORS, self._choose_next, "modnext")

    async def random(self) -> Selection | None:
        return await self._select(PresenceScope.ALL, self._choose_random, "random")

    async def sub_random(self) -> Selection | None:
        return await self._select(PresenceScope.SUBSCRIBERS, self._choose_random, "subrandom")

    async def mod_random(self) -> Selection | None:
        return await self._select(PresenceScope.MODERATORS, self._choose_random, "modrandom")

    async def weighted_random(self) -> Selection | None:
        return await self._select(PresenceScope.ALL, self._choose_weighted_random, "weightedrandom")

    async def weighted_next(self) -> Selection | None:
        return await self._select(PresenceScope.ALL, self._choose_weighted_next, "weightednext")

    async def weighted_sub_random(self) -> Selection | None:
        return await self._select(PresenceScope.SUBSCRIBERS, self._choose_weighted_random, "weightedsubrandom")

    async def weighted_sub_next(self) -> Selection | None:
        return await self._select(PresenceScope.SUBSCRIBERS, self._choose_weighted_next, "weightedsubnext")

    def dip(self, username_argument: str) -> Selection | None:
        """Select the entry of a specific submitter, regardless of position."""

        def commit(access: QueueAccess) -> Selection | None:
            match = self._match_username(access.store, username_argument)
            if match is None:
                return None
            return self._make_current(access, match, None, "dip")

        return self.accessor.access(commit)

    def _choose_next(self, store: QueueStore, partition: PresencePartition):
        return selection.pick_next(partition), None

    def _choose_random(self, store: QueueStore, partition: PresencePartition):
        return selection.pick_random(partition, self.rng), None

    def _choose_weighted_random(self, store: QueueStore, partition: PresencePartition):
        weighted = selection.weighted_list(partition, store.waiting, sort=False)
        winner = selection.pick_weighted_random(weighted, self.rng)
        if winner is None:
            return None, None
        return winner.entry, selection.percent(winner.weight(), weighted.total_weight)

    def _choose_weighted_next(self, store: QueueStore, partition: PresencePartition):
        weighted = selection.weighted_list(partition, store.waiting, sort=True)
        winner = selection.pick_weighted_next(weighted)
        if winner is None:
            return None, None
        return winner.entry, selection.percent(winner.weight(), weighted.total_weight)

    async def _select(self, scope: PresenceScope, choose: Chooser, method: str) -> Selection | None:
        online = await self.presence.online_users(scope)

        def commit(access: QueueAccess) -> Selection | None:
            store = access.store
            partition = selection.partition_entries(store.queue, online)
            picked, chance = choose(store, partition)
            if picked is None:
                previous = store.current
                store.current = None
                self._on_remove(access, [previous] if previous is not None else [])
                access.save_later()
                logger.info(f"{method}: nothing to select")
                return None
            return self._make_current(access, picked, chance, method)

        return self.accessor.access(commit)

    def _make_current(
        self, access: QueueAccess, entry: QueueEntry, chance: str | None, method: str
    ) -> Selection:
        previous = access.store.make_current(entry)
        self._on_remove(access, [previous] if previous is not None else [])
        access.save_later()
        chance_info = f" with a chance of {chance}%" if chance is not None else ""
        logger.info(f"{method}: selected {entry} submitted by {entry.submitter}{chance_info}")
        return Selection(entry=entry, selection_chance=chance)

    # --- Helpers ---

    def _weighted_list(self, store: QueueStore, online: list[Submitter], sort: bool) -> selection.WeightedList:
        partition = selection.partition_entries(store.queue, online)
        return selection.weighted_list(partition, store.waiting, sort=sort)

    @staticmethod
    def _position_in(store: QueueStore, submitters: list[Submitter], submitter: Submitter) -> int:
        if not store.queue:
            return -1
        for index, candidate in enumerate(submitters):
            if candidate.equals(submitter):
                return index + 1 + (1 if store.current is not None else 0)
        return -1

    @staticmethod
    def _match_username(store: QueueStore, username_argument: str) -> QueueEntry | None:
        return next((entry for entry in store.queue if entry.submitter.matches_username(username_argument)), None)

    def _remove_submitter(self, access: QueueAccess, submitter: Submitter) -> list[QueueEntry]:
        store = access.store
        removed = [entry for entry in store.queue if entry.submitter.equals(submitter)]
        if removed:
            store.queue = [entry for entry in store.queue if not entry.submitter.equals(submitter)]
            self._on_remove(access, removed)
            access.save_later()
        return removed

    def _on_remove(self, access: QueueAccess, removed: list[QueueEntry]) -> None:
        """Called whenever entries leave the queue, including the current entry."""
        store = access.store
        pruned = store.prune_waiting()
        if removed or pruned:
            logger.debug(f"Removed {len(removed)} entries, dropped {len(pruned)} weight records")
        if self.bindings.notify_entries_changed(store.all_entries()):
            access.save_later()

    async def waiting_tick(self) -> int:
        return await self.waiting.tick()

    # --- Persistence ---

    async def persistence_management(self, sub_command: str) -> Result[str]:
        sub_command = sub_command.strip().lower()
        if sub_command == "on":
            self.accessor.persist_enabled = True
            return Result.ok("Activated automatic queue persistence.")
        if sub_command == "off":
            self.accessor.persist_enabled = False
            return Result.ok("Deactivated automatic queue persistence.")
        if sub_command == "save":
            if self.accessor.save_now(force=True):
                return Result.ok("Successfully persisted the queue state.")
            return Result.fail("Error while persisting queue state, see logs.", code=error_codes.SAVE_FAILED)
        if sub_command in ("load", "reload", "restore"):
            await self.reload()
            return Result.ok("Reloaded queue state from disk.")
        return Result.fail(
            "Invalid arguments. The correct syntax is !persistence {on/off/save/load}.",
            code=error_codes.INVALID_SUBCOMMAND,
        )
