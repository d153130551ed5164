"""
WaitingService: accrues wait time and lottery weight for online submitters.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from domain.models.entry import utc_now
from domain.models.submitter import Submitter
from domain.services.selection import is_online, partition_entries
from services.interfaces import IPresenceProvider, PresenceScope
from services.queue_accessor import QueueAccess, QueueAccessor

logger = logging.getLogger("queso_queue.services.waiting")


class WaitingService:
    """
    Runs the periodic waiting tick.

    Every tick, each submitter with an entry in the queue who is online gets
    one minute of wait time and ``multiplier`` minutes of weight. Subscribers
    accrue weight with ``subscriber_multiplier``.
    """

    def __init__(
        self,
        accessor: QueueAccessor,
        presence: IPresenceProvider,
        subscriber_multiplier: float = 1.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.accessor = accessor
        self.presence = presence
        self.subscriber_multiplier = subscriber_multiplier
        self.clock = clock

    def multiplier(self, submitter: Submitter, subscribers: list[Submitter]) -> float:
        if self.subscriber_multiplier and is_online(submitter, subscribers):
            return self.subscriber_multiplier
        return 1.0

    async def tick(self) -> int:
        """
        Account one minute of waiting.

        Returns:
            Number of submitters whose wait time was updated
        """
        online = await self.presence.online_users(PresenceScope.ALL)
        subscribers: list[Submitter] = []
        if self.subscriber_multiplier != 1.0:
            subscribers = await self.presence.online_users(PresenceScope.SUBSCRIBERS)
        now = self.clock()

        def commit(access: QueueAccess) -> int:
            store = access.store
            renamed = 0
            for user in online:
                for entry in store.all_entries():
                    renamed += entry.rename(user)
                record = store.get_waiting(user)
                if record is not None and record.rename(user):
                    renamed += 1
            if renamed:
                logger.info(f"Updated {renamed} renamed submitter references")

            counted: list[Submitter] = []
            for entry in partition_entries(store.queue, online).online:
                submitter = entry.submitter
                if is_online(submitter, counted):
                    continue
                counted.append(submitter)
                record = store.get_waiting(submitter)
                if record is None:
                    store.ensure_waiting(submitter, now)
                else:
                    record.add_one_minute(self.multiplier(submitter, subscribers), now)
            access.save_later()
            return len(counted)

        updated = self.accessor.access(commit)
        logger.debug(f"Waiting tick updated {updated} submitters")
        return updated
