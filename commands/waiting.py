"""
Waiting tick: accrues wait time for online submitters every minute.
"""

import logging

from discord.ext import commands, tasks

from config import WAITING_TICK_SECONDS

logger = logging.getLogger("queso_queue.commands.waiting")


class WaitingCog(commands.Cog):
    """Runs the weighted-selection wait time accounting."""

    def __init__(self, bot: commands.Bot, queue_service):
        self.bot = bot
        self.queue_service = queue_service

    async def cog_load(self):
        self.waiting_tick.start()

    async def cog_unload(self):
        self.waiting_tick.cancel()

    @tasks.loop(seconds=WAITING_TICK_SECONDS)
    async def waiting_tick(self):
        try:
            updated = await self.queue_service.waiting_tick()
        except Exception as e:
            # keep the loop alive, the next tick retries
            logger.error(f"Waiting tick failed: {e}", exc_info=True)
            return
        if updated:
            logger.debug(f"Accrued wait time for {updated} submitters")

    @waiting_tick.before_loop
    async def before_waiting_tick(self):
        """Wait until bot is ready before starting task."""
        await self.bot.wait_until_ready()
        logger.info(f"Waiting tick running every {WAITING_TICK_SECONDS}s")


async def setup(bot: commands.Bot):
    queue_service = getattr(bot, "queue_service", None)
    if queue_service is None:
        logger.warning("Queue service not available, waiting tick disabled")
        return
    await bot.add_cog(WaitingCog(bot, queue_service))
