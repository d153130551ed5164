"""
Main Discord bot entry for Queso Queue.
"""

import logging
import os

# Configure logging BEFORE importing discord to prevent duplicate handlers
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    force=True,  # Override any existing handlers (e.g., from discord.py)
)
logger = logging.getLogger("queso_queue")

import discord
from discord.ext import commands

# discord.py adds its own handler to the 'discord' logger on import
_discord_logger = logging.getLogger("discord")
_discord_logger.handlers.clear()
_discord_logger.setLevel(logging.INFO)

from config import QUEUE_GUILD_ID
from infrastructure.service_container import ServiceConfig, ServiceContainer

# Bot setup

intents = discord.Intents.default()
intents.members = True
intents.presences = True

bot = commands.Bot(command_prefix="!", intents=intents)

_container: ServiceContainer | None = None


def _get_guild() -> discord.Guild | None:
    if QUEUE_GUILD_ID is not None:
        return bot.get_guild(QUEUE_GUILD_ID)
    return bot.guilds[0] if bot.guilds else None


async def _init_services():
    """Create the service container and load the queue (idempotent)."""
    global _container

    if _container is not None:
        return

    _container = ServiceContainer(ServiceConfig.from_env(), guild_getter=_get_guild)
    await _container.initialize()
    bot.queue_service = _container.queue_service
    bot.queue_bindings = _container.bindings
    bot.custom_codes = _container.custom_codes


EXTENSIONS = [
    "commands.waiting",
]


async def _load_extensions():
    """Load command extensions if not already loaded."""
    for ext in EXTENSIONS:
        if ext in bot.extensions:
            logger.debug(f"Extension {ext} already loaded, skipping")
            continue
        try:
            await bot.load_extension(ext)
            logger.info(f"Loaded extension: {ext}")
        except Exception as exc:
            logger.error(f"Failed to load extension {ext}: {exc}", exc_info=True)


@bot.event
async def setup_hook():
    """Load the queue, then the cogs."""
    await _init_services()
    await _load_extensions()


@bot.event
async def on_ready():
    """Called when bot is ready."""
    guild = _get_guild()
    logger.info(f"{bot.user} connected. Queue guild: {guild.name if guild else 'not found'}")


def main():
    """Run the bot."""
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        from dotenv import load_dotenv

        load_dotenv()
        token = os.getenv("DISCORD_BOT_TOKEN")

    if not token:
        print("ERROR: DISCORD_BOT_TOKEN not found!")
        return

    try:
        # log_handler=None keeps the logging configuration above
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Bot stopped by user (Ctrl+C)")
    except Exception as exc:
        logger.error(f"Bot crashed: {exc}", exc_info=True)


if __name__ == "__main__":
    main()
