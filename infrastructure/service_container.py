"""
Service container for dependency injection and initialization.

Usage:
    container = ServiceContainer(config, guild_getter=lambda: bot.get_guild(guild_id))
    await container.initialize()

    queue_service = container.queue_service
"""

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass, field

import discord

from domain.models.submitter import Submitter
from infrastructure.discord_adapters import DiscordIdentityLookup, DiscordPresenceProvider
from infrastructure.schema_manager import SchemaManager
from repositories.queue_repository import QueueRepository
from services.custom_codes import CustomCodeService
from services.entry_resolvers import CodeFormatResolver
from services.interfaces import IEntryResolver, IIdentityLookup, IPresenceProvider
from services.queue_accessor import QueueAccessor
from services.queue_bindings import QueueBindingRegistry
from services.queue_service import QueueService
from services.waiting_service import WaitingService

logger = logging.getLogger("queso_queue.infrastructure.container")


@dataclass
class ServiceConfig:
    """Configuration for service initialization."""

    # Save files
    data_dir: str = "data"
    legacy_dir: str = "."
    pretty_save_files: bool = False
    persistence_enabled: bool = True
    identity_lookup_chunk_size: int = 100

    # Queue rules
    max_size: int | None = None
    owner_id: int | None = None
    custom_codes_enabled: bool = True

    # Weighted selection
    subscriber_multiplier: float = 1.0
    subscriber_roles: list[str] = field(default_factory=lambda: ["Subscriber"])

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        import config

        return cls(
            data_dir=config.QUEUE_DATA_DIR,
            legacy_dir=config.QUEUE_LEGACY_DIR,
            pretty_save_files=config.PRETTY_SAVE_FILES,
            persistence_enabled=config.QUEUE_PERSISTENCE_ENABLED,
            identity_lookup_chunk_size=config.IDENTITY_LOOKUP_CHUNK_SIZE,
            max_size=config.QUEUE_MAX_SIZE,
            owner_id=config.CHANNEL_OWNER_ID,
            custom_codes_enabled=config.CUSTOM_CODES_ENABLED,
            subscriber_multiplier=config.SUBSCRIBER_WEIGHT_MULTIPLIER,
            subscriber_roles=list(config.SUBSCRIBER_ROLE_NAMES),
        )


class ServiceContainer:
    """
    Creates and wires the queue services.

    Collaborators default to the Discord adapters; tests pass fakes instead.
    """

    def __init__(
        self,
        config: ServiceConfig | None = None,
        guild_getter: Callable[[], discord.Guild | None] | None = None,
        presence: IPresenceProvider | None = None,
        identity_lookup: IIdentityLookup | None = None,
        resolver: IEntryResolver | None = None,
        rng: random.Random | None = None,
    ):
        self.config = config or ServiceConfig()
        guild_getter = guild_getter or (lambda: None)
        self.presence = presence or DiscordPresenceProvider(guild_getter, self.config.subscriber_roles)
        self.identity_lookup = identity_lookup or DiscordIdentityLookup(guild_getter)
        self.rng = rng
        self._initialized = False
        self.warnings: list[str] = []

        self.bindings = QueueBindingRegistry()
        self.resolver = resolver or CodeFormatResolver()
        self.custom_codes: CustomCodeService | None = None
        if self.config.custom_codes_enabled:
            # registered before the first load so the persisted codes are picked up
            self.custom_codes = CustomCodeService(self.bindings, self.resolver)
            self.resolver = self.custom_codes
        self.repository = QueueRepository(
            self.config.data_dir,
            legacy_dir=self.config.legacy_dir,
            pretty=self.config.pretty_save_files,
        )
        self.accessor = QueueAccessor(
            self.repository,
            extensions_provider=self.bindings.to_persisted,
            persist=self.config.persistence_enabled,
        )
        self.schema_manager = SchemaManager(
            self.repository,
            identity_lookup=self.identity_lookup,
            chunk_size=self.config.identity_lookup_chunk_size,
        )
        self.waiting_service = WaitingService(
            self.accessor,
            self.presence,
            subscriber_multiplier=self.config.subscriber_multiplier,
        )
        owner = Submitter(id=str(self.config.owner_id)) if self.config.owner_id is not None else None
        self.queue_service = QueueService(
            self.accessor,
            self.schema_manager,
            self.resolver,
            self.presence,
            bindings=self.bindings,
            owner=owner,
            max_size=self.config.max_size,
            rng=self.rng,
            waiting=self.waiting_service,
        )

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """
        Load the queue state from disk.

        This method is idempotent - calling it multiple times has no effect.
        """
        if self._initialized:
            logger.debug("ServiceContainer already initialized, skipping")
            return

        logger.info(f"Loading queue from {self.repository.snapshot_path()}")
        self.warnings = await self.queue_service.load()
        for warning in self.warnings:
            logger.warning(warning)

        self._initialized = True
        logger.info("ServiceContainer initialization complete")
