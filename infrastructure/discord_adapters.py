"""
discord.py implementations of the queue's collaborator interfaces.

The community is a single guild: being online means a non-offline member
status, subscribers are members holding one of the configured roles, and
moderators are members allowed to manage messages.
"""

import logging
from collections.abc import Callable, Iterable

import discord

from domain.models.submitter import Submitter
from services.interfaces import IIdentityLookup, IPresenceProvider, PresenceScope

logger = logging.getLogger("queso_queue.infrastructure.discord")


def member_to_submitter(member: discord.abc.User) -> Submitter:
    return Submitter(id=str(member.id), name=member.name, display_name=member.display_name)


def is_member_online(member: discord.Member) -> bool:
    return member.status not in (discord.Status.offline, discord.Status.invisible)


class DiscordPresenceProvider(IPresenceProvider):
    """
    Presence feed built from guild member status.

    Args:
        guild_getter: Returns the guild, or None while the bot is not connected
        subscriber_roles: Role names that count as subscribers
    """

    def __init__(
        self,
        guild_getter: Callable[[], discord.Guild | None],
        subscriber_roles: Iterable[str] = (),
    ):
        self.guild_getter = guild_getter
        self.subscriber_roles = {name.lower() for name in subscriber_roles}

    def is_subscriber(self, member: discord.Member) -> bool:
        return any(role.name.lower() in self.subscriber_roles for role in member.roles)

    @staticmethod
    def is_moderator(member: discord.Member) -> bool:
        permissions = member.guild_permissions
        return permissions.administrator or permissions.manage_messages

    def in_scope(self, member: discord.Member, scope: PresenceScope) -> bool:
        if scope == PresenceScope.SUBSCRIBERS:
            return self.is_subscriber(member)
        if scope == PresenceScope.MODERATORS:
            return self.is_moderator(member)
        return True

    async def online_users(self, scope: PresenceScope = PresenceScope.ALL) -> list[Submitter]:
        guild = self.guild_getter()
        if guild is None:
            logger.warning("Guild not available, treating everyone as offline")
            return []
        return [
            member_to_submitter(member)
            for member in guild.members
            if not member.bot and is_member_online(member) and self.in_scope(member, scope)
        ]


class DiscordIdentityLookup(IIdentityLookup):
    """Resolves login names to guild members; names without a member are left out."""

    def __init__(self, guild_getter: Callable[[], discord.Guild | None]):
        self.guild_getter = guild_getter

    async def resolve(self, names: list[str]) -> list[Submitter]:
        guild = self.guild_getter()
        if guild is None:
            logger.warning(f"Guild not available, could not resolve {len(names)} names")
            return []

        by_name = {member.name.lower(): member for member in guild.members}
        resolved = []
        for name in names:
            member = by_name.get(name.lower())
            if member is None:
                try:
                    candidates = await guild.query_members(query=name, limit=5)
                except (discord.HTTPException, discord.ClientException, TimeoutError) as e:
                    logger.warning(f"Member query for {name} failed: {e}")
                    candidates = []
                member = next((c for c in candidates if c.name.lower() == name.lower()), None)
            if member is not None:
                resolved.append(member_to_submitter(member))
        logger.info(f"Resolved {len(resolved)} of {len(names)} names")
        return resolved
