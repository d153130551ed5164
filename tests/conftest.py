"""
Pytest fixtures for tests.

Collaborators of the queue (presence, code resolution, identity lookup) are
replaced with in-memory fakes; save files live in ``tmp_path``.
"""

import random
from datetime import datetime, timezone

import pytest

from domain.models.entry import Entry
from domain.models.submitter import Submitter
from infrastructure.schema_manager import SchemaManager
from repositories.queue_repository import QueueRepository
from services.interfaces import IEntryResolver, IIdentityLookup, IPresenceProvider, PresenceScope
from services.queue_accessor import QueueAccessor
from services.queue_bindings import QueueBindingRegistry
from services.queue_service import QueueService

FIXED_NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_user(name: str, user_id: str | None = None) -> Submitter:
    """Submitter with id ``<name>-id`` unless given."""
    return Submitter(id=user_id or f"{name}-id", name=name, display_name=name.capitalize())


class FakePresence(IPresenceProvider):
    def __init__(self):
        self.online: dict[PresenceScope, list[Submitter]] = {scope: [] for scope in PresenceScope}
        self.calls: list[PresenceScope] = []

    def set_online(self, *users: Submitter, scope: PresenceScope = PresenceScope.ALL) -> None:
        self.online[scope] = list(users)

    async def online_users(self, scope: PresenceScope = PresenceScope.ALL) -> list[Submitter]:
        self.calls.append(scope)
        return list(self.online[scope])


class FakeResolver(IEntryResolver):
    """Accepts every code except the ones starting with "bad"."""

    async def resolve(self, code: str, submitter: Submitter) -> Entry | None:
        code = code.strip()
        if not code or code.lower().startswith("bad"):
            return None
        return Entry(type="smm2", code=code.upper())


class FakeIdentityLookup(IIdentityLookup):
    def __init__(self, users: list[Submitter] | None = None):
        self.users = {user.name.lower(): user for user in users or []}
        self.requests: list[list[str]] = []

    async def resolve(self, names: list[str]) -> list[Submitter]:
        self.requests.append(list(names))
        return [self.users[name.lower()] for name in names if name.lower() in self.users]


class FlakyRepository(QueueRepository):
    """QueueRepository whose snapshot writes fail while ``failing`` is set."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.failing = False
        self.writes = 0

    def write_snapshot(self, payload: dict) -> None:
        if self.failing:
            raise OSError("No space left on device")
        self.writes += 1
        super().write_snapshot(payload)


class FixedRandom(random.Random):
    """Random source returning queued values from randint/randrange."""

    def __init__(self, *values: int):
        super().__init__(0)
        self.values = list(values)
        self.requests: list[tuple[int, int]] = []

    def randint(self, a, b):
        self.requests.append((a, b))
        return self.values.pop(0)

    def randrange(self, start, stop=None, step=1):
        self.requests.append((start, stop))
        return self.values.pop(0)


@pytest.fixture
def presence():
    return FakePresence()


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def identity_lookup():
    return FakeIdentityLookup()


@pytest.fixture
def repository(tmp_path):
    return FlakyRepository(tmp_path / "data", legacy_dir=tmp_path)


@pytest.fixture
def bindings():
    return QueueBindingRegistry()


@pytest.fixture
def accessor(repository, bindings):
    return QueueAccessor(repository, extensions_provider=bindings.to_persisted)


@pytest.fixture
def schema_manager(repository, identity_lookup):
    return SchemaManager(repository, identity_lookup=identity_lookup, clock=lambda: FIXED_NOW)


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def queue_service(accessor, schema_manager, resolver, presence, bindings, rng):
    """Queue service on an empty data directory; call ``await queue_service.load()`` first."""
    return QueueService(
        accessor,
        schema_manager,
        resolver,
        presence,
        bindings=bindings,
        rng=rng,
        clock=lambda: FIXED_NOW,
    )
