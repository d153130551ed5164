"""Tests for the queue service operations."""

import json

import pytest

from domain.models.submitter import Submitter
from infrastructure.schema_manager import SchemaManager
from services import error_codes
from services.interfaces import PresenceScope
from services.queue_accessor import QueueAccessor
from services.queue_service import QueueService
from tests.conftest import FIXED_NOW, FixedRandom, make_user

ANN = make_user("ann")
BOB = make_user("bob")
CID = make_user("cid")


async def fill(service, *users):
    for index, user in enumerate(users):
        result = await service.add(f"AAA-AAA-{index:02d}F", user)
        assert result.success, result.error


def waiting_names(accessor):
    return accessor.access(lambda access: sorted(r.user.name for r in access.store.waiting.values()))


def queued_names(accessor):
    return accessor.access(lambda access: [e.submitter.name for e in access.store.queue])


def assert_weight_invariant(accessor):
    """Every weight record belongs to a submitter waiting in the queue."""

    def check(access):
        for record in access.store.waiting.values():
            assert access.store.has_queued(record.user), record.user

    accessor.access(check)


class TestAdd:
    @pytest.mark.asyncio
    async def test_add(self, queue_service, accessor):
        await queue_service.load()

        result = await queue_service.add("abc-def-ghj", ANN)

        assert result.success
        assert result.message == "Ann, ABC-DEF-GHJ has been added to the queue."
        assert queued_names(accessor) == ["ann"]
        assert waiting_names(accessor) == ["ann"]

    @pytest.mark.asyncio
    async def test_one_entry_per_submitter(self, queue_service):
        await queue_service.load()
        await fill(queue_service, ANN)

        result = await queue_service.add("BBB-BBB-BBF", ANN)

        assert not result.success
        assert result.error_code == error_codes.ALREADY_QUEUED

    @pytest.mark.asyncio
    async def test_invalid_code(self, queue_service):
        await queue_service.load()

        result = await queue_service.add("bad code", ANN)

        assert result.error_code == error_codes.INVALID_CODE
        assert queue_service.size() == 0

    @pytest.mark.asyncio
    async def test_queue_full(self, queue_service):
        queue_service.max_size = 2
        await queue_service.load()
        await fill(queue_service, ANN, BOB)

        result = await queue_service.add("CCC-CCC-CCF", CID)

        assert result.error_code == error_codes.QUEUE_FULL

    @pytest.mark.asyncio
    async def test_current_submitter_must_wait(self, queue_service):
        await queue_service.load()
        await fill(queue_service, ANN)
        await queue_service.next()

        result = await queue_service.add("BBB-BBB-BBF", ANN)

        assert result.error_code == error_codes.ALREADY_CURRENT

    @pytest.mark.asyncio
    async def test_owner_may_submit_several_entries(self, queue_service, accessor):
        queue_service.owner = Submitter(id="ann-id")
        await queue_service.load()

        await fill(queue_service, ANN, ANN)

        assert queued_names(accessor) == ["ann", "ann"]

    @pytest.mark.asyncio
    async def test_failed_save_does_not_fail_add(self, queue_service, accessor, repository):
        await queue_service.load()
        repository.failing = True

        result = await queue_service.add("ABC-DEF-GHJ", ANN)

        assert result.success
        repository.failing = False
        assert accessor.save_now() is True
        saved = json.loads(repository.snapshot_path().read_text())
        assert [e["code"] for e in saved["entries"]["queue"]] == ["ABC-DEF-GHJ"]


class TestRemoval:
    @pytest.mark.asyncio
    async def test_remove_drops_weight_record(self, queue_service, accessor):
        await queue_service.load()
        await fill(queue_service, ANN, BOB)

        result = queue_service.remove(ANN)

        assert result.success
        assert queued_names(accessor) == ["bob"]
        assert waiting_names(accessor) == ["bob"]

    @pytest.mark.asyncio
    async def test_remove_unknown_submitter_still_confirms(self, queue_service, repository):
        await queue_service.load()
        writes = repository.writes

        result = queue_service.remove(ANN)

        assert result.success
        assert result.value == "Ann, your level has been removed from the queue."
        assert repository.writes == writes

    @pytest.mark.asyncio
    async def test_remove_current_entry_is_refused(self, queue_service):
        await queue_service.load()
        await fill(queue_service, ANN)
        await queue_service.next()

        assert queue_service.remove(ANN).error_code == error_codes.ALREADY_CURRENT

    @pytest.mark.asyncio
    async def test_mod_remove_by_name(self, queue_service, accessor):
        await queue_service.load()
        await fill(queue_service, ANN, BOB)

        result = queue_service.mod_remove("@Bob")

        assert result.success
        assert queued_names(accessor) == ["ann"]
        assert queue_service.mod_remove("nobody").error_code == error_codes.NOT_FOUND
        assert queue_service.mod_remove("  ").error_code == error_codes.MISSING_ARGUMENT

    @pytest.mark.asyncio
    async def test_dismiss_and_clear(self, queue_service, accessor):
        await queue_service.load()
        await fill(queue_service, ANN, BOB, CID)
        await queue_service.next()

        assert queue_service.dismiss().success
        assert queue_service.current() is None
        assert queue_service.dismiss().error_code == error_codes.NO_CURRENT_ENTRY

        assert queue_service.clear().success
        assert queue_service.size() == 0
        assert waiting_names(accessor) == []

    @pytest.mark.asyncio
    async def test_removal_notifies_entry_listeners(self, queue_service, bindings):
        seen = []
        bindings.add_entries_listener(lambda entries: seen.append([e.submitter.name for e in entries]) or False)
        await queue_service.load()
        await fill(queue_service, ANN, BOB)

        queue_service.remove(ANN)

        assert seen == [[], ["bob"]]


class TestEditing:
    @pytest.mark.asyncio
    async def test_replace_keeps_submission(self, queue_service, accessor):
        await queue_service.load()
        await fill(queue_service, ANN)
        before = accessor.access(lambda access: (access.store.queue[0].id, access.store.queue[0].submitted))

        result = await queue_service.replace(ANN, "new-lvl-cdf")

        assert result.success
        entry = accessor.access(lambda access: access.store.queue[0])
        assert entry.code == "NEW-LVL-CDF"
        assert (entry.id, entry.submitted) == before

    @pytest.mark.asyncio
    async def test_replace_invalid_or_missing(self, queue_service):
        await queue_service.load()
        await fill(queue_service, ANN)

        assert (await queue_service.replace(ANN, "bad")).error_code == error_codes.INVALID_CODE
        assert (await queue_service.replace(BOB, "BBB-BBB-BBF")).error_code == error_codes.NOT_IN_QUEUE

    @pytest.mark.asyncio
    async def test_punt_requeues_current_entry(self, queue_service, accessor):
        await queue_service.load()
        await fill(queue_service, ANN, BOB)
        await queue_service.next()

        assert queue_service.punt().success

        assert queue_service.current() is None
        assert queued_names(accessor) == ["bob", "ann"]
        assert waiting_names(accessor) == ["ann", "bob"]
        assert queue_service.punt().error_code == error_codes.NO_CURRENT_ENTRY


class TestSelection:
    @pytest.mark.asyncio
    async def test_next_prefers_online_submitters(self, queue_service, presence):
        await queue_service.load()
        await fill(queue_service, ANN, BOB)
        presence.set_online(BOB)

        selected = await queue_service.next()

        assert selected.entry.submitter.name == "bob"
        assert selected.selection_chance is None
        assert queue_service.current().submitter.name == "bob"

    @pytest.mark.asyncio
    async def test_next_drops_previous_current_and_its_record(self, queue_service, accessor):
        await queue_service.load()
        await fill(queue_service, ANN, BOB, CID)

        await queue_service.next()
        assert waiting_names(accessor) == ["bob", "cid"]
        await queue_service.next()

        assert queue_service.current().submitter.name == "bob"
        assert queue_service.size() == 2
        assert_weight_invariant(accessor)

    @pytest.mark.asyncio
    async def test_next_on_empty_queue_clears_current(self, queue_service):
        await queue_service.load()
        await fill(queue_service, ANN)
        await queue_service.next()

        assert await queue_service.next() is None
        assert queue_service.current() is None

    @pytest.mark.asyncio
    async def test_weighted_next_with_equal_weights_takes_first(self, queue_service, presence):
        await queue_service.load()
        await fill(queue_service, ANN, BOB, CID)
        presence.set_online(CID, BOB, ANN)

        selected = await queue_service.weighted_next()

        assert selected.entry.submitter.name == "ann"
        assert selected.selection_chance == "33.3"

    @pytest.mark.asyncio
    async def test_weighted_next_picks_longest_wait(self, queue_service, presence):
        await queue_service.load()
        await fill(queue_service, ANN, BOB)
        presence.set_online(BOB)
        await queue_service.waiting_tick()
        presence.set_online(ANN, BOB)

        selected = await queue_service.weighted_next()

        assert selected.entry.submitter.name == "bob"
        assert selected.selection_chance == "66.7"

    @pytest.mark.asyncio
    async def test_weighted_random_reports_chance(self, queue_service, presence):
        queue_service.rng = FixedRandom(2)
        await queue_service.load()
        await fill(queue_service, ANN, BOB)
        presence.set_online(ANN, BOB)

        selected = await queue_service.weighted_random()

        assert selected.entry.submitter.name == "bob"
        assert selected.selection_chance == "50.0"
        assert queue_service.rng.requests == [(1, 2)]

    @pytest.mark.asyncio
    async def test_weighted_random_without_online_submitters(self, queue_service):
        await queue_service.load()
        await fill(queue_service, ANN)

        assert await queue_service.weighted_random() is None
        assert queue_service.size() == 1

    @pytest.mark.asyncio
    async def test_random_uses_rng(self, queue_service, presence):
        queue_service.rng = FixedRandom(1)
        await queue_service.load()
        await fill(queue_service, ANN, BOB, CID)
        presence.set_online(ANN, BOB, CID)

        selected = await queue_service.random()

        assert selected.entry.submitter.name == "bob"

    @pytest.mark.asyncio
    async def test_sub_next_uses_subscriber_presence(self, queue_service, presence):
        await queue_service.load()
        await fill(queue_service, ANN, BOB)
        presence.set_online(ANN, BOB)
        presence.set_online(BOB, scope=PresenceScope.SUBSCRIBERS)

        selected = await queue_service.sub_next()

        assert selected.entry.submitter.name == "bob"
        assert presence.calls[-1] == PresenceScope.SUBSCRIBERS

    @pytest.mark.asyncio
    async def test_mod_random_uses_moderator_presence(self, queue_service, presence):
        queue_service.rng = FixedRandom(0)
        await queue_service.load()
        await fill(queue_service, ANN, BOB)
        presence.set_online(BOB, scope=PresenceScope.MODERATORS)

        selected = await queue_service.mod_random()

        assert selected.entry.submitter.name == "bob"

    @pytest.mark.asyncio
    async def test_dip(self, queue_service, accessor):
        await queue_service.load()
        await fill(queue_service, ANN, BOB, CID)

        selected = queue_service.dip("cid")

        assert selected.entry.submitter.name == "cid"
        assert queued_names(accessor) == ["ann", "bob"]
        assert queue_service.dip("nobody") is None

    @pytest.mark.asyncio
    async def test_queue_length_invariant(self, queue_service, presence):
        await queue_service.load()
        await fill(queue_service, ANN, BOB, CID)
        presence.set_online(ANN, BOB, CID)

        for operation in (queue_service.next, queue_service.weighted_random, queue_service.weighted_next):
            before = queue_service.size()
            had_current = queue_service.current() is not None
            await operation()
            assert queue_service.size() == before - (1 if had_current else 0)


class TestPositions:
    @pytest.mark.asyncio
    async def test_positions(self, queue_service, presence):
        await queue_service.load()
        await fill(queue_service, ANN, BOB, CID)
        await queue_service.next()
        presence.set_online(CID)

        assert await queue_service.position(ANN) == 0
        assert await queue_service.position(CID) == 2
        assert await queue_service.position(BOB) == 3
        assert queue_service.absolute_position(BOB) == 2
        assert queue_service.absolute_position(make_user("dee")) == -1

    @pytest.mark.asyncio
    async def test_weighted_position_and_chance(self, queue_service, presence):
        await queue_service.load()
        await fill(queue_service, ANN, BOB)
        presence.set_online(BOB)
        await queue_service.waiting_tick()
        await queue_service.waiting_tick()
        presence.set_online(ANN, BOB)

        assert await queue_service.weighted_position(BOB) == 1
        assert await queue_service.weighted_position(ANN) == 2
        chance = await queue_service.weighted_chance(BOB)
        assert chance.success
        assert chance.value == "75.0"

    @pytest.mark.asyncio
    async def test_weighted_chance_when_offline(self, queue_service):
        await queue_service.load()
        await fill(queue_service, ANN)

        result = await queue_service.weighted_chance(ANN)

        assert result.error_code == error_codes.NOT_IN_QUEUE

    @pytest.mark.asyncio
    async def test_list_partitions_queue(self, queue_service, presence):
        await queue_service.load()
        await fill(queue_service, ANN, BOB)
        presence.set_online(BOB)

        listed = await queue_service.list()

        assert [e.submitter.name for e in listed.online] == ["bob"]
        assert [e.submitter.name for e in listed.offline] == ["ann"]
        assert (await queue_service.submitted_entry(ANN)).code == "AAA-AAA-00F"


class TestPersistence:
    @pytest.mark.asyncio
    async def test_state_survives_restart(self, queue_service, accessor, repository, resolver, presence):
        await queue_service.load()
        await fill(queue_service, ANN, BOB, CID)
        await queue_service.next()
        expected = accessor.snapshot().to_dict()

        restarted = QueueService(
            QueueAccessor(repository),
            SchemaManager(repository, clock=lambda: FIXED_NOW),
            resolver,
            presence,
        )
        warnings = await restarted.load()

        assert warnings == []
        assert restarted.accessor.snapshot().to_dict() == expected

    @pytest.mark.asyncio
    async def test_persistence_management(self, queue_service, accessor, repository):
        await queue_service.load()

        assert (await queue_service.persistence_management("off")).success
        assert accessor.persist_enabled is False
        await fill(queue_service, ANN)
        assert json.loads(repository.snapshot_path().read_text())["entries"]["queue"] == []

        assert (await queue_service.persistence_management("save")).success
        assert len(json.loads(repository.snapshot_path().read_text())["entries"]["queue"]) == 1

        assert (await queue_service.persistence_management("on")).success
        assert accessor.persist_enabled is True

        result = await queue_service.persistence_management("explode")
        assert result.error_code == error_codes.INVALID_SUBCOMMAND

    @pytest.mark.asyncio
    async def test_persistence_load_discards_unsaved_changes(self, queue_service, accessor):
        await queue_service.load()
        await queue_service.persistence_management("off")
        await fill(queue_service, ANN)

        result = await queue_service.persistence_management("load")

        assert result.success
        assert queue_service.size() == 0

    @pytest.mark.asyncio
    async def test_failed_manual_save(self, queue_service, repository):
        await queue_service.load()
        repository.failing = True

        result = await queue_service.persistence_management("save")

        assert result.error_code == error_codes.SAVE_FAILED
