"""Tests for the custom codes extension."""

import json

import pytest

from domain.models.entry import Entry
from services import error_codes
from services.custom_codes import CustomCodes, CustomCodeService
from tests.conftest import make_user

ANN = make_user("ann")


@pytest.fixture
def custom_codes(bindings, accessor, resolver):
    bindings.set_save_handler(accessor.request_save)
    return CustomCodeService(bindings, resolver)


def saved_extension(repository):
    saved = json.loads(repository.snapshot_path().read_text(encoding="utf-8"))
    return saved["extensions"]["customcode"]


class TestCustomCodes:
    def test_names_ignore_case_and_whitespace(self):
        codes = CustomCodes()
        codes.set(" Ufo ", Entry(type="smm2", code="ABC-DEF-GHF"))

        assert codes.has("UFO")
        assert codes.get_name("ufo") == "Ufo"
        assert codes.get_entry(" uFo") == Entry(type="smm2", code="ABC-DEF-GHF")
        assert codes.list_names() == ["Ufo"]
        assert codes.delete("UFO") is True
        assert codes.delete("UFO") is False

    def test_dict_form(self):
        codes = CustomCodes.from_dict({"Ufo": {"type": "smm2", "code": "ABC-DEF-GHF"}})

        assert codes.to_dict() == {"Ufo": {"type": "smm2", "code": "ABC-DEF-GHF"}}


class TestCustomCodeService:
    def test_registered_as_queue_binding(self, custom_codes, bindings):
        assert bindings.get("customcode") is custom_codes.binding

    def test_list_without_codes(self, custom_codes):
        assert custom_codes.list().value == "There are no custom codes set."

    @pytest.mark.asyncio
    async def test_add_saves_into_the_queue_file(self, custom_codes, repository):
        result = await custom_codes.add("Ufo", "abc-def-ghf", ANN)

        assert result.value == "Your custom code Ufo for ABC-DEF-GHF has been added."
        assert saved_extension(repository) == {
            "version": "2.0",
            "data": {"Ufo": {"type": "smm2", "code": "ABC-DEF-GHF"}},
        }
        assert custom_codes.list().value == "The current custom codes are: Ufo."

    @pytest.mark.asyncio
    async def test_add_rejects_invalid_and_duplicate_codes(self, custom_codes):
        await custom_codes.add("Ufo", "abc-def-ghf", ANN)

        assert (await custom_codes.add("other", "bad code", ANN)).error_code == error_codes.INVALID_CODE
        duplicate = await custom_codes.add("UFO", "xyz-xyz-xyf", ANN)
        assert duplicate.error_code == error_codes.CUSTOM_CODE_EXISTS
        assert duplicate.error == "The custom code Ufo already exists"

    @pytest.mark.asyncio
    async def test_remove(self, custom_codes, repository):
        await custom_codes.add("Ufo", "abc-def-ghf", ANN)

        result = custom_codes.remove("ufo")

        assert result.value == "The custom code Ufo for ABC-DEF-GHF has been removed."
        assert saved_extension(repository)["data"] == {}
        assert custom_codes.remove("ufo").error_code == error_codes.NOT_FOUND

    @pytest.mark.asyncio
    async def test_resolve_prefers_custom_codes(self, custom_codes):
        await custom_codes.add("Ufo", "abc-def-ghf", ANN)

        assert await custom_codes.resolve(" UFO ", ANN) == Entry(type="smm2", code="ABC-DEF-GHF")
        assert await custom_codes.resolve("xyz-xyz-xyf", ANN) == Entry(type="smm2", code="XYZ-XYZ-XYF")
        assert await custom_codes.resolve("bad", ANN) is None

    @pytest.mark.asyncio
    async def test_resolved_entries_are_copies(self, custom_codes):
        await custom_codes.add("Ufo", "abc-def-ghf", ANN)

        entry = await custom_codes.resolve("ufo", ANN)
        entry.code = "changed"

        assert custom_codes.codes.get_entry("ufo").code == "ABC-DEF-GHF"

    def test_persisted_codes_are_loaded(self, custom_codes, bindings):
        bindings.from_persisted({"customcode": {"version": "2.0", "data": {"Ufo": {"type": "smm2", "code": "A"}}}})

        assert custom_codes.codes.get_entry("ufo") == Entry(type="smm2", code="A")

    @pytest.mark.asyncio
    async def test_manage_subcommands(self, custom_codes):
        assert (await custom_codes.manage("add Ufo abc-def-ghf", ANN)).success
        assert (await custom_codes.manage("", ANN)).value == "The current custom codes are: Ufo."
        assert (await custom_codes.manage("remove Ufo", ANN)).success
        assert (await custom_codes.manage("rename Ufo", ANN)).error_code == error_codes.INVALID_SUBCOMMAND
        assert (await custom_codes.manage("add Ufo", ANN)).error_code == error_codes.INVALID_SUBCOMMAND

    @pytest.mark.asyncio
    async def test_queue_submissions_use_custom_codes(self, custom_codes, queue_service, accessor):
        queue_service.resolver = custom_codes
        await queue_service.load()
        await custom_codes.add("Ufo", "abc-def-ghf", ANN)

        result = await queue_service.add("ufo", make_user("bob"))

        assert result.success
        assert accessor.snapshot().queue[0].code == "ABC-DEF-GHF"

    @pytest.mark.asyncio
    async def test_queue_reload_restores_codes_from_disk(self, custom_codes, queue_service, repository):
        await queue_service.load()
        await custom_codes.add("Ufo", "abc-def-ghf", ANN)
        custom_codes.codes.delete("Ufo")

        result = await queue_service.persistence_management("load")

        assert result.success
        assert custom_codes.codes.get_entry("ufo") == Entry(type="smm2", code="ABC-DEF-GHF")
