"""
Custom codes: operator-defined names that stand for an entry.

The codes are extension data of the queue file (``extensions.customcode``).
Lookups ignore case and surrounding whitespace; the name is listed the way
it was added.
"""

import logging
from typing import Any

from domain.models.entry import Entry
from domain.models.submitter import Submitter
from infrastructure.snapshot_schemas import CUSTOM_CODES_EXTENSION, CUSTOM_CODES_VERSION
from services import error_codes
from services.interfaces import IEntryResolver
from services.queue_bindings import QueueBinding, QueueBindingDescription, QueueBindingRegistry
from services.result import Result

logger = logging.getLogger("queso_queue.services.custom_codes")


class CustomCodes:
    def __init__(self):
        self._codes: dict[str, tuple[str, Entry]] = {}

    @staticmethod
    def _key(name: str) -> str:
        return name.strip().upper()

    def has(self, name: str) -> bool:
        return self._key(name) in self._codes

    def get_entry(self, name: str) -> Entry | None:
        found = self._codes.get(self._key(name))
        return found[1] if found is not None else None

    def get_name(self, name: str) -> str | None:
        found = self._codes.get(self._key(name))
        return found[0] if found is not None else None

    def list_names(self) -> list[str]:
        return [name for name, _ in self._codes.values()]

    def set(self, name: str, entry: Entry) -> None:
        self._codes[self._key(name)] = (name.strip(), entry)

    def delete(self, name: str) -> bool:
        return self._codes.pop(self._key(name), None) is not None

    def to_dict(self) -> dict[str, dict]:
        return {name: entry.to_dict() for name, entry in self._codes.values()}

    @classmethod
    def from_dict(cls, data: dict[str, dict]) -> "CustomCodes":
        codes = cls()
        for name, entry in data.items():
            codes.set(name, Entry(type=entry.get("type"), code=entry.get("code"), data=entry.get("data")))
        return codes


class CustomCodesDescription(QueueBindingDescription[CustomCodes]):
    name = CUSTOM_CODES_EXTENSION

    def empty(self) -> CustomCodes:
        return CustomCodes()

    def serialize(self, data: CustomCodes) -> dict[str, Any]:
        return {"version": CUSTOM_CODES_VERSION, "data": data.to_dict()}

    def deserialize(self, value: dict[str, Any]) -> CustomCodes:
        return CustomCodes.from_dict(value.get("data") or {})


class CustomCodeService(IEntryResolver):
    """
    Resolves custom codes and falls back to ``resolver`` for everything else.

    Args:
        bindings: Registry the custom codes are registered with
        resolver: Resolver for real codes
    """

    def __init__(self, bindings: QueueBindingRegistry, resolver: IEntryResolver):
        self.binding: QueueBinding[CustomCodes] = bindings.register(CustomCodesDescription())
        self.resolver = resolver

    @property
    def codes(self) -> CustomCodes:
        return self.binding.data

    async def resolve(self, code: str, submitter: Submitter) -> Entry | None:
        entry = self.codes.get_entry(code)
        if entry is not None:
            return Entry(type=entry.type, code=entry.code, data=entry.data)
        return await self.resolver.resolve(code, submitter)

    def list(self) -> Result[str]:
        names = self.codes.list_names()
        if not names:
            return Result.ok("There are no custom codes set.")
        return Result.ok(f"The current custom codes are: {', '.join(names)}.")

    async def add(self, name: str, code: str, submitter: Submitter) -> Result[str]:
        resolved = await self.resolver.resolve(code, submitter)
        if resolved is None:
            return Result.fail("That is an invalid level code.", code=error_codes.INVALID_CODE)
        if self.codes.has(name):
            return Result.fail(
                f"The custom code {self.codes.get_name(name)} already exists",
                code=error_codes.CUSTOM_CODE_EXISTS,
            )
        self.codes.set(name, resolved)
        self.binding.save()
        logger.info(f"Custom code {name.strip()} added for {resolved}")
        return Result.ok(f"Your custom code {name.strip()} for {resolved} has been added.")

    def remove(self, name: str) -> Result[str]:
        entry = self.codes.get_entry(name)
        if entry is None:
            return Result.fail(
                f"The custom code {name.strip()} could not be found.", code=error_codes.NOT_FOUND
            )
        removed_name = self.codes.get_name(name)
        self.codes.delete(name)
        self.binding.save()
        logger.info(f"Custom code {removed_name} removed")
        return Result.ok(f"The custom code {removed_name} for {entry} has been removed.")

    async def manage(self, arguments: str, submitter: Submitter) -> Result[str]:
        """
        Operator subcommands: ``add <name> <code>`` and ``remove <name>``.

        Without arguments the custom codes are listed.
        """
        if not arguments.strip():
            return self.list()
        command, *rest = arguments.split()
        if command == "add" and len(rest) >= 2:
            return await self.add(rest[0], " ".join(rest[1:]), submitter)
        if command == "remove" and len(rest) == 1:
            return self.remove(rest[0])
        return Result.fail(
            "Invalid arguments. The correct syntax is !customcode {add/remove} {customCode} {ID}.",
            code=error_codes.INVALID_SUBCOMMAND,
        )
