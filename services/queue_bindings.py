"""
Typed registry of extension data bound to the queue save file.

Extensions (custom codes, level types, ...) keep their own data inside the
``extensions`` section of the queue snapshot. Each one registers a
description once; the registry checks it at registration time and from then
on hands out typed bindings.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from domain.models.entry import QueueEntry

logger = logging.getLogger("queso_queue.services.queue_bindings")

D = TypeVar("D")

EntriesListener = Callable[[list[QueueEntry]], bool]


class QueueBindingDescription(ABC, Generic[D]):
    """Describes how an extension's data is created and persisted."""

    name: str = ""

    @abstractmethod
    def empty(self) -> D:
        """Data used when nothing has been persisted yet."""
        ...

    @abstractmethod
    def serialize(self, data: D) -> dict[str, Any]:
        """Return ``{"version": str, "data": ...}``."""
        ...

    @abstractmethod
    def deserialize(self, value: dict[str, Any]) -> D: ...


class QueueBinding(Generic[D]):
    def __init__(self, description: QueueBindingDescription[D], save: Callable[[str], None]):
        self.description = description
        self.data: D = description.empty()
        self._save = save

    @property
    def name(self) -> str:
        return self.description.name

    def save(self) -> None:
        """Ask the queue to persist, e.g. after changing ``data``."""
        self._save(self.name)

    def load(self, value: dict[str, Any] | None) -> None:
        self.data = self.description.empty() if value is None else self.description.deserialize(value)

    def to_persisted(self) -> dict[str, Any]:
        persisted = self.description.serialize(self.data)
        if not isinstance(persisted.get("version"), str) or "data" not in persisted:
            raise ValueError(f"Queue binding {self.name} serialized without version or data")
        return persisted


class QueueBindingRegistry:
    """
    Holds the queue bindings and the entry-list-changed listeners.

    Persisted data of bindings that are not registered (e.g. a disabled
    extension) is carried through untouched.
    """

    def __init__(self):
        self._bindings: dict[str, QueueBinding] = {}
        self._persisted: dict[str, dict[str, Any]] = {}
        self._save_handler: Callable[[], Any] | None = None
        self._entries_listeners: list[EntriesListener] = []

    def set_save_handler(self, handler: Callable[[], Any]) -> None:
        self._save_handler = handler

    def register(self, description: QueueBindingDescription[D]) -> QueueBinding[D]:
        """
        Register an extension's data.

        Raises:
            TypeError: If description is not a QueueBindingDescription
            ValueError: If the name is empty or already registered
        """
        if not isinstance(description, QueueBindingDescription):
            raise TypeError(f"Expected a QueueBindingDescription, got {type(description).__name__}")
        name = description.name
        if not isinstance(name, str) or not name:
            raise ValueError("Queue binding descriptions need a non-empty name")
        if name in self._bindings:
            raise ValueError(f"Queue binding of name {name} already exists!")
        binding = QueueBinding(description, self._save)
        if name in self._persisted:
            binding.load(self._persisted[name])
        self._bindings[name] = binding
        logger.info(f"Registered queue binding: {name}")
        return binding

    def get(self, name: str) -> QueueBinding | None:
        return self._bindings.get(name)

    def _save(self, name: str) -> None:
        if self._save_handler is None:
            logger.warning(f"Extension {name} requested to save, but no save handler is registered")
            return
        self._save_handler()

    def from_persisted(self, persisted: dict[str, dict[str, Any]]) -> None:
        self._persisted = dict(persisted)
        for name, binding in self._bindings.items():
            binding.load(self._persisted.get(name))

    def to_persisted(self) -> dict[str, dict[str, Any]]:
        for name, binding in self._bindings.items():
            self._persisted[name] = binding.to_persisted()
        return dict(self._persisted)

    def add_entries_listener(self, listener: EntriesListener) -> None:
        """Listeners get all entries after load and after every removal; True means they changed something."""
        self._entries_listeners.append(listener)

    def notify_entries_changed(self, entries: list[QueueEntry]) -> bool:
        changed = False
        for listener in self._entries_listeners:
            changed = bool(listener(entries)) or changed
        return changed
