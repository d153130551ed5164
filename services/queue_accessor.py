"""
QueueAccessor: the only way to read or mutate the queue store.

The bot runs on a single asyncio event loop. Exclusive access therefore does
not need a lock: it only needs every mutation to happen in one synchronous
call with no await inside it. Anything that talks to the outside world
(presence, code resolution, identity lookup) runs in a prepare phase before
``access`` is entered. A nested ``access`` call means that split is missing
and raises immediately.
"""

import inspect
import logging
from collections.abc import Callable
from typing import TypeVar

from domain.models.queue_state import QueueSnapshot, QueueStore
from repositories.interfaces import IQueueRepository

logger = logging.getLogger("queso_queue.services.queue_accessor")

T = TypeVar("T")


class ReentrantAccessError(RuntimeError):
    """Raised when the queue store is accessed while an access call is active."""


class QueueAccess:
    """
    Token handed to an access callback.

    Exposes the store and the deferred save request. Once the access call
    returns the token is closed and any further use raises.
    """

    def __init__(self, store: QueueStore):
        self._store = store
        self._open = True
        self.save_requested = False
        self.force_save = False

    @property
    def store(self) -> QueueStore:
        self._check_open()
        return self._store

    def save_later(self, force: bool = False) -> None:
        """Request a save once the access call completes."""
        self._check_open()
        self._request(force)

    def _request(self, force: bool) -> None:
        self.save_requested = True
        self.force_save = self.force_save or force

    def close(self) -> None:
        self._open = False

    def _check_open(self) -> None:
        if not self._open:
            raise ReentrantAccessError("Queue access token used after its access call returned")


class QueueAccessor:
    """
    Guards the queue store and persists it after mutations.

    Args:
        repository: Where snapshots are written
        extensions_provider: Returns the persisted extension bindings to include in snapshots
        persist: Whether automatic persistence is enabled
    """

    def __init__(
        self,
        repository: IQueueRepository,
        extensions_provider: Callable[[], dict] | None = None,
        persist: bool = True,
    ):
        self.repository = repository
        self.extensions_provider = extensions_provider or (lambda: {})
        self.persist_enabled = persist
        self._store = QueueStore()
        self._active: QueueAccess | None = None

    @property
    def is_active(self) -> bool:
        return self._active is not None

    def access(self, fn: Callable[[QueueAccess], T]) -> T:
        """
        Run ``fn`` with exclusive access to the store.

        Raises:
            ReentrantAccessError: If called from inside another access call
            TypeError: If ``fn`` is a coroutine function
        """
        if self._active is not None:
            raise ReentrantAccessError(
                "Queue accessed while another access is active; "
                "gather external data before entering access()"
            )
        token = QueueAccess(self._store)
        self._active = token
        try:
            result = fn(token)
            if inspect.isawaitable(result):
                if inspect.iscoroutine(result):
                    result.close()
                raise TypeError("Queue access callbacks must be synchronous")
            return result
        finally:
            self._active = None
            token.close()
            if token.save_requested:
                self._save(force=token.force_save)

    def request_save(self, force: bool = False) -> bool | None:
        """
        Save trigger for extensions and other collaborators.

        Inside an active access call the request is merged into the pending
        deferred save and None is returned; otherwise the state is saved now.
        """
        if self._active is not None:
            self._active._request(force)
            return None
        return self._save(force=force)

    def save_now(self, force: bool = False) -> bool:
        """
        Persist the current state immediately.

        Args:
            force: Save even if automatic persistence is disabled

        Returns:
            True if the state was written
        """
        if self._active is not None:
            raise ReentrantAccessError("save_now() called while queue access is active")
        return self._save(force=force)

    def snapshot(self) -> QueueSnapshot:
        return self._store.to_snapshot(self.extensions_provider())

    def override(self, snapshot: QueueSnapshot) -> None:
        """Install a loaded snapshot as the current store."""

        def install(access: QueueAccess) -> None:
            store = snapshot.to_store()
            access.store.current = store.current
            access.store.queue = store.queue
            access.store.waiting = store.waiting

        self.access(install)

    def _save(self, force: bool = False) -> bool:
        if not (self.persist_enabled or force):
            return False
        try:
            payload = self.snapshot().to_dict()
            self.repository.write_snapshot(payload)
        except (OSError, TypeError, ValueError) as exc:
            logger.error(
                f"{self.repository.snapshot_path()} could not be saved. The queue will keep running, "
                f"but the state is not persisted and might be lost on restart: {exc}",
                exc_info=True,
            )
            return False
        return True
