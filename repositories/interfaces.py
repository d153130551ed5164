"""
Abstract repository interfaces for data access.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any


class IQueueRepository(ABC):
    @abstractmethod
    def read_snapshot(self) -> Any | None:
        """Raw content of the versioned save file, or None if it does not exist."""
        ...

    @abstractmethod
    def write_snapshot(self, payload: dict) -> None:
        """Atomically replace the versioned save file. Raises on failure."""
        ...

    @abstractmethod
    def snapshot_path(self) -> Path: ...

    @abstractmethod
    def legacy_path(self, file_name: str, in_data_dir: bool = False) -> Path: ...

    @abstractmethod
    def read_legacy(self, file_name: str, in_data_dir: bool = False) -> Any | None: ...

    @abstractmethod
    def legacy_exists(self, file_name: str, in_data_dir: bool = False) -> bool: ...

    @abstractmethod
    def delete_legacy(self, file_name: str, in_data_dir: bool = False) -> bool: ...

    @abstractmethod
    def lost_data_path(self, timestamp: str) -> Path: ...

    @abstractmethod
    def write_lost_data(self, payload: dict, timestamp: str) -> Path: ...
