"""
Repository for queue save files.
"""

import logging
from pathlib import Path
from typing import Any

from repositories.base_repository import BaseRepository
from repositories.interfaces import IQueueRepository

logger = logging.getLogger("queso_queue.repositories.queue")

QUEUE_FILE_NAME = "queue.json"


class QueueRepository(BaseRepository, IQueueRepository):
    """
    Handles the queue save file and the legacy files it replaced.

    The current save file lives in ``data_dir``. The oldest save format was a
    set of files in ``legacy_dir`` (the bot's working directory).
    """

    def __init__(self, data_dir: str | Path, legacy_dir: str | Path = ".", pretty: bool = False):
        super().__init__(data_dir, pretty=pretty)
        self.legacy_dir = Path(legacy_dir)

    def snapshot_path(self) -> Path:
        return self.path(QUEUE_FILE_NAME)

    def read_snapshot(self) -> Any | None:
        return self.read_json(self.snapshot_path())

    def write_snapshot(self, payload: dict) -> None:
        self.write_json(self.snapshot_path(), payload)
        logger.debug(f"Queue state saved to {self.snapshot_path()}")

    def legacy_path(self, file_name: str, in_data_dir: bool = False) -> Path:
        """Superseded files live in the legacy directory, a few of them in the data directory."""
        return self.path(file_name) if in_data_dir else self.legacy_dir / file_name

    def legacy_exists(self, file_name: str, in_data_dir: bool = False) -> bool:
        return self.legacy_path(file_name, in_data_dir).exists()

    def read_legacy(self, file_name: str, in_data_dir: bool = False) -> Any | None:
        return self.read_json(self.legacy_path(file_name, in_data_dir))

    def delete_legacy(self, file_name: str, in_data_dir: bool = False) -> bool:
        """
        Delete a superseded legacy file.

        Returns:
            True if the file was deleted, False if it was missing or could not be deleted
        """
        target = self.legacy_path(file_name, in_data_dir)
        if not target.exists():
            return False
        try:
            target.unlink()
        except OSError as exc:
            logger.warning(f"{target} could not be deleted: {exc}")
            return False
        logger.info(f"{target} has been deleted successfully.")
        return True

    def lost_data_path(self, timestamp: str) -> Path:
        safe_timestamp = timestamp.replace(":", "-")
        return self.path(f"lost-levels-{safe_timestamp}.json")

    def write_lost_data(self, payload: dict, timestamp: str) -> Path:
        """Write data that could not be migrated to a timestamped side file."""
        target = self.lost_data_path(timestamp)
        self.write_json(target, payload)
        logger.warning(f"Data that could not be migrated was written to {target}")
        return target
