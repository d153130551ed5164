"""
Base repository with common JSON file operations.
"""

import json
import logging
import os
from abc import ABC
from contextlib import contextmanager
from pathlib import Path
from typing import Any

logger = logging.getLogger("queso_queue.repositories")


class BaseRepository(ABC):
    """
    Base class for file backed repositories.

    All writes go through a temporary file that atomically replaces the
    target, so a crash mid-write never leaves a truncated save file behind.
    """

    def __init__(self, base_dir: str | Path, pretty: bool = False):
        """
        Initialize repository with the directory its files live in.

        Args:
            base_dir: Directory holding the save files
            pretty: Whether to indent written JSON
        """
        self.base_dir = Path(base_dir)
        self.pretty = pretty

    def path(self, *parts: str) -> Path:
        return self.base_dir.joinpath(*parts)

    @contextmanager
    def atomic_writer(self, target: Path):
        """
        Context manager yielding a text file handle for ``target``.

        The content only replaces ``target`` if the block completes; the
        temporary file is removed on error.
        """
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(f"{target.name}.{os.getpid()}.tmp")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                yield f
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, target)
        except BaseException:
            try:
                tmp.unlink(missing_ok=True)
            except OSError:
                logger.warning(f"Could not remove temporary file {tmp}")
            raise

    def write_json(self, target: Path, payload: Any) -> None:
        content = json.dumps(payload, indent=2 if self.pretty else None, ensure_ascii=False)
        with self.atomic_writer(target) as f:
            f.write(content)

    def read_json(self, target: Path) -> Any | None:
        """
        Read and decode a JSON file.

        Returns:
            The decoded content, or None if the file does not exist

        Raises:
            ValueError: If the file is not valid JSON
        """
        if not target.exists():
            return None
        with open(target, encoding="utf-8") as f:
            return json.load(f)
