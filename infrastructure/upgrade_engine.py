"""
Generic driver for versioned save files.

A save format evolves through stages, oldest first. Each stage knows how to
validate its own data and how to upgrade it to the next stage. Upgrades may
return deferred writes (side files such as data that could not be migrated)
that run right before the upgraded data is saved, and deferred hooks
(deleting superseded files) that only run once the upgraded data has been
written and read back successfully.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from infrastructure.snapshot_schemas import parse_version

logger = logging.getLogger("queso_queue.infrastructure.upgrade_engine")

Hook = Callable[[], Awaitable[None] | None]


class SaveFileError(Exception):
    """A save file can not be loaded. Fatal at startup."""


class IncompatibleSaveFileError(SaveFileError):
    """The save file was written by a newer (or unknown) version of the queue."""


class MigrationAbortedError(SaveFileError):
    """An upgraded save file could not be committed; legacy files were left untouched."""


@dataclass
class UpgradeResult:
    data: Any
    hooks: list[Hook] = field(default_factory=list)
    writes: list[Hook] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class LoadResult:
    data: Any
    save: bool
    hooks: list[Hook] = field(default_factory=list)
    writes: list[Hook] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class MigrationStage:
    """
    One generation of the save format.

    Attributes:
        name: Human readable name for logs
        load: Validates raw file content and returns the stage's data
        major_version: Major version written into the versioned save file,
            None for unversioned legacy file sets
        current_version: Newest version string of this stage
        read: Reads a legacy file set; None if the stage lives in the versioned file
        upgrade: Converts this stage's data into the next stage's data
    """

    name: str
    load: Callable[[Any], Any]
    major_version: int | None = None
    current_version: str | None = None
    read: Callable[[], Any | None] | None = None
    upgrade: Callable[[Any], Awaitable[UpgradeResult] | UpgradeResult] | None = None


class UpgradeEngine:
    """
    Loads whichever generation of save data exists and walks it forward.

    Args:
        stages: Migration stages, oldest first; the last one is the current format
        read_versioned: Returns the raw content of the versioned save file or None
        file_name: Name of the versioned save file for messages
    """

    def __init__(
        self,
        stages: list[MigrationStage],
        read_versioned: Callable[[], Any | None],
        file_name: str = "save file",
    ):
        if not stages:
            raise ValueError("UpgradeEngine needs at least one stage")
        newest = stages[-1]
        if newest.major_version is None or newest.current_version is None:
            raise ValueError("The newest stage must be a versioned stage")
        if any(stage.upgrade is None for stage in stages[:-1]):
            raise ValueError("Every stage but the newest needs an upgrade function")
        self.stages = stages
        self.read_versioned = read_versioned
        self.file_name = file_name

    @property
    def newest(self) -> MigrationStage:
        return self.stages[-1]

    async def load(self, create: Callable[[], Any]) -> LoadResult:
        """
        Load the newest available data and upgrade it to the current stage.

        Args:
            create: Builds empty data of the current stage if no save data exists
        """
        raw = self.read_versioned()
        if raw is not None:
            version = self._extract_version(raw)
            index = self._stage_index(version)
            stage = self.stages[index]
            data = stage.load(raw)
            logger.info(f"{self.file_name} has been successfully validated.")
            # an older minor version is upgraded by the stage's loader
            save = parse_version(version) < parse_version(stage.current_version or version)
            return await self._upgrade_from(index, data, save)

        for index in reversed(range(len(self.stages))):
            stage = self.stages[index]
            if stage.read is None:
                continue
            raw = stage.read()
            if raw is None:
                continue
            logger.info(f"Found save data of stage {stage.name}, upgrading")
            return await self._upgrade_from(index, stage.load(raw), True)

        logger.info(f"No save data found, creating an empty {self.file_name}")
        return LoadResult(data=create(), save=True)

    def load_newest(self) -> Any | None:
        """Read back the versioned file; only the current stage is accepted."""
        raw = self.read_versioned()
        if raw is None:
            return None
        version = self._extract_version(raw)
        if self._stage_index(version) != len(self.stages) - 1:
            return None
        return self.newest.load(raw)

    async def _upgrade_from(self, index: int, data: Any, save: bool) -> LoadResult:
        hooks: list[Hook] = []
        writes: list[Hook] = []
        warnings: list[str] = []
        for stage in self.stages[index:-1]:
            result = stage.upgrade(data)
            if inspect.isawaitable(result):
                result = await result
            logger.info(f"Upgraded save data from stage {stage.name}")
            data = result.data
            hooks.extend(result.hooks)
            writes.extend(result.writes)
            warnings.extend(result.warnings)
            save = True
        return LoadResult(data=data, save=save, hooks=hooks, writes=writes, warnings=warnings)

    def _extract_version(self, raw: Any) -> str:
        if not isinstance(raw, dict) or not isinstance(raw.get("version"), str):
            raise SaveFileError(f"{self.file_name} does not contain a version")
        return raw["version"]

    def _stage_index(self, version: str) -> int:
        try:
            major, _ = parse_version(version)
        except ValueError as exc:
            raise SaveFileError(f"{self.file_name}: {exc}") from exc
        for index, stage in enumerate(self.stages):
            if stage.major_version == major:
                return index
        raise IncompatibleSaveFileError(
            f'{self.file_name}: version in file "{version}" is not compatible with save file version '
            f'"{self.newest.current_version}". Save file is assumed to be incompatible. '
            "Did you downgrade versions?"
        )


async def _run(step: Hook) -> None:
    outcome = step()
    if inspect.isawaitable(outcome):
        await outcome


async def commit_load_result(
    result: LoadResult,
    save: Callable[[Any], None],
    verify: Callable[[], Any | None],
    persist: bool = True,
) -> Any:
    """
    Make loaded data durable before running destructive hooks.

    Runs the deferred writes, writes the data if it was upgraded or created,
    reads it back through ``verify`` and only then runs the deferred hooks
    in order.

    Raises:
        MigrationAbortedError: If hooks or writes are pending while persistence
            is off, a deferred write failed, or the written file could not be
            read back
    """
    if not result.save and not result.hooks and not result.writes:
        return result.data

    if not persist:
        if result.hooks or result.writes:
            raise MigrationAbortedError(
                "Can not upgrade save file while saving is turned off! "
                "Turn on persistence to finish the upgrade of the previous save files."
            )
        logger.warning(
            "Upgraded save file while saving is turned off! "
            "Please make sure to save the changes manually or else the upgrade is lost."
        )
        return result.data

    for write in result.writes:
        try:
            await _run(write)
        except OSError as exc:
            raise MigrationAbortedError(
                f"Writing data that could not be upgraded failed, the previous save files have been kept: {exc}"
            ) from exc

    save(result.data)
    verified = verify()
    if verified is None:
        raise MigrationAbortedError(
            "Creating save file from an old version failed! "
            "The previous save files have been kept, please report this issue."
        )

    for hook in result.hooks:
        try:
            await _run(hook)
        except OSError as exc:
            logger.warning(f"Cleanup after upgrade failed and is ignored: {exc}")
    return verified
