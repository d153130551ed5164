"""
Schema and migration management for the queue save files.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from domain.models.entry import QueueEntry, format_timestamp, utc_now
from domain.models.queue_state import CURRENT_SNAPSHOT_VERSION, QueueSnapshot
from domain.models.submitter import Submitter
from domain.models.waiting import WeightRecord
from infrastructure.snapshot_schemas import (
    CUSTOM_CODES_EXTENSION,
    CUSTOM_CODES_VERSION,
    CustomCodesV1,
    CustomCodesV2,
    EntryV3,
    LevelV1,
    QueueV1,
    QueueV2,
    QueueV3,
    UserOnlineTimeV1,
    UserWaitTimeV1,
    WaitingUsersV1,
    WeightRecordV3,
    parse_version,
)
from infrastructure.upgrade_engine import (
    IncompatibleSaveFileError,
    LoadResult,
    MigrationStage,
    SaveFileError,
    UpgradeEngine,
    UpgradeResult,
    commit_load_result,
)
from repositories.interfaces import IQueueRepository
from services.interfaces import IIdentityLookup

logger = logging.getLogger("queso_queue.schema")

QUEUE_V2_VERSION = "2.2"

# legacy files of the first generation, relative to the legacy directory
QUEUE_V1_FILES = {
    "queso": "queso.save",
    "userOnlineTime": "userOnlineTime.txt",
    "userWaitTime": "userWaitTime.txt",
    "waitingUsers": "waitingUsers.txt",
}

# custom codes of the first generation; a copy in the data directory wins
CUSTOM_CODES_V1_FILE = "customCodes.json"
CUSTOM_CODES_V2_FILE = "extensions/customcode.json"
# level codes that stood for custom level types before those had ids
LEGACY_CUSTOM_CODE_LEVELS = ("R0M-HAK-LVL", "UNC-LEA-RED")


@dataclass
class QueueV1Data:
    levels: list[LevelV1]
    waiting_users: list[str]
    user_wait_time: list[int]
    user_online_time: list[datetime] | None


@dataclass
class LoadedQueue:
    snapshot: QueueSnapshot
    warnings: list[str] = field(default_factory=list)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _chunks(items: list[str], size: int):
    for start in range(0, len(items), size):
        yield items[start : start + size]


class SchemaManager:
    """
    Owns the queue save format and its migrations.

    Call initialize() to load the save data of any generation, upgrade it to
    the current format and commit it.
    """

    def __init__(
        self,
        repository: IQueueRepository,
        identity_lookup: IIdentityLookup | None = None,
        chunk_size: int = 100,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.identity_lookup = identity_lookup
        self.chunk_size = chunk_size
        self.clock = clock
        self.engine = UpgradeEngine(
            self._get_stages(),
            self._read_versioned,
            file_name=str(repository.snapshot_path()),
        )

    async def initialize(self, persist: bool = True) -> LoadedQueue:
        """Load, upgrade and commit the queue save data."""
        logger.info(f"Loading queue state: {self.repository.snapshot_path()}")
        result = await self.engine.load(QueueSnapshot)
        await self._load_custom_codes(result)
        for warning in result.warnings:
            logger.warning(warning)
        snapshot = await commit_load_result(
            result,
            self._write,
            self.engine.load_newest,
            persist=persist,
        )
        return LoadedQueue(snapshot=snapshot, warnings=list(result.warnings))

    def _get_stages(self) -> list[MigrationStage]:
        return [
            MigrationStage(
                name="1 (multiple files)",
                load=self._load_v1,
                read=self._read_v1,
                upgrade=self._upgrade_v1_to_v2,
            ),
            MigrationStage(
                name="2 (user names)",
                load=self._load_v2,
                major_version=2,
                current_version=QUEUE_V2_VERSION,
                upgrade=self._upgrade_v2_to_v3,
            ),
            MigrationStage(
                name="3 (user identities)",
                load=self._load_v3,
                major_version=3,
                current_version=CURRENT_SNAPSHOT_VERSION,
            ),
        ]

    # --- File access ---

    def _read_versioned(self) -> Any | None:
        try:
            return self.repository.read_snapshot()
        except ValueError as exc:
            raise SaveFileError(f"{self.repository.snapshot_path()} is not valid JSON: {exc}") from exc

    def _write(self, snapshot: QueueSnapshot) -> None:
        self.repository.write_snapshot(snapshot.to_dict())
        logger.info(f"{self.repository.snapshot_path()} has been successfully written.")

    def _read_legacy(self, file_name: str, in_data_dir: bool = False) -> Any | None:
        try:
            return self.repository.read_legacy(file_name, in_data_dir)
        except ValueError as exc:
            raise SaveFileError(f"{file_name} is not valid JSON: {exc}") from exc

    # --- Generation 1 ---

    def _read_v1(self) -> dict[str, Any] | None:
        if not any(self.repository.legacy_exists(name) for name in QUEUE_V1_FILES.values()):
            return None
        return {key: self._read_legacy(name) for key, name in QUEUE_V1_FILES.items()}

    def _load_v1(self, raw: dict[str, Any]) -> QueueV1Data:
        def parse(adapter, key, default, consequence):
            if raw.get(key) is None:
                return default
            try:
                return adapter.validate_python(raw[key])
            except ValidationError as exc:
                raise SaveFileError(f"{QUEUE_V1_FILES[key]} is invalid. {consequence}\n{exc}") from exc

        data = QueueV1Data(
            levels=parse(QueueV1, "queso", [], ""),
            waiting_users=parse(WaitingUsersV1, "waitingUsers", [], "Weighted chance will not function."),
            user_wait_time=parse(UserWaitTimeV1, "userWaitTime", [], "Weighted chance will not function."),
            user_online_time=parse(
                UserOnlineTimeV1, "userOnlineTime", None, "Online time will not be calculated correctly."
            ),
        )
        if len(data.waiting_users) != len(data.user_wait_time):
            raise SaveFileError(
                f"Data is corrupt: list length mismatch between files "
                f"{QUEUE_V1_FILES['waitingUsers']} and {QUEUE_V1_FILES['userWaitTime']}."
            )
        if data.user_online_time is not None and len(data.waiting_users) != len(data.user_online_time):
            raise SaveFileError(
                f"Data is corrupt: list length mismatch between files "
                f"{QUEUE_V1_FILES['waitingUsers']} and {QUEUE_V1_FILES['userOnlineTime']}."
            )
        return data

    def _upgrade_v1_to_v2(self, data: QueueV1Data) -> UpgradeResult:
        now = format_timestamp(self.clock())
        warnings = []

        if any(level.username is None for level in data.levels):
            warnings.append(
                f"Usernames are not set in the file {QUEUE_V1_FILES['queso']}! Assuming that usernames are "
                "lowercase display names, which does not work with localized display names. "
                "To be safe, clear the queue."
            )

        def upgrade(level: LevelV1) -> dict:
            return {
                "code": level.code,
                "type": None,
                "submitter": level.submitter,
                "username": level.username if level.username is not None else level.submitter.lower(),
            }

        marked = [index for index, level in enumerate(data.levels) if level.current_level]
        current_level = None
        levels = list(data.levels)
        if len(marked) == 1:
            current_level = upgrade(levels.pop(marked[0]))
        elif len(marked) > 1:
            warnings.append(
                f"{len(marked)} levels are marked as the current level in {QUEUE_V1_FILES['queso']}; "
                "none of them is treated as the current level."
            )
        queue = [upgrade(level) for level in levels]

        waiting = {}
        for index, username in enumerate(data.waiting_users):
            wait_time = data.user_wait_time[index]
            online = data.user_online_time[index] if data.user_online_time is not None else None
            waiting[username] = {
                "waitTime": wait_time,
                "weightMin": wait_time,
                "weightMsec": 0,
                "lastOnlineTime": format_timestamp(_aware(online)) if online is not None else now,
            }
        # the current level does not have a wait time
        if current_level is not None:
            waiting.pop(current_level["username"], None)
        for level in queue:
            if level["username"] not in waiting:
                waiting[level["username"]] = {"waitTime": 1, "weightMin": 1, "weightMsec": 0, "lastOnlineTime": now}

        upgraded = QueueV2.model_validate(
            {
                "version": QUEUE_V2_VERSION,
                "currentLevel": current_level,
                "queue": queue,
                "waiting": waiting,
                "extensions": {},
            }
        )
        hooks = [self._delete_legacy_hook(name) for name in QUEUE_V1_FILES.values()]
        return UpgradeResult(data=upgraded, hooks=hooks, warnings=warnings)

    def _delete_legacy_hook(self, file_name: str, in_data_dir: bool = False):
        def delete() -> None:
            self.repository.delete_legacy(file_name, in_data_dir)

        return delete

    # --- Generation 2 ---

    def _load_v2(self, raw: dict) -> QueueV2:
        try:
            return QueueV2.model_validate(raw)
        except ValidationError as exc:
            raise SaveFileError(f"{self.repository.snapshot_path()} is invalid:\n{exc}") from exc

    async def _resolve_identities(self, names: list[str]) -> dict[str, Submitter]:
        if self.identity_lookup is None:
            raise SaveFileError("Upgrading a save file with user names requires an identity lookup")
        resolved: dict[str, Submitter] = {}
        for chunk in _chunks(names, self.chunk_size):
            for user in await self.identity_lookup.resolve(chunk):
                if user.name is not None:
                    resolved[user.name.lower()] = user
        return resolved

    async def _upgrade_v2_to_v3(self, data: QueueV2) -> UpgradeResult:
        now = self.clock()
        entries = ([data.currentLevel] if data.currentLevel is not None else []) + data.queue
        names = sorted({entry.username for entry in entries} | set(data.waiting))
        identities = await self._resolve_identities(names)

        def identity(username: str) -> Submitter | None:
            user = identities.get(username.lower())
            if user is None:
                return None
            return Submitter(id=user.id, name=user.name, display_name=user.display_name)

        def upgrade(entry) -> QueueEntry | None:
            submitter = identity(entry.username)
            if submitter is None:
                return None
            return QueueEntry(
                type=entry.type,
                code=entry.code,
                data=entry.data,
                submitter=submitter,
                id=str(uuid.uuid4()),
                submitted=now,
            )

        lost_entries = []
        current = None
        if data.currentLevel is not None:
            current = upgrade(data.currentLevel)
            if current is None:
                lost_entries.append(data.currentLevel)
        queue = []
        for entry in data.queue:
            upgraded = upgrade(entry)
            if upgraded is None:
                lost_entries.append(entry)
            else:
                queue.append(upgraded)

        waiting = []
        lost_waiting = {}
        for username, record in data.waiting.items():
            user = identity(username)
            if user is None:
                lost_waiting[username] = record
                continue
            waiting.append(
                WeightRecord(
                    user=user,
                    waiting_minutes=record.waitTime,
                    weight_minutes=record.weightMin,
                    weight_milliseconds=record.weightMsec,
                    last_online=_aware(record.lastOnlineTime),
                )
            )

        warnings = []
        writes = []
        if lost_entries or lost_waiting:
            lost_users = {entry.username for entry in lost_entries} | set(lost_waiting)
            payload = {
                "version": data.version,
                "queue": [entry.model_dump(mode="json") for entry in lost_entries],
                "waiting": {name: record.model_dump(mode="json") for name, record in lost_waiting.items()},
            }
            timestamp = format_timestamp(now)
            writes.append(lambda: self.repository.write_lost_data(payload, timestamp))
            warnings.append(
                f"{len(lost_users)} users could not be found (deleted or renamed accounts); "
                f"their levels and wait times are moved to {self.repository.lost_data_path(timestamp)}."
            )

        snapshot = QueueSnapshot(
            current=current,
            queue=queue,
            waiting=waiting,
            extensions={name: ext.model_dump(mode="json") for name, ext in data.extensions.items()},
        )
        return UpgradeResult(data=snapshot, writes=writes, warnings=warnings)

    # --- Generation 3 ---

    def _load_v3(self, raw: dict) -> QueueSnapshot:
        try:
            state = QueueV3.model_validate(raw)
        except ValidationError as exc:
            raise SaveFileError(f"{self.repository.snapshot_path()} is invalid:\n{exc}") from exc
        now = self.clock()

        def entry(value: EntryV3) -> QueueEntry:
            # 3.0 files have no submission metadata yet
            return QueueEntry(
                type=value.type,
                code=value.code,
                data=value.data,
                submitter=Submitter(
                    id=value.submitter.id,
                    name=value.submitter.name,
                    display_name=value.submitter.displayName,
                ),
                id=value.id or str(uuid.uuid4()),
                submitted=_aware(value.submitted) if value.submitted is not None else now,
            )

        def record(value: WeightRecordV3) -> WeightRecord:
            return WeightRecord(
                user=Submitter(id=value.user.id, name=value.user.name, display_name=value.user.displayName),
                waiting_minutes=value.waiting.minutes,
                weight_minutes=value.weight.minutes,
                weight_milliseconds=value.weight.milliseconds,
                last_online=_aware(value.lastOnline),
            )

        return QueueSnapshot(
            current=entry(state.entries.current) if state.entries.current is not None else None,
            queue=[entry(value) for value in state.entries.queue],
            waiting=[record(value) for value in state.waiting],
            extensions={name: ext.model_dump(mode="json") for name, ext in state.extensions.items()},
            version=state.version,
        )

    # --- Custom codes extension ---

    async def _load_custom_codes(self, result: LoadResult) -> None:
        """Move custom codes from their older files into the extensions of the queue file."""
        extensions = result.data.extensions
        codes = await self._custom_codes_engine(extensions).load(lambda: None)
        if codes.data is None:
            return
        extensions[CUSTOM_CODES_EXTENSION] = codes.data
        result.save = result.save or codes.save
        result.hooks.extend(codes.hooks)
        result.warnings.extend(codes.warnings)

    def _custom_codes_engine(self, extensions: dict[str, Any]) -> UpgradeEngine:
        return UpgradeEngine(
            [
                MigrationStage(
                    name="custom codes 1 (name and code pairs)",
                    load=self._load_custom_codes_v1,
                    read=self._read_custom_codes_v1,
                    upgrade=self._upgrade_custom_codes_v1,
                ),
                MigrationStage(
                    name="custom codes 2 (extension file)",
                    load=self._validate_custom_codes,
                    read=lambda: self._read_legacy(CUSTOM_CODES_V2_FILE, in_data_dir=True),
                    upgrade=self._move_custom_codes_file,
                ),
                MigrationStage(
                    name="custom codes 2 (queue extension)",
                    load=self._validate_custom_codes,
                    major_version=2,
                    current_version=CUSTOM_CODES_VERSION,
                ),
            ],
            lambda: extensions.get(CUSTOM_CODES_EXTENSION),
            file_name=f"{self.repository.snapshot_path()} ({CUSTOM_CODES_EXTENSION} extension)",
        )

    def _read_custom_codes_v1(self) -> Any | None:
        for in_data_dir in (True, False):
            if self.repository.legacy_exists(CUSTOM_CODES_V1_FILE, in_data_dir):
                return self._read_legacy(CUSTOM_CODES_V1_FILE, in_data_dir)
        return None

    def _load_custom_codes_v1(self, raw: Any) -> dict[str, str]:
        try:
            return dict(CustomCodesV1.validate_python(raw))
        except ValidationError as exc:
            raise SaveFileError(f"{CUSTOM_CODES_V1_FILE} is invalid. Custom codes will not function.\n{exc}") from exc

    def _upgrade_custom_codes_v1(self, codes: dict[str, str]) -> UpgradeResult:
        # the first generation only stored smm2 codes
        data = {
            name: {"type": "smm2", "code": code}
            for name, code in codes.items()
            if code not in LEGACY_CUSTOM_CODE_LEVELS
        }
        upgraded = self._validate_custom_codes({"version": CUSTOM_CODES_VERSION, "data": data})
        hooks = [self._delete_legacy_hook(CUSTOM_CODES_V1_FILE, in_data_dir) for in_data_dir in (True, False)]
        return UpgradeResult(data=upgraded, hooks=hooks)

    def _move_custom_codes_file(self, codes: dict[str, Any]) -> UpgradeResult:
        return UpgradeResult(data=codes, hooks=[self._delete_legacy_hook(CUSTOM_CODES_V2_FILE, in_data_dir=True)])

    def _validate_custom_codes(self, raw: Any) -> dict[str, Any]:
        try:
            codes = CustomCodesV2.model_validate(raw)
            major, _ = parse_version(codes.version)
        except (ValidationError, ValueError) as exc:
            raise SaveFileError(f"Custom codes are invalid:\n{exc}") from exc
        if major != 2:
            raise IncompatibleSaveFileError(
                f'Custom codes: version "{codes.version}" is not compatible with custom codes version '
                f'"{CUSTOM_CODES_VERSION}". Save file is assumed to be incompatible. Did you downgrade versions?'
            )
        return codes.model_dump(mode="json", exclude_none=True)
