"""
Pydantic models for every generation of the queue save file.

Generation 1: several files with flat arrays (queso.save, waitingUsers.txt, ...)
Generation 2: a single object keyed by user names (version "2.x")
Generation 3: typed entries with stable user identities (version "3.x")

The custom codes extension has its own generations: a list of
(name, level code) pairs in customCodes.json, then versioned data in
extensions/customcode.json, then the same data inside the queue file.
"""

import re
from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, Field, TypeAdapter, model_validator

NonNegativeInt = Annotated[int, Field(ge=0)]
Milliseconds = Annotated[int, Field(ge=0, lt=60000)]

VERSION_PATTERN = re.compile(r"^(\d+)(?:\.(\d+))?")


def parse_version(version: str) -> tuple[int, int]:
    """
    Split a save file version into (major, minor).

    Raises:
        ValueError: If the version does not start with a number
    """
    match = VERSION_PATTERN.match(version)
    if match is None:
        raise ValueError(f'Invalid save file version "{version}"')
    return int(match.group(1)), int(match.group(2) or 0)


# --- Generation 1 ---


class LevelV1(BaseModel):
    code: str = Field(..., description="The level code.")
    submitter: str = Field(..., description="Display name of the submitter.")
    username: str | None = Field(None, description="Login name of the submitter.")
    current_level: bool = Field(False, description="Whether this level is currently being played.")


QueueV1 = TypeAdapter(list[LevelV1])
WaitingUsersV1 = TypeAdapter(list[str])
UserWaitTimeV1 = TypeAdapter(list[NonNegativeInt])
UserOnlineTimeV1 = TypeAdapter(list[datetime] | None)


# --- Generation 2 ---


class WaitingV2(BaseModel):
    waitTime: NonNegativeInt = Field(..., description="Wait time in minutes.")
    weightMin: NonNegativeInt | None = Field(None, description="Weighted wait time in minutes (since 2.1).")
    weightMsec: Milliseconds | None = Field(None, description="Milliseconds part of the weight (since 2.1).")
    lastOnlineTime: datetime = Field(..., description="When the user was last seen online.")

    @model_validator(mode="after")
    def default_weight(self):
        # 2.0 files only know the wait time
        if self.weightMin is None:
            self.weightMin = self.waitTime
        if self.weightMsec is None:
            self.weightMsec = 0
        return self


class SubmittedEntryV2(BaseModel):
    submitter: str = Field(..., description="Display name of the submitter.")
    username: str = Field(..., description="Login name of the submitter.")
    code: str | None = None
    type: str | None = None
    data: Any = None


class ExtensionData(BaseModel):
    version: str
    data: Any = None


class QueueV2(BaseModel):
    version: str
    currentLevel: SubmittedEntryV2 | None
    queue: list[SubmittedEntryV2]
    waiting: dict[str, WaitingV2]
    extensions: dict[str, ExtensionData] = Field(default_factory=dict)


# --- Generation 3 ---


class UserV3(BaseModel):
    id: str
    name: str
    displayName: str


class EntryV3(BaseModel):
    id: str | None = Field(None, description="Submission id (required since 3.1).")
    type: str | None = None
    code: str | None = None
    data: Any = None
    submitter: UserV3
    submitted: datetime | None = Field(None, description="Submission time (required since 3.1).")


class WaitingMinutesV3(BaseModel):
    minutes: NonNegativeInt


class WeightV3(BaseModel):
    minutes: NonNegativeInt
    milliseconds: Milliseconds


class WeightRecordV3(BaseModel):
    user: UserV3
    waiting: WaitingMinutesV3
    weight: WeightV3
    lastOnline: datetime


class EntriesV3(BaseModel):
    current: EntryV3 | None
    queue: list[EntryV3]


class QueueV3(BaseModel):
    version: str
    entries: EntriesV3
    waiting: list[WeightRecordV3]
    extensions: dict[str, ExtensionData] = Field(default_factory=dict)

    @model_validator(mode="after")
    def require_submission_metadata(self):
        _, minor = parse_version(self.version)
        if minor >= 1:
            entries = ([self.entries.current] if self.entries.current else []) + self.entries.queue
            for entry in entries:
                if entry.id is None or entry.submitted is None:
                    raise ValueError(f"Entry {entry.code!r} is missing its id or submission time")
        return self


# --- Custom codes extension ---

CUSTOM_CODES_EXTENSION = "customcode"
CUSTOM_CODES_VERSION = "2.0"

CustomCodesV1 = TypeAdapter(list[tuple[str, str]])


class StoredEntryV2(BaseModel):
    type: str | None = None
    code: str | None = None
    data: Any = None


class CustomCodesV2(BaseModel):
    version: str
    data: dict[str, StoredEntryV2] = Field(default_factory=dict, description="Entries keyed by custom code.")
