"""
Weight record domain model: per-submitter wait time and lottery weight.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime

from domain.models.entry import format_timestamp, parse_timestamp, truncate_timestamp, utc_now
from domain.models.submitter import Submitter

MILLISECONDS_PER_MINUTE = 60000


@dataclass
class WeightRecord:
    """
    Accrued wait time of one submitter.

    ``weight_milliseconds`` is always kept below one minute; overflow is
    carried into ``weight_minutes``.
    """

    user: Submitter
    waiting_minutes: int = 1
    weight_minutes: int = 1
    weight_milliseconds: int = 0
    last_online: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        self.last_online = truncate_timestamp(self.last_online)

    @classmethod
    def create(cls, user: Submitter, now: datetime | None = None) -> "WeightRecord":
        return cls(user=user, last_online=now or utc_now())

    def add_one_minute(self, multiplier: float = 1.0, now: datetime | None = None) -> None:
        """Account one minute of online waiting, weighted by multiplier."""
        self.weight_minutes += math.floor(multiplier)
        self.weight_milliseconds += round((multiplier % 1) * MILLISECONDS_PER_MINUTE)
        while self.weight_milliseconds >= MILLISECONDS_PER_MINUTE:
            self.weight_milliseconds -= MILLISECONDS_PER_MINUTE
            self.weight_minutes += 1
        self.waiting_minutes += 1
        self.last_online = truncate_timestamp(now or utc_now())

    def weight(self) -> int:
        # round to nearest minute
        return self.weight_minutes + (1 if self.weight_milliseconds >= 30000 else 0)

    def rename(self, user: Submitter) -> bool:
        if not self.user.equals(user):
            return False
        changed = (user.name, user.display_name) != (self.user.name, self.user.display_name)
        if changed:
            self.user = Submitter(
                id=self.user.id if self.user.id is not None else user.id,
                name=user.name if user.name is not None else self.user.name,
                display_name=user.display_name if user.display_name is not None else self.user.display_name,
            )
        return changed

    def to_dict(self) -> dict:
        return {
            "user": self.user.to_dict(),
            "waiting": {"minutes": self.waiting_minutes},
            "weight": {"minutes": self.weight_minutes, "milliseconds": self.weight_milliseconds},
            "lastOnline": format_timestamp(self.last_online),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WeightRecord":
        return cls(
            user=Submitter.from_dict(data["user"]),
            waiting_minutes=data["waiting"]["minutes"],
            weight_minutes=data["weight"]["minutes"],
            weight_milliseconds=data["weight"]["milliseconds"],
            last_online=parse_timestamp(data["lastOnline"]),
        )
