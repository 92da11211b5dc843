from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime

SECONDS_PER_DAY = 86400


def _iso_date(ts: int) -> str:
    return datetime.fromtimestamp(ts, UTC).date().isoformat()


@dataclass(frozen=True, slots=True)
class DateRange:
    """Inclusive UTC bounds in epoch seconds."""

    from_ts: int
    to_ts: int
    key: str = "custom"

    @property
    def total_days(self) -> int:
        return max(1, math.ceil((self.to_ts - self.from_ts) / SECONDS_PER_DAY))

    def contains(self, ts: int) -> bool:
        return self.from_ts <= ts <= self.to_ts

    def to_dict(self) -> dict:
        return {
            "type": self.key,
            "from": self.from_ts,
            "to": self.to_ts,
            "fromDate": _iso_date(self.from_ts),
            "toDate": _iso_date(self.to_ts),
            "totalDays": self.total_days,
        }


@dataclass(frozen=True, slots=True)
class CourseAccess:
    course_id: int
    course_name: str
    last_access: int

    def to_dict(self) -> dict:
        return {
            "courseId": self.course_id,
            "courseName": self.course_name,
            "lastaccess": self.last_access,
        }


@dataclass(slots=True)
class RosterUser:
    """A user merged across every course roster they appear in."""

    user_id: int
    username: str = "Unknown"
    fullname: str = "Unknown User"
    email: str = ""
    last_access: int = 0
    courses: list[CourseAccess] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ConsistencyRecord:
    user_id: int
    username: str
    fullname: str
    email: str
    unique_days: int
    course_access_count: int
    last_access: int
    consistency_percent: int
    courses: tuple[CourseAccess, ...] = ()

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "username": self.username,
            "fullname": self.fullname,
            "email": self.email,
            "uniqueDays": self.unique_days,
            "totalLogins": self.course_access_count,
            "consistency": self.consistency_percent,
            "lastAccess": datetime.fromtimestamp(self.last_access, UTC)
            .isoformat()
            .replace("+00:00", "Z"),
            "courses": [c.to_dict() for c in self.courses],
        }
