"""Access-consistency counter.

The LMS only exposes one last-access timestamp per user, not an access
log, so the number of active days is estimated: a user active in the
range is credited with one day per course membership, capped at the
number of days in the range.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from app.analytics.bucketing import round_half_up
from app.models.access import CourseAccess, ConsistencyRecord, DateRange, RosterUser


@dataclass(frozen=True, slots=True)
class DayCount:
    days: int
    count: int

    @property
    def criteria(self) -> str:
        plural = "s" if self.days > 1 else ""
        return f"No. of students who logged in {self.days} day{plural}"

    def to_dict(self) -> dict:
        return {"days": self.days, "criteria": self.criteria, "count": self.count}


@dataclass(slots=True)
class ConsistencyResult:
    date_range: DateRange
    total_users: int
    users: list[ConsistencyRecord] = field(default_factory=list)
    day_wise: list[DayCount] = field(default_factory=list)

    @property
    def active_users(self) -> int:
        return len(self.users)

    @property
    def course_access_events(self) -> int:
        return sum(u.course_access_count for u in self.users)


def merge_roster(
    roster: RosterUser | None, course_id: int, course_name: str, user: Mapping[str, Any]
) -> RosterUser:
    """Fold one enrolled-user row of a course into the merged roster entry."""
    last_access = int(user.get("lastaccess") or 0)
    if roster is None:
        roster = RosterUser(
            user_id=int(user["id"]),
            username=user.get("username") or "Unknown",
            fullname=user.get("fullname") or "Unknown User",
            email=user.get("email") or "",
            last_access=last_access,
        )
    else:
        roster.last_access = max(roster.last_access, last_access)
    roster.courses.append(CourseAccess(course_id, course_name, last_access))
    return roster


def count_consistency(
    roster: Iterable[RosterUser], date_range: DateRange
) -> ConsistencyResult:
    """Score every user whose last access falls inside *date_range*."""
    total_days = date_range.total_days
    all_users = list(roster)

    records = []
    for user in all_users:
        if not date_range.contains(user.last_access):
            continue
        unique_days = min(len(user.courses), total_days)
        records.append(
            ConsistencyRecord(
                user_id=user.user_id,
                username=user.username,
                fullname=user.fullname,
                email=user.email,
                unique_days=unique_days,
                course_access_count=len(user.courses),
                last_access=user.last_access,
                consistency_percent=round_half_up(unique_days / total_days * 100),
                courses=tuple(user.courses),
            )
        )
    records.sort(key=lambda r: r.consistency_percent, reverse=True)

    return ConsistencyResult(
        date_range=date_range,
        total_users=len(all_users),
        users=records,
        day_wise=day_wise_breakdown(records, total_days),
    )


def day_wise_breakdown(
    records: Iterable[ConsistencyRecord], total_days: int
) -> list[DayCount]:
    """Users per exact day count, from total_days down to 1, zeros included."""
    tally: dict[int, int] = {}
    for record in records:
        tally[record.unique_days] = tally.get(record.unique_days, 0) + 1
    return [DayCount(days, tally.get(days, 0)) for days in range(total_days, 0, -1)]
