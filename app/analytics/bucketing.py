"""Completion-range bucketing.

Two bucketing policies exist and they are NOT interchangeable:

  PERCENTAGE  (6 buckets)   0 | low <25% | mid <50% | high <75% | veryhigh | full
  FIXED_WIDTH (5 buckets)   0-20 | 21-40 | 41-60 | 61-80 | 81-100  (rounded percent)

A report picks exactly one policy and says which one it used.

The denominator is course-scoped: the largest number of tracked
activities seen for any student of the course.  Per-student reports
leave out conditionally hidden activities, so a single student's own
count would overstate their progress.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from enum import Enum

from app.analytics.classifier import ActivityIndex
from app.analytics.errors import InvalidBucketKey
from app.models.activity import CompletionEvent
from app.models.progress import RangeBucket, StudentProgress


class BucketPolicy(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_WIDTH = "fixed_width"


_PERCENTAGE_LABELS = {
    "0": "0 activities completed",
    "low": "1-25% completed",
    "mid": "25-50% completed",
    "high": "50-75% completed",
    "veryhigh": "75-99% completed",
    "full": "All activities completed",
}

# (key, inclusive upper bound on the rounded percent)
_FIXED_WIDTH_BOUNDS = (
    ("0-20", 20),
    ("21-40", 40),
    ("41-60", 60),
    ("61-80", 80),
    ("81-100", 100),
)
_FIXED_WIDTH_LABELS = {key: f"{key}% completed" for key, _ in _FIXED_WIDTH_BOUNDS}


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (not banker's rounding)."""
    return math.floor(value + 0.5)


def bucket_labels(policy: BucketPolicy) -> dict[str, str]:
    """Every key of *policy*, in display order, mapped to its label."""
    if policy is BucketPolicy.PERCENTAGE:
        return dict(_PERCENTAGE_LABELS)
    return dict(_FIXED_WIDTH_LABELS)


def _percentage_key(completed: int, total: int) -> str:
    if completed == 0:
        return "0"
    if total > 0 and completed >= total:
        return "full"
    percent = completed / total * 100 if total > 0 else 0.0
    if percent < 25:
        return "low"
    if percent < 50:
        return "mid"
    if percent < 75:
        return "high"
    return "veryhigh"


def _fixed_width_key(completed: int, total: int) -> str:
    percent = round_half_up(completed / total * 100) if total > 0 else 0
    for key, upper in _FIXED_WIDTH_BOUNDS:
        if percent <= upper:
            return key
    return _FIXED_WIDTH_BOUNDS[-1][0]


def bucket_key(completed: int, total: int, policy: BucketPolicy) -> str:
    """Return the single bucket key for a (completed, total) pair."""
    if policy is BucketPolicy.PERCENTAGE:
        return _percentage_key(completed, total)
    return _fixed_width_key(completed, total)


def validate_bucket_key(key: str, policy: BucketPolicy) -> str:
    labels = bucket_labels(policy)
    if key not in labels:
        raise InvalidBucketKey(
            f"Invalid range {key!r}. Use: {', '.join(labels)}"
        )
    return key


def build_buckets(
    progress: Sequence[StudentProgress], total: int, policy: BucketPolicy
) -> dict[str, RangeBucket]:
    """Distribute students over every bucket of *policy*.

    Every key is present, empty buckets included.  Inside a bucket the
    students are ordered by completed count, highest first; sort() is
    stable so ties keep their input order.
    """
    buckets = {
        key: RangeBucket(key=key, label=label)
        for key, label in bucket_labels(policy).items()
    }
    for student in progress:
        buckets[bucket_key(student.completed_count, total, policy)].students.append(
            student
        )
    for bucket in buckets.values():
        bucket.students.sort(key=lambda s: s.completed_count, reverse=True)
    return buckets


def tally_student(
    events: Iterable[CompletionEvent],
    index: ActivityIndex,
    *,
    student_id: int,
    name: str = "",
    email: str = "",
) -> tuple[StudentProgress, int]:
    """Intersect a student's events with the classified activities.

    Returns the student's progress and the number of events that matched
    no classified activity (for diagnostics only).
    """
    tracked: set[int] = set()
    completed: set[int] = set()
    unmatched = 0

    for event in events:
        activity = index.match(event)
        if activity is None:
            unmatched += 1
            continue
        tracked.add(activity.id)
        if event.is_complete:
            completed.add(activity.id)

    progress = StudentProgress(
        student_id=student_id,
        name=name,
        email=email,
        completed_count=len(completed),
        tracked_count=len(tracked),
    )
    return progress, unmatched


class CourseTotal:
    """Running maximum of tracked activities across a course's students.

    The value only grows while students are folded in; read it once the
    whole roster has been scanned.  Folding the same students again
    leaves it unchanged.
    """

    __slots__ = ("value",)

    def __init__(self) -> None:
        self.value = 0

    def fold(self, tracked_count: int) -> int:
        if tracked_count > self.value:
            self.value = tracked_count
        return self.value
