"""Request-scoped report builders.

A ReportBuilder is created per HTTP request with that user's LMS client
and composes the analytics components:

    course structure ──▶ classifier ──▶ ActivityIndex
    roster ──▶ scheduler(fetch completion per student) ──▶ events
    events × ActivityIndex ──▶ bucketer / learner dedup
    roster × date range ──▶ consistency counter

Nothing is cached between requests.  Per-student failures degrade to
fallbacks (recorded in diagnostics); a failed roster or course-structure
fetch raises UpstreamError for that course.  The all-courses variants
log and skip a failing course instead.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, TypeVar

from app.analytics.bucketing import (
    BucketPolicy,
    CourseTotal,
    build_buckets,
    round_half_up,
    tally_student,
    validate_bucket_key,
)
from app.analytics.classifier import ActivityIndex, build_activity_index, parse_completion_events
from app.analytics.config import AnalyticsConfig
from app.analytics.consistency import ConsistencyResult, count_consistency, merge_roster
from app.analytics.date_range import resolve_date_range
from app.analytics.diagnostics import ReportDiagnostics
from app.analytics.errors import UpstreamError
from app.core.logging import course_context
from app.analytics.learners import CourseLearners
from app.analytics.scheduler import BatchOutcome, run_in_batches
from app.models.access import DateRange, RosterUser
from app.models.activity import CompletionEvent
from app.models.engagement import ClassSummary, LearnerCounts
from app.models.progress import RangeBucket, StudentProgress
from app.services.lms_client import LmsClient

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT")
T = TypeVar("T")

CONSISTENCY_NOTE = (
    "Data based on course enrollments and last access times. Metrics show "
    "course activity patterns, not authentication login events."
)
EMPTY_CONSISTENCY_NOTE = "No data available for this date range"
ENGAGEMENT_NOTE = "Class-wise Video + PDF completion breakdown."
COMPLETION_NOTE = "Completion ranges over classified learning activities."

# What parsing a malformed LMS payload raises.
PAYLOAD_ERRORS = (AttributeError, KeyError, TypeError, ValueError)
# A course failing with one of these is skipped by the all-courses reports.
COURSE_ERRORS = (UpstreamError, *PAYLOAD_ERRORS)


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def _iso_day(ts: int) -> str:
    return datetime.fromtimestamp(ts, UTC).date().isoformat()


def _course_label(course: Mapping[str, Any]) -> str:
    return course.get("fullname") or f"Course {course.get('id')}"


def _int_id(row: Mapping[str, Any]) -> int | None:
    try:
        return int(row["id"])
    except (KeyError, TypeError, ValueError):
        return None


def _completion_status(payload: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return (payload or {}).get("completionstatus") or {}


# ---------------------------------------------------------------------------
# Report values
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class CourseBreakdown:
    """Completion-range histogram of one course."""

    course_id: int
    course_name: str
    policy: BucketPolicy
    total_tracked: int
    roster_size: int
    students: list[StudentProgress]
    buckets: dict[str, RangeBucket]
    diagnostics: ReportDiagnostics
    shortname: str = ""

    @property
    def total_enrolled(self) -> int:
        return len(self.students)

    @property
    def fully_completed(self) -> int:
        """Students who completed every tracked activity, whatever the policy."""
        if self.total_tracked <= 0:
            return 0
        return sum(1 for s in self.students if s.completed_count >= self.total_tracked)

    def to_dict(self) -> dict:
        return {
            "courseId": self.course_id,
            "courseName": self.course_name,
            "shortname": self.shortname,
            "totalEnrolled": self.total_enrolled,
            "rosterSize": self.roster_size,
            "totalTrackedActivities": self.total_tracked,
            "policy": self.policy.value,
            "completionRanges": {
                key: bucket.to_dict(self.total_tracked)
                for key, bucket in self.buckets.items()
            },
            "diagnostics": self.diagnostics.to_dict(),
        }


@dataclass(slots=True)
class ClassEngagement:
    """Unique video/pdf learners of one course, per class and course-wide."""

    course_id: int
    course_name: str
    total_enrolled: int
    classes: list[ClassSummary]
    course_unique: LearnerCounts
    diagnostics: ReportDiagnostics
    shortname: str = ""

    def to_dict(self) -> dict:
        return {
            "courseId": self.course_id,
            "courseName": self.course_name,
            "shortname": self.shortname,
            "totalEnrolled": self.total_enrolled,
            "totalClasses": len(self.classes),
            "summary": {
                "uniqueVideoLearners": self.course_unique.video,
                "uniquePdfLearners": self.course_unique.pdf,
                "totalClasses": len(self.classes),
            },
            "classes": [c.to_dict() for c in self.classes],
            "courseUniqueLearners": self.course_unique.to_dict(),
            "diagnostics": self.diagnostics.to_dict(),
        }


def consistency_to_dict(result: ConsistencyResult) -> dict:
    active = result.active_users
    events = result.course_access_events
    return {
        "dateRange": result.date_range.to_dict(),
        "summary": {
            "totalUniqueUsers": result.total_users,
            "uniqueLoggedInUsers": active,
            "activeUsers": active,
            "consistentUsers": active,
            "totalCourseAccessEvents": events,
            "metrics": {
                "totalCourseAccess": events,
                "uniqueUsers": active,
                "averageAccessPerUser": round(events / active, 1) if active else 0,
            },
        },
        "dayWiseBreakdown": [d.to_dict() for d in result.day_wise],
        "users": [u.to_dict() for u in result.users],
        "note": CONSISTENCY_NOTE if active else EMPTY_CONSISTENCY_NOTE,
    }


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class ReportBuilder:
    """Entry points for every report, bound to one LMS client."""

    def __init__(
        self,
        client: LmsClient,
        config: AnalyticsConfig | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.client = client
        self.config = config or AnalyticsConfig()
        self._clock = clock

    def _now(self) -> datetime | None:
        return self._clock() if self._clock else None

    def _policy(self, policy: BucketPolicy | str | None) -> BucketPolicy:
        if policy is None:
            return self.config.bucket_policy
        return BucketPolicy(policy)

    async def _batch(
        self,
        items: Sequence[ItemT],
        fetch: Callable[[ItemT], Awaitable[T]],
        *,
        fallback: Callable[[ItemT, Exception], T],
        operation: str,
        item_id: Callable[[ItemT], int],
        diagnostics: ReportDiagnostics,
    ) -> list[BatchOutcome[T]]:
        outcomes = await run_in_batches(
            items,
            fetch,
            fallback=fallback,
            batch_size=self.config.batch_size,
            pause_seconds=self.config.pause_seconds,
            timeout=self.config.fetch_timeout,
        )
        for item, outcome in zip(items, outcomes):
            if not outcome.ok:
                diagnostics.fetch_failed(operation, item_id(item), outcome.error or "")
        return outcomes

    async def _course_inputs(self, course_id: int) -> tuple[ActivityIndex, list[dict]]:
        structure = await self.client.fetch_course_structure(course_id)
        try:
            index = build_activity_index(structure or [])
        except PAYLOAD_ERRORS as exc:
            raise UpstreamError(
                f"malformed course structure ({exc!r})", function="core_course_get_contents"
            ) from exc
        roster = await self.client.fetch_enrolled_users(course_id)
        students = [u for u in roster or [] if _int_id(u) is not None]
        return index, students

    async def _fetch_completions(
        self, course_id: int, students: list[dict], diagnostics: ReportDiagnostics
    ) -> list[BatchOutcome[dict | None]]:
        return await self._batch(
            students,
            lambda u: self.client.fetch_completion_status(course_id, int(u["id"])),
            fallback=lambda u, exc: None,
            operation="completion_status",
            item_id=lambda u: int(u["id"]),
            diagnostics=diagnostics,
        )

    def _student_events(
        self, student_id: int, payload: Any, diagnostics: ReportDiagnostics
    ) -> list[CompletionEvent] | None:
        """Parse one completion payload; None when it is malformed."""
        try:
            return parse_completion_events(student_id, payload)
        except PAYLOAD_ERRORS as exc:
            diagnostics.fetch_failed(
                "completion_status", student_id, f"malformed payload ({exc!r})"
            )
            return None

    async def _user_courses(self, user_id: int) -> list[dict]:
        courses = await self.client.fetch_courses(user_id)
        return [c for c in courses or [] if _int_id(c) is not None]

    async def resolve_course_name(self, user_id: int, course_id: int) -> str:
        """Look the course name up in the user's course list."""
        try:
            courses = await self.client.fetch_courses(user_id)
        except UpstreamError as exc:
            logger.warning("Course list unavailable  course_id=%s error=%s", course_id, exc)
            courses = []
        for course in courses:
            if _int_id(course) == course_id:
                return _course_label(course)
        return f"Course {course_id}"

    # ------------------------------------------------------------------
    # Completion ranges
    # ------------------------------------------------------------------

    async def build_course_completion_breakdown(
        self,
        course_id: int,
        *,
        policy: BucketPolicy | str | None = None,
        course_name: str | None = None,
    ) -> CourseBreakdown:
        with course_context(course_id):
            return await self._completion_breakdown(
                course_id, self._policy(policy), course_name
            )

    async def _completion_breakdown(
        self, course_id: int, active_policy: BucketPolicy, course_name: str | None
    ) -> CourseBreakdown:
        diagnostics = ReportDiagnostics(course_id=course_id)
        index, students = await self._course_inputs(course_id)
        outcomes = await self._fetch_completions(course_id, students, diagnostics)

        total = CourseTotal()
        progress: list[StudentProgress] = []
        for user, outcome in zip(students, outcomes):
            student_id = int(user["id"])
            name = user.get("fullname") or ""
            email = user.get("email") or ""
            events = (
                self._student_events(student_id, outcome.value, diagnostics)
                if outcome.ok
                else None
            )
            if events is None:
                progress.append(
                    StudentProgress(
                        student_id, name, email, error=outcome.error or "malformed payload"
                    )
                )
                continue

            if not events:
                diagnostics.student_skipped(student_id)
                continue

            student, unmatched = tally_student(
                events, index, student_id=student_id, name=name, email=email
            )
            diagnostics.classification_mismatch(student_id, unmatched)
            total.fold(student.tracked_count)
            progress.append(student)

        breakdown = CourseBreakdown(
            course_id=course_id,
            course_name=course_name or f"Course {course_id}",
            policy=active_policy,
            total_tracked=total.value,
            roster_size=len(students),
            students=progress,
            buckets=build_buckets(progress, total.value, active_policy),
            diagnostics=diagnostics,
        )
        logger.info(
            "Completion breakdown  course_id=%s students=%d tracked=%d policy=%s",
            course_id,
            breakdown.total_enrolled,
            breakdown.total_tracked,
            active_policy.value,
        )
        return breakdown

    async def build_students_in_range(
        self,
        course_id: int,
        range_key: str,
        *,
        policy: BucketPolicy | str | None = None,
        course_name: str | None = None,
    ) -> dict:
        active_policy = self._policy(policy)
        validate_bucket_key(range_key, active_policy)
        breakdown = await self.build_course_completion_breakdown(
            course_id, policy=active_policy, course_name=course_name
        )
        bucket = breakdown.buckets[range_key]
        return {
            "courseId": breakdown.course_id,
            "courseName": breakdown.course_name,
            "rangeKey": range_key,
            "rangeLabel": bucket.label,
            "policy": active_policy.value,
            "count": bucket.count,
            "students": [s.view(breakdown.total_tracked) for s in bucket.students],
            "totalTrackedActivities": breakdown.total_tracked,
        }

    async def build_all_courses_completion_breakdown(
        self, user_id: int, *, policy: BucketPolicy | str | None = None
    ) -> dict:
        active_policy = self._policy(policy)
        courses = await self.client.fetch_courses(user_id)

        results: list[CourseBreakdown] = []
        for position, course in enumerate(courses or [], start=1):
            course_id = _int_id(course)
            if course_id is None:
                continue
            logger.info("[%d/%d] Completion breakdown  course_id=%s", position, len(courses), course_id)
            try:
                breakdown = await self.build_course_completion_breakdown(
                    course_id, policy=active_policy, course_name=_course_label(course)
                )
            except COURSE_ERRORS as exc:
                logger.warning("Skipping course  course_id=%s error=%s", course_id, exc)
                continue
            breakdown.shortname = course.get("shortname") or ""
            results.append(breakdown)

        total_enrolled = sum(r.total_enrolled for r in results)
        fully_completed = sum(r.fully_completed for r in results)
        return {
            "summary": {
                "totalCourses": len(results),
                "totalEnrolled": total_enrolled,
                "fullyCompleted": fully_completed,
                "completionRate": (
                    round(fully_completed / total_enrolled * 100, 2) if total_enrolled else 0
                ),
            },
            "policy": active_policy.value,
            "courses": [r.to_dict() for r in results],
            "metadata": {
                "fetchedAt": _utc_now_iso(),
                "fetchedBy": user_id,
                "note": COMPLETION_NOTE,
            },
        }

    # ------------------------------------------------------------------
    # Class engagement
    # ------------------------------------------------------------------

    async def build_class_engagement_summary(
        self, course_id: int, *, course_name: str | None = None
    ) -> ClassEngagement:
        with course_context(course_id):
            return await self._class_engagement(course_id, course_name)

    async def _class_engagement(
        self, course_id: int, course_name: str | None
    ) -> ClassEngagement:
        diagnostics = ReportDiagnostics(course_id=course_id)
        index, students = await self._course_inputs(course_id)
        outcomes = await self._fetch_completions(course_id, students, diagnostics)

        learners = CourseLearners(index.class_labels)
        for user, outcome in zip(students, outcomes):
            if not outcome.ok:
                continue
            student_id = int(user["id"])
            events = self._student_events(student_id, outcome.value, diagnostics)
            if events is None:
                continue
            if not events:
                diagnostics.student_skipped(student_id)
                continue

            unmatched = 0
            for event in events:
                activity = index.match(event)
                if activity is None:
                    unmatched += 1
                elif event.is_complete:
                    learners.record(student_id, activity)
            diagnostics.classification_mismatch(student_id, unmatched)

        engagement = ClassEngagement(
            course_id=course_id,
            course_name=course_name or f"Course {course_id}",
            total_enrolled=len(students),
            classes=learners.class_summaries(len(students)),
            course_unique=learners.course_unique(),
            diagnostics=diagnostics,
        )
        logger.info(
            "Class engagement  course_id=%s classes=%d video=%d pdf=%d",
            course_id,
            len(engagement.classes),
            engagement.course_unique.video,
            engagement.course_unique.pdf,
        )
        return engagement

    async def build_all_courses_engagement(self, user_id: int) -> dict:
        courses = await self.client.fetch_courses(user_id)

        results: list[ClassEngagement] = []
        for course in courses or []:
            course_id = _int_id(course)
            if course_id is None:
                continue
            try:
                engagement = await self.build_class_engagement_summary(
                    course_id, course_name=_course_label(course)
                )
            except COURSE_ERRORS as exc:
                logger.warning("Skipping course  course_id=%s error=%s", course_id, exc)
                continue
            engagement.shortname = course.get("shortname") or ""
            results.append(engagement)

        return {
            "summary": {
                "totalCourses": len(results),
                "totalEnrolled": sum(r.total_enrolled for r in results),
                # Sums of per-course unique counts: a student in two
                # courses is counted once per course.
                "totalUniqueVideoLearners": sum(r.course_unique.video for r in results),
                "totalUniquePdfLearners": sum(r.course_unique.pdf for r in results),
            },
            "courses": [r.to_dict() for r in results],
            "metadata": {
                "fetchedAt": _utc_now_iso(),
                "fetchedBy": user_id,
                "note": ENGAGEMENT_NOTE,
            },
        }

    # ------------------------------------------------------------------
    # Access consistency and dashboard
    # ------------------------------------------------------------------

    def resolve_range(
        self, key: str | None, start: str | None = None, end: str | None = None
    ) -> DateRange:
        return resolve_date_range(
            key, start, end, now=self._now(), lenient=self.config.lenient_ranges
        )

    async def _merged_roster(
        self, courses: list[dict], diagnostics: ReportDiagnostics
    ) -> list[RosterUser]:
        courses = [c for c in courses if _int_id(c) is not None]
        outcomes = await self._batch(
            courses,
            lambda c: self.client.fetch_enrolled_users(int(c["id"])),
            fallback=lambda c, exc: [],
            operation="enrolled_users",
            item_id=lambda c: int(c["id"]),
            diagnostics=diagnostics,
        )
        roster: dict[int, RosterUser] = {}
        for course, outcome in zip(courses, outcomes):
            course_id = int(course["id"])
            for user in outcome.value or []:
                user_id = _int_id(user)
                if user_id is None:
                    continue
                roster[user_id] = merge_roster(
                    roster.get(user_id), course_id, _course_label(course), user
                )
        return list(roster.values())

    async def build_consistency_report(
        self,
        user_id: int,
        date_range_key: str | None,
        start: str | None = None,
        end: str | None = None,
    ) -> dict:
        date_range = self.resolve_range(date_range_key, start, end)
        diagnostics = ReportDiagnostics()
        courses = await self.client.fetch_courses(user_id)
        roster = await self._merged_roster(courses or [], diagnostics)

        result = count_consistency(roster, date_range)
        logger.info(
            "Consistency report  range=%s users=%d active=%d",
            date_range.key,
            result.total_users,
            result.active_users,
        )
        report = consistency_to_dict(result)
        report["diagnostics"] = diagnostics.to_dict()
        return report

    async def list_courses_with_completion(self, user_id: int) -> list[dict]:
        courses = await self._user_courses(user_id)
        diagnostics = ReportDiagnostics()
        outcomes = await self._batch(
            courses,
            lambda c: self.client.fetch_course_completion(int(c["id"]), user_id),
            fallback=lambda c, exc: None,
            operation="course_completion",
            item_id=lambda c: int(c["id"]),
            diagnostics=diagnostics,
        )
        return [
            {
                "id": int(course["id"]),
                "fullname": course.get("fullname") or "",
                "shortname": course.get("shortname") or "",
                "summary": course.get("summary") or "",
                "categoryname": course.get("categoryname") or "",
                "progress": course.get("progress") or 0,
                "completed": bool(_completion_status(outcome.value).get("completed")),
                "timecreated": course.get("timecreated"),
                "timemodified": course.get("timemodified"),
            }
            for course, outcome in zip(courses, outcomes)
        ]

    async def build_dashboard_overview(
        self,
        user_id: int,
        date_range_key: str | None,
        start: str | None = None,
        end: str | None = None,
    ) -> dict:
        """Headline numbers for the dashboard.

        The LMS exposes no login log through the web service, so logins
        are approximated by last-access timestamps: each distinct
        (user, lastaccess) pair inside the range is one login event.
        """
        date_range = self.resolve_range(date_range_key, start, end)
        diagnostics = ReportDiagnostics()
        courses = await self._user_courses(user_id)

        roster = await self._batch(
            courses,
            lambda c: self.client.fetch_enrolled_users(int(c["id"])),
            fallback=lambda c, exc: [],
            operation="enrolled_users",
            item_id=lambda c: int(c["id"]),
            diagnostics=diagnostics,
        )
        completions = await self._batch(
            courses,
            lambda c: self.client.fetch_course_completion(int(c["id"]), user_id),
            fallback=lambda c, exc: None,
            operation="course_completion",
            item_id=lambda c: int(c["id"]),
            diagnostics=diagnostics,
        )

        daily: dict[str, dict[str, Any]] = {}

        def day(ts: int) -> dict[str, Any]:
            return daily.setdefault(
                _iso_day(ts), {"enrollments": 0, "completions": 0, "users": set()}
            )

        logins: set[tuple[int, int]] = set()
        for outcome in roster:
            for user in outcome.value or []:
                uid = _int_id(user)
                last_access = int(user.get("lastaccess") or 0)
                if uid is None or not date_range.contains(last_access):
                    continue
                logins.add((uid, last_access))
                day(last_access)["users"].add(uid)

        new_enrollments = 0
        for course in courses:
            created = int(course.get("timecreated") or 0)
            if created and date_range.contains(created):
                new_enrollments += 1
                day(created)["enrollments"] += 1

        completed_courses = 0
        course_rows = []
        for course, outcome in zip(courses, completions):
            status = _completion_status(outcome.value)
            completed = bool(status.get("completed"))
            completed_courses += completed
            finished_at = int(status.get("timecompleted") or 0)
            if finished_at and date_range.contains(finished_at):
                day(finished_at)["completions"] += 1
            course_rows.append(
                {
                    "id": int(course["id"]),
                    "name": course.get("fullname") or "",
                    "progress": course.get("progress") or 0,
                    "completed": completed,
                    "enrolledDate": course.get("timecreated"),
                }
            )

        return {
            "overview": {
                "totalLogins": len(logins),
                "uniqueUsers": len({uid for uid, _ in logins}),
                "newEnrollments": new_enrollments,
                "completionRate": (
                    round_half_up(completed_courses / len(courses) * 100) if courses else 0
                ),
            },
            "dailyActivity": [
                {
                    "date": date,
                    "activeUsers": len(values["users"]),
                    "enrollments": values["enrollments"],
                    "completions": values["completions"],
                }
                for date, values in sorted(daily.items())
            ],
            "courses": course_rows,
            "dateRange": date_range.to_dict(),
            "diagnostics": diagnostics.to_dict(),
        }
