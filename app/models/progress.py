from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class StudentProgress:
    """Completion tally for one student in one course.

    tracked_count is what this student's report exposes; the denominator
    used for bucketing is the course-scoped total, which can be larger
    because the LMS omits conditionally hidden activities per student.
    error is set when the completion fetch failed and the zero tally is
    a fallback rather than an observation.
    """

    student_id: int
    name: str = ""
    email: str = ""
    completed_count: int = 0
    tracked_count: int = 0
    error: str | None = None

    def view(self, total_count: int) -> dict:
        out: dict = {
            "id": self.student_id,
            "name": self.name,
            "email": self.email,
            "completedActivities": self.completed_count,
            "totalActivities": total_count,
            "displayText": f"{self.completed_count}/{total_count} activities",
        }
        if self.error is not None:
            out["error"] = True
        return out


@dataclass(slots=True)
class RangeBucket:
    """One key of a completion histogram and the students that landed in it."""

    key: str
    label: str
    students: list[StudentProgress] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.students)

    def to_dict(self, total_count: int) -> dict:
        return {
            "count": self.count,
            "label": self.label,
            "students": [s.view(total_count) for s in self.students],
        }
