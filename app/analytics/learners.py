"""Unique-learner deduplication per class and per course.

Two numbers are reported side by side and must not be collapsed:

  per class    – a student who finished a video in class A counts once
                 for class A, however many videos they finished there
  course-wide  – the union over all classes; a student who finished a
                 video in ten classes counts once, not ten times
"""

from __future__ import annotations

from dataclasses import dataclass, field

from app.models.activity import ClassifiedActivity
from app.models.engagement import ClassSummary, LearnerCounts


@dataclass(slots=True)
class LearnerSets:
    video: set[int] = field(default_factory=set)
    pdf: set[int] = field(default_factory=set)

    def counts(self) -> LearnerCounts:
        return LearnerCounts(
            video=len(self.video),
            pdf=len(self.pdf),
            both=len(self.video & self.pdf),
            either=len(self.video | self.pdf),
        )


class CourseLearners:
    """Accumulates qualifying completions into per-class learner sets."""

    def __init__(self, class_labels: list[str] | None = None) -> None:
        self._classes: dict[str, LearnerSets] = {}
        for label in class_labels or []:
            self._ensure(label)

    def _ensure(self, label: str) -> LearnerSets:
        sets = self._classes.get(label)
        if sets is None:
            sets = self._classes[label] = LearnerSets()
        return sets

    @property
    def class_labels(self) -> list[str]:
        return list(self._classes)

    def record(self, student_id: int, activity: ClassifiedActivity) -> None:
        """Count *student_id* as a learner of the activity's class.

        Activities in the "other" category do not make anyone a learner.
        """
        sets = self._ensure(activity.class_label)
        if activity.category == "video":
            sets.video.add(student_id)
        elif activity.category == "pdf":
            sets.pdf.add(student_id)

    def class_summaries(self, total_enrolled: int) -> list[ClassSummary]:
        summaries = []
        for label, sets in self._classes.items():
            counts = sets.counts()
            summaries.append(
                ClassSummary(
                    class_label=label,
                    video_learners=counts.video,
                    pdf_learners=counts.pdf,
                    both_learners=counts.both,
                    either_learners=counts.either,
                    total_enrolled=total_enrolled,
                )
            )
        return summaries

    def course_unique(self) -> LearnerCounts:
        merged = LearnerSets()
        for sets in self._classes.values():
            merged.video |= sets.video
            merged.pdf |= sets.pdf
        return merged.counts()
