from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ClassSummary:
    """Unique video/pdf learners for one class (course section)."""

    class_label: str
    video_learners: int
    pdf_learners: int
    both_learners: int
    either_learners: int
    total_enrolled: int

    def to_dict(self) -> dict:
        return {
            "className": self.class_label,
            "videoCompleted": self.video_learners,
            "pdfCompleted": self.pdf_learners,
            "bothCompleted": self.both_learners,
            "eitherCompleted": self.either_learners,
            "totalEnrolled": self.total_enrolled,
        }


@dataclass(frozen=True, slots=True)
class LearnerCounts:
    video: int = 0
    pdf: int = 0
    both: int = 0
    either: int = 0

    def to_dict(self) -> dict:
        return {
            "video": self.video,
            "pdf": self.pdf,
            "both": self.both,
            "either": self.either,
        }
