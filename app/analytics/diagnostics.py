"""Diagnostics side-channel for report builds.

Reports never read these numbers to compute anything.  They exist so
operators can tell a genuinely empty bucket from one emptied by
upstream failures.  Every event is also logged and counted in
Prometheus.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from app.core.metrics import FETCH_FALLBACKS, UNMATCHED_COMPLETIONS

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FetchFailure:
    operation: str
    item_id: int
    error: str

    def to_dict(self) -> dict:
        return {"operation": self.operation, "id": self.item_id, "error": self.error}


@dataclass(slots=True)
class ReportDiagnostics:
    """Collected per report; attached to the report output as-is."""

    course_id: int | None = None
    failures: list[FetchFailure] = field(default_factory=list)
    unmatched_events: int = 0
    skipped_students: int = 0

    def fetch_failed(self, operation: str, item_id: int, error: str) -> None:
        self.failures.append(FetchFailure(operation, item_id, error))
        FETCH_FALLBACKS.labels(operation=operation).inc()
        logger.warning(
            "Fallback used  operation=%s id=%s course_id=%s error=%s",
            operation,
            item_id,
            self.course_id,
            error,
        )

    def classification_mismatch(self, student_id: int, count: int) -> None:
        """Completion events that matched no classified activity."""
        if count <= 0:
            return
        self.unmatched_events += count
        UNMATCHED_COMPLETIONS.inc(count)
        logger.info(
            "Discarded %d unmatched completion events  student_id=%s course_id=%s",
            count,
            student_id,
            self.course_id,
        )

    def student_skipped(self, student_id: int) -> None:
        self.skipped_students += 1
        logger.debug(
            "No tracked activities, skipping  student_id=%s course_id=%s",
            student_id,
            self.course_id,
        )

    def to_dict(self) -> dict:
        return {
            "failedFetches": [f.to_dict() for f in self.failures],
            "unmatchedEvents": self.unmatched_events,
            "skippedStudents": self.skipped_students,
        }
