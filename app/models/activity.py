from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Literal

Category = Literal["video", "pdf", "other"]

UNKNOWN_CLASS = "Unknown Class"


@dataclass(frozen=True, slots=True)
class ActivityRecord:
    """One content item (course module) as listed in the course structure.

    id:            course-module id (``cmid`` in completion reports)
    instance:      id of the underlying activity instance, scoped per module type
    section_label: display name of the enclosing section, None when unnamed
    """

    id: int
    name: str
    modname: str
    instance: int | None = None
    section_label: str | None = None


@dataclass(frozen=True, slots=True)
class ClassifiedActivity:
    """An ActivityRecord tagged with its content category and class label."""

    activity: ActivityRecord
    category: Category
    class_label: str

    @property
    def id(self) -> int:
        return self.activity.id

    @property
    def instance(self) -> int | None:
        return self.activity.instance


class CompletionState(IntEnum):
    """Per-activity completion state as reported by the LMS."""

    INCOMPLETE = 0
    COMPLETE = 1
    COMPLETE_PASS = 2
    COMPLETE_FAIL = 3

    @classmethod
    def parse(cls, raw: object) -> CompletionState:
        try:
            return cls(int(raw))  # type: ignore[call-overload]
        except (TypeError, ValueError):
            return cls.INCOMPLETE

    @property
    def counts_as_complete(self) -> bool:
        return self in (CompletionState.COMPLETE, CompletionState.COMPLETE_PASS)


@dataclass(frozen=True, slots=True)
class CompletionEvent:
    """One row of a student's activity completion report."""

    student_id: int
    cmid: int | None
    instance: int | None
    state: CompletionState
    time_completed: int | None = None

    @property
    def is_complete(self) -> bool:
        return self.state.counts_as_complete
