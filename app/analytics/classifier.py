"""Activity classification and completion-event matching.

A course structure is a list of sections, each holding modules:

    [{"id": 7, "name": "Week 1", "modules": [
        {"id": 101, "name": "Intro video", "modname": "url", "instance": 12},
        ...]}]

Only learning content (the LEARNING_MODULES allow-list) is classified.
Forums, labels, quizzes and so on are dropped before classification,
which also means staff accounts, who have nothing tracked on these
modules, end up with empty completion lists.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from app.models.activity import (
    UNKNOWN_CLASS,
    ActivityRecord,
    Category,
    ClassifiedActivity,
    CompletionEvent,
    CompletionState,
)

logger = logging.getLogger(__name__)

LEARNING_MODULES = frozenset(
    {"resource", "url", "page", "scorm", "folder", "interactivevideo"}
)
DIRECT_VIDEO_MODULES = frozenset({"interactivevideo"})

_VIDEO_MARKERS = ("video", "vid")
_DOCUMENT_MARKERS = ("pdf", "document")


def classify_activity(
    name: str | None, modname: str | None, section_label: str | None
) -> tuple[Category, str]:
    """Return ``(category, class_label)`` for one content item."""
    lowered = (name or "").lower()
    module_type = (modname or "").lower()

    category: Category
    if module_type in DIRECT_VIDEO_MODULES:
        category = "video"
    elif any(marker in lowered for marker in _VIDEO_MARKERS):
        category = "video"
    elif any(marker in lowered for marker in _DOCUMENT_MARKERS):
        category = "pdf"
    else:
        category = "other"

    return category, section_label or UNKNOWN_CLASS


def is_learning_module(modname: str | None) -> bool:
    return (modname or "").lower() in LEARNING_MODULES


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(slots=True)
class ActivityIndex:
    """Classified activities of one course, addressable by cmid or instance.

    class_labels lists every section that has at least one module, in
    course order, so classes without any completions still get a row.
    """

    by_cmid: dict[int, ClassifiedActivity] = field(default_factory=dict)
    by_instance: dict[int, ClassifiedActivity] = field(default_factory=dict)
    class_labels: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.by_cmid)

    def add(self, activity: ClassifiedActivity) -> None:
        self.by_cmid[activity.id] = activity
        if activity.instance is not None:
            # Instance ids are only unique per module type; the first
            # activity listed keeps the slot.
            self.by_instance.setdefault(activity.instance, activity)

    def match(self, event: CompletionEvent) -> ClassifiedActivity | None:
        """Resolve an event by cmid, falling back to the instance id.

        The course listing and the per-student completion listing do not
        always agree on identifiers, hence the second lookup.
        """
        if event.cmid is not None:
            found = self.by_cmid.get(event.cmid)
            if found is not None:
                return found
        if event.instance is not None:
            return self.by_instance.get(event.instance)
        return None


def build_activity_index(sections: Iterable[Mapping[str, Any]]) -> ActivityIndex:
    """Classify every learning module of a course structure."""
    index = ActivityIndex()

    for section in sections:
        modules = section.get("modules") or []
        if not modules:
            continue

        section_label = section.get("name") or None
        label = section_label or UNKNOWN_CLASS
        if label not in index.class_labels:
            index.class_labels.append(label)

        for module in modules:
            if not is_learning_module(module.get("modname")):
                continue
            cmid = _as_int(module.get("id"))
            if cmid is None:
                continue

            record = ActivityRecord(
                id=cmid,
                name=module.get("name") or "",
                modname=(module.get("modname") or "").lower(),
                instance=_as_int(module.get("instance")),
                section_label=section_label,
            )
            category, class_label = classify_activity(
                record.name, record.modname, record.section_label
            )
            index.add(
                ClassifiedActivity(
                    activity=record, category=category, class_label=class_label
                )
            )

    logger.debug(
        "Classified %d activities across %d classes",
        len(index),
        len(index.class_labels),
    )
    return index


def parse_completion_events(
    student_id: int, payload: Mapping[str, Any] | None
) -> list[CompletionEvent]:
    """Turn a completion-status payload (``{"statuses": [...]}``) into events."""
    statuses = (payload or {}).get("statuses") or []
    return [
        CompletionEvent(
            student_id=student_id,
            cmid=_as_int(status.get("cmid")),
            instance=_as_int(status.get("instance")),
            state=CompletionState.parse(status.get("state")),
            time_completed=_as_int(status.get("timecompleted")),
        )
        for status in statuses
    ]
