from __future__ import annotations

import pytest

from app.analytics.classifier import (
    build_activity_index,
    classify_activity,
    is_learning_module,
    parse_completion_events,
)
from app.models.activity import UNKNOWN_CLASS, CompletionEvent, CompletionState
from tests.conftest import module, section, status


@pytest.mark.parametrize(
    ("name", "modname", "expected"),
    [
        ("Lecture 1", "interactivevideo", "video"),
        ("Intro VIDEO", "url", "video"),
        ("Vid: week 2", "resource", "video"),
        ("Notes.pdf", "resource", "pdf"),
        ("Reading document", "page", "pdf"),
        ("Video summary PDF", "resource", "video"),
        ("Glossary", "page", "other"),
        ("", "folder", "other"),
    ],
)
def test_classify_activity_category(name: str, modname: str, expected: str) -> None:
    category, _ = classify_activity(name, modname, "Week 1")
    assert category == expected


def test_classify_activity_uses_section_name_as_label() -> None:
    assert classify_activity("x", "page", "Class 3")[1] == "Class 3"
    assert classify_activity("x", "page", None)[1] == UNKNOWN_CLASS
    assert classify_activity("x", "page", "")[1] == UNKNOWN_CLASS


def test_learning_module_allow_list() -> None:
    for modname in ("resource", "url", "page", "scorm", "folder", "interactivevideo"):
        assert is_learning_module(modname)
    for modname in ("forum", "label", "quiz", "assign", None):
        assert not is_learning_module(modname)


def test_build_index_drops_non_learning_modules() -> None:
    index = build_activity_index(
        [
            section(
                "Week 1",
                module(1, "Intro video", "url"),
                module(2, "Discussion", "forum"),
                module(3, "Slides pdf", "resource"),
            )
        ]
    )
    assert sorted(index.by_cmid) == [1, 3]
    assert index.by_cmid[1].category == "video"
    assert index.by_cmid[3].category == "pdf"


def test_class_labels_in_course_order_skipping_empty_sections() -> None:
    index = build_activity_index(
        [
            section("General"),
            section("Class B", module(1, "Forum only", "forum")),
            section("Class A", module(2, "video", "url")),
            {"name": "", "modules": [module(3, "pdf", "resource")]},
        ]
    )
    # A section with only non-learning modules still gets a class row.
    assert index.class_labels == ["Class B", "Class A", UNKNOWN_CLASS]
    assert index.by_cmid[3].class_label == UNKNOWN_CLASS


def test_match_prefers_cmid_then_instance() -> None:
    index = build_activity_index(
        [section("S", module(10, "video one", "url", instance=500), module(11, "pdf", "resource", instance=501))]
    )

    by_cmid = CompletionEvent(1, cmid=11, instance=500, state=CompletionState.COMPLETE)
    assert index.match(by_cmid).id == 11

    by_instance = CompletionEvent(1, cmid=999, instance=500, state=CompletionState.COMPLETE)
    assert index.match(by_instance).id == 10

    nothing = CompletionEvent(1, cmid=999, instance=999, state=CompletionState.COMPLETE)
    assert index.match(nothing) is None


def test_instance_collision_keeps_first_listed_activity() -> None:
    index = build_activity_index(
        [
            section("S1", module(1, "video", "url", instance=42)),
            section("S2", module(2, "pdf", "resource", instance=42)),
        ]
    )
    event = CompletionEvent(1, cmid=None, instance=42, state=CompletionState.COMPLETE)
    assert index.match(event).id == 1


def test_parse_completion_events() -> None:
    events = parse_completion_events(
        7, {"statuses": [status(1, 1), status(2, 2), status(3, 3), status(4, 0), status(5, "x")]}
    )
    assert [e.student_id for e in events] == [7] * 5
    assert [e.is_complete for e in events] == [True, True, False, False, False]
    assert events[4].state is CompletionState.INCOMPLETE


def test_parse_completion_events_handles_missing_payload() -> None:
    assert parse_completion_events(1, None) == []
    assert parse_completion_events(1, {}) == []
