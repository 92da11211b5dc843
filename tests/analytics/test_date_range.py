from __future__ import annotations

from datetime import UTC, datetime

import pytest

from app.analytics.date_range import resolve_date_range
from app.analytics.errors import InvalidRange

NOW = datetime(2026, 3, 31, 15, 30, 0, tzinfo=UTC)
MIDNIGHT = int(datetime(2026, 3, 31, tzinfo=UTC).timestamp())


def test_today() -> None:
    r = resolve_date_range("today", now=NOW)
    assert r.from_ts == MIDNIGHT
    assert r.to_ts == int(NOW.timestamp())
    assert r.key == "today"


def test_yesterday_ends_where_today_starts() -> None:
    yesterday = resolve_date_range("yesterday", now=NOW)
    today = resolve_date_range("today", now=NOW)
    assert yesterday.to_ts == today.from_ts
    assert yesterday.from_ts == MIDNIGHT - 86400
    assert yesterday.total_days == 1


def test_week() -> None:
    r = resolve_date_range("week", now=NOW)
    assert r.from_ts == MIDNIGHT - 7 * 86400
    assert r.total_days == 8


def test_month_clamps_day_of_month() -> None:
    r = resolve_date_range("month", now=NOW)
    # March 31st minus one month is February 28th (2026 is not a leap year).
    assert r.from_ts == int(datetime(2026, 2, 28, tzinfo=UTC).timestamp())


def test_month_across_year_boundary() -> None:
    r = resolve_date_range("month", now=datetime(2026, 1, 15, 8, tzinfo=UTC))
    assert r.from_ts == int(datetime(2025, 12, 15, tzinfo=UTC).timestamp())


def test_custom_range_is_inclusive_and_three_days() -> None:
    r = resolve_date_range("custom", "2026-01-10", "2026-01-12", now=NOW)
    assert r.from_ts == int(datetime(2026, 1, 10, tzinfo=UTC).timestamp())
    assert r.to_ts == int(datetime(2026, 1, 12, 23, 59, 59, tzinfo=UTC).timestamp())
    assert r.total_days == 3


def test_custom_single_day() -> None:
    r = resolve_date_range("custom", "2026-01-10", "2026-01-10", now=NOW)
    assert r.total_days == 1


@pytest.mark.parametrize(
    ("start", "end"),
    [(None, "2026-01-12"), ("2026-01-10", None), ("10/01/2026", "2026-01-12"), ("2026-02-30", "2026-03-01")],
)
def test_custom_rejects_missing_or_bad_dates(start: str | None, end: str | None) -> None:
    with pytest.raises(InvalidRange):
        resolve_date_range("custom", start, end, now=NOW)


def test_custom_rejects_start_after_end() -> None:
    with pytest.raises(InvalidRange, match="after"):
        resolve_date_range("custom", "2026-01-12", "2026-01-10", now=NOW)


def test_unknown_key_is_rejected_in_strict_mode() -> None:
    with pytest.raises(InvalidRange, match="Unknown date range"):
        resolve_date_range("fortnight", now=NOW)


def test_unknown_key_falls_back_to_yesterday_when_lenient() -> None:
    r = resolve_date_range("fortnight", now=NOW, lenient=True)
    assert r == resolve_date_range("yesterday", now=NOW)


def test_key_is_case_insensitive() -> None:
    assert resolve_date_range("WEEK", now=NOW).key == "week"


def test_naive_now_is_treated_as_utc() -> None:
    naive = NOW.replace(tzinfo=None)
    assert resolve_date_range("today", now=naive) == resolve_date_range("today", now=NOW)


def test_to_dict() -> None:
    out = resolve_date_range("custom", "2026-01-10", "2026-01-12", now=NOW).to_dict()
    assert out["type"] == "custom"
    assert out["fromDate"] == "2026-01-10"
    assert out["toDate"] == "2026-01-12"
    assert out["totalDays"] == 3
