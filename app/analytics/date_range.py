"""Symbolic and custom date ranges resolved to inclusive UTC epoch bounds.

    key         from                         to
    ─────────   ──────────────────────────   ─────────────────────
    today       00:00Z today                 now
    yesterday   00:00Z yesterday             00:00Z today
    week        00:00Z seven days ago        now
    month       00:00Z one month ago         now
    custom      00:00:00Z of start date      23:59:59Z of end date

An unknown key raises InvalidRange, unless the caller asks for lenient
resolution, in which case it resolves as ``yesterday``.
"""

from __future__ import annotations

import calendar
import logging
from datetime import UTC, date, datetime, time, timedelta

from app.analytics.errors import InvalidRange
from app.models.access import DateRange

logger = logging.getLogger(__name__)

RANGE_KEYS = ("today", "yesterday", "week", "month", "custom")


def _epoch(dt: datetime) -> int:
    return int(dt.timestamp())


def _months_back(day: date, months: int) -> date:
    """Same day-of-month *months* earlier, clamped to the month's length."""
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def _parse_day(raw: str | None, field_name: str) -> date:
    if not raw:
        raise InvalidRange("Custom range requires startDate and endDate")
    try:
        return datetime.strptime(raw.strip(), "%Y-%m-%d").date()
    except ValueError:
        raise InvalidRange(
            f"Invalid {field_name} {raw!r}. Use YYYY-MM-DD"
        ) from None


def resolve_date_range(
    key: str | None,
    start: str | None = None,
    end: str | None = None,
    *,
    now: datetime | None = None,
    lenient: bool = False,
) -> DateRange:
    """Resolve *key* (and custom bounds) to a DateRange.

    *now* defaults to the current instant; pass it explicitly to get
    reproducible bounds.
    """
    current = now or datetime.now(UTC)
    if current.tzinfo is None:
        current = current.replace(tzinfo=UTC)
    current = current.astimezone(UTC)

    today = datetime.combine(current.date(), time.min, tzinfo=UTC)
    normalized = (key or "").strip().lower()

    if normalized == "today":
        return DateRange(_epoch(today), _epoch(current), "today")

    if normalized == "yesterday":
        return DateRange(
            _epoch(today - timedelta(days=1)), _epoch(today), "yesterday"
        )

    if normalized == "week":
        return DateRange(_epoch(today - timedelta(days=7)), _epoch(current), "week")

    if normalized == "month":
        month_ago = datetime.combine(
            _months_back(current.date(), 1), time.min, tzinfo=UTC
        )
        return DateRange(_epoch(month_ago), _epoch(current), "month")

    if normalized == "custom":
        start_day = _parse_day(start, "startDate")
        end_day = _parse_day(end, "endDate")
        if start_day > end_day:
            raise InvalidRange(
                f"startDate {start_day.isoformat()} is after endDate {end_day.isoformat()}"
            )
        return DateRange(
            _epoch(datetime.combine(start_day, time.min, tzinfo=UTC)),
            _epoch(datetime.combine(end_day, time(23, 59, 59), tzinfo=UTC)),
            "custom",
        )

    if lenient:
        logger.info("Unknown date range %r, falling back to yesterday", key)
        return resolve_date_range("yesterday", now=current)

    raise InvalidRange(f"Unknown date range {key!r}. Use: {', '.join(RANGE_KEYS)}")
