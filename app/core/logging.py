"""Logging configuration for the LMS analytics service.

Logs answer "what happened to this request"; aggregate questions
("how often does the LMS time out?") belong to the Prometheus metrics in
app/core/metrics.py.

CONTEXT
-------
Two ContextVars describe what the current task is working on:

  request_id_var   set by RequestContextMiddleware for every request
  course_id_var    set by ``course_context()`` while a report builds one
                   course

``_ContextFilter`` sits on the output handler and copies both onto every
record, whichever logger emitted it.  A report fans out into concurrent
LMS calls through asyncio.gather; the spawned tasks inherit the context,
so the client's log lines carry the course they were fetched for.

FORMATTERS
----------
  _ContainerFormatter: single line for local dev; the context is
    appended as ``[req=... course=...]`` when present.

  _JsonFormatter: one JSON object per line (LOG_JSON=true).  Context
    fields become top-level keys, so one slow course can be traced with

      request_id == "3f2a..." AND course_id == 42
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
course_id_var: ContextVar[int | None] = ContextVar("course_id", default=None)

_NOISY_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error", "httpcore", "httpx")


@contextmanager
def course_context(course_id: int) -> Iterator[None]:
    """Tag every log line emitted inside the block with *course_id*."""
    token = course_id_var.set(course_id)
    try:
        yield
    finally:
        course_id_var.reset(token)


class _ContextFilter(logging.Filter):
    """Stamp request_id and course_id from the ContextVars onto records.

    Values passed explicitly through ``extra`` win.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = request_id_var.get()  # type: ignore[attr-defined]
        if getattr(record, "course_id", None) is None:
            record.course_id = course_id_var.get()  # type: ignore[attr-defined]
        return True


def _context_suffix(record: logging.LogRecord) -> str:
    parts = []
    request_id = getattr(record, "request_id", None)
    course_id = getattr(record, "course_id", None)
    if request_id:
        parts.append(f"req={request_id}")
    if course_id is not None:
        parts.append(f"course={course_id}")
    return f"  [{' '.join(parts)}]" if parts else ""


class _ContainerFormatter(logging.Formatter):
    """Human-readable line: timestamp with ms, level, logger, message.

    WARNING and above also get ``[file:line]``.
    """

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        # .NNN goes before the +0000 offset
        return f"{base[:-5]}.{int(record.msecs):03d}{base[-5:]}"

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        head, sep, trace = line.partition("\n")
        head += _context_suffix(record)
        if record.levelno >= logging.WARNING:
            head += f"  [{record.filename}:{record.lineno}]"
        return head + sep + trace


class _JsonFormatter(logging.Formatter):
    """JSON Lines formatter; context fields are lifted to top-level keys."""

    _CONTEXT_FIELDS = (
        "request_id",
        "course_id",
        "method",
        "path",
        "user_id",
        "status_code",
        "duration_ms",
    )

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, value)
            for key in self._CONTEXT_FIELDS
            if (value := getattr(record, key, None)) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Configure the root logger: one stdout handler, chosen formatter.

    Args:
        level_name: debug/info/warning/error (unknown names mean info)
        json_format: emit JSON lines instead of the container format
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(_ContextFilter())
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    # httpx logs every LMS call at INFO, which floods report requests
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
