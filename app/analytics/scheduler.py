"""Bounded-concurrency batch scheduler for per-item upstream fetches.

The LMS has undocumented rate limits, so per-student fetches are sent
in fixed-size waves instead of all at once:

    batch 1 (items 0..19)  ──gather──▶ settle ── pause ──┐
    batch 2 (items 20..39) ◀─────────────────────────────┘ ──gather──▶ ...

Batch N is only dispatched after every item of batch N-1 has settled.
A failing item never aborts its batch: the caller's fallback turns the
error into a typed value, so aggregation always receives exactly one
outcome per input item, in input order.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from app.analytics.errors import UpstreamError

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT")
T = TypeVar("T")

DEFAULT_BATCH_SIZE = 20
DEFAULT_PAUSE_SECONDS = 0.1


@dataclass(frozen=True, slots=True)
class BatchOutcome(Generic[T]):
    """Result of one scheduled fetch.

    value is always usable: either what the fetch produced, or the
    fallback built for the failed item.  error carries the failure text
    when value is a fallback.
    """

    value: T
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def _settle(
    item: ItemT,
    fetch: Callable[[ItemT], Awaitable[T]],
    fallback: Callable[[ItemT, Exception], T],
    timeout: float | None,
) -> BatchOutcome[T]:
    try:
        if timeout is None:
            value = await fetch(item)
        else:
            value = await asyncio.wait_for(fetch(item), timeout)
    except TimeoutError as exc:
        logger.warning("Fetch timed out after %.1fs  item=%r", timeout, item)
        return BatchOutcome(fallback(item, exc), error="timeout")
    except UpstreamError as exc:
        logger.warning("Fetch failed  item=%r error=%s", item, exc)
        return BatchOutcome(fallback(item, exc), error=str(exc))
    return BatchOutcome(value)


async def run_in_batches(
    items: Sequence[ItemT],
    fetch: Callable[[ItemT], Awaitable[T]],
    *,
    fallback: Callable[[ItemT, Exception], T],
    batch_size: int = DEFAULT_BATCH_SIZE,
    pause_seconds: float = DEFAULT_PAUSE_SECONDS,
    timeout: float | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> list[BatchOutcome[T]]:
    """Run *fetch* over *items*, at most *batch_size* at a time.

    Args:
        items: work items, dispatched in order.
        fetch: coroutine function producing one value per item.
        fallback: builds the substitute value for an item whose fetch
            raised UpstreamError or timed out.
        batch_size: maximum number of fetches in flight.
        pause_seconds: delay between consecutive batches (not before the
            first one, not after the last one).
        timeout: optional per-item deadline on top of the client's own.
        sleep: awaited for the inter-batch pause; injectable for tests.

    Returns:
        One BatchOutcome per item, in input order.

    Raises:
        Any other exception from *fetch*, once the rest of its batch has
        settled.  Later batches are not dispatched.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1 (got {batch_size})")

    outcomes: list[BatchOutcome[T]] = []
    total_batches = (len(items) + batch_size - 1) // batch_size

    for batch_no, start in enumerate(range(0, len(items), batch_size), start=1):
        if batch_no > 1 and pause_seconds > 0:
            await sleep(pause_seconds)

        batch = items[start : start + batch_size]
        logger.debug(
            "Dispatching batch %d/%d  size=%d", batch_no, total_batches, len(batch)
        )
        # gather preserves argument order, so outcomes line up with items.
        # Every sibling settles before an unexpected error is re-raised.
        settled = await asyncio.gather(
            *(_settle(item, fetch, fallback, timeout) for item in batch),
            return_exceptions=True,
        )
        for result in settled:
            if isinstance(result, BaseException):
                raise result
            outcomes.append(result)

    return outcomes
