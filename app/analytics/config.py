from __future__ import annotations

from dataclasses import dataclass

from app.analytics.bucketing import BucketPolicy
from app.analytics.scheduler import DEFAULT_BATCH_SIZE, DEFAULT_PAUSE_SECONDS


@dataclass(frozen=True, slots=True)
class AnalyticsConfig:
    """Knobs of the analytics engine, passed explicitly to ReportBuilder.

    batch_size:        upstream fetches in flight per batch
    pause_seconds:     delay between batches
    fetch_timeout:     per-item deadline enforced by the scheduler (None = rely
                       on the HTTP client's own timeout)
    bucket_policy:     default completion-range policy for breakdown reports
    lenient_ranges:    resolve unknown date-range keys as "yesterday" instead
                       of rejecting them
    """

    batch_size: int = DEFAULT_BATCH_SIZE
    pause_seconds: float = DEFAULT_PAUSE_SECONDS
    fetch_timeout: float | None = None
    bucket_policy: BucketPolicy = BucketPolicy.PERCENTAGE
    lenient_ranges: bool = False
