"""Application metrics using the Prometheus client library.

All metrics are defined here so there is a single inventory of what the
service measures.  Other modules import the metric they own and
increment/observe it at the point of action.

Prometheus pulls: every scrape interval it GETs /metrics and the app
answers with a text dump of the current values (see
app/api/metrics_endpoint.py).

Latency is recorded as histograms, not averages.  A report that fans
out to hundreds of per-student LMS calls can look fine on average while
its p99 is several seconds:

    histogram_quantile(0.99, rate(lms_upstream_request_duration_seconds_bucket[5m]))
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    # Report endpoints fan out to the LMS in batches, so the tail is long:
    #   5ms-100ms  health checks, token verification
    #   1s-10s     single-course breakdowns
    #   30s+       all-courses aggregations on large sites
    buckets=[0.005, 0.025, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Upstream LMS metrics (populated by app/services/lms_client.py)
# ---------------------------------------------------------------------------

UPSTREAM_REQUESTS = Counter(
    "lms_upstream_requests_total",
    "LMS web-service calls by function and outcome",
    # outcome: ok, timeout, unreachable, transport_error, http_error,
    # bad_payload, lms_exception
    ["function", "outcome"],
)

UPSTREAM_DURATION = Histogram(
    "lms_upstream_request_duration_seconds",
    "LMS web-service call duration in seconds",
    ["function"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0],
)

# ---------------------------------------------------------------------------
# Analytics metrics (populated by app/analytics/diagnostics.py)
# ---------------------------------------------------------------------------

FETCH_FALLBACKS = Counter(
    "analytics_fetch_fallbacks_total",
    "Per-item fetches that failed and were replaced by a fallback value",
    ["operation"],  # "completion_status", "enrolled_users", ...
)

UNMATCHED_COMPLETIONS = Counter(
    "analytics_unmatched_completions_total",
    "Completion events that matched no classified activity",
)
