"""Health and readiness endpoints.

  /health (liveness): "is the process alive?"  Always 200 while the
    process can answer; the body reports LMS configuration and recent
    upstream error counts so an operator can tell "alive but the LMS is
    failing" apart from "down".

  /ready (readiness): "can this instance serve reports?"  503 when
    MOODLE_URL is not configured, so the load balancer keeps traffic
    away until the deployment is fixed.  The LMS itself is not pinged
    here: a slow LMS must not pull every instance out of rotation.
"""

from __future__ import annotations

from fastapi import APIRouter, Response, status
from prometheus_client import REGISTRY

from app.core.config import SETTINGS

router = APIRouter(tags=["health"])


def _sum_counter(metric_name: str, label_filter: dict | None = None) -> float:
    """Sum a counter across every label combination matching *label_filter*."""
    total = 0.0
    for metric in REGISTRY.collect():
        for sample in metric.samples:
            if sample.name != metric_name:
                continue
            if label_filter and not all(
                sample.labels.get(k) == v for k, v in label_filter.items()
            ):
                continue
            total += sample.value
    return total


@router.get("/health")
async def health() -> dict:
    checks = {"lms": "configured" if SETTINGS.moodle_configured else "not_configured"}

    calls = _sum_counter("lms_upstream_requests_total")
    ok_calls = _sum_counter("lms_upstream_requests_total", {"outcome": "ok"})

    return {
        "status": "ok" if SETTINGS.moodle_configured else "degraded",
        "checks": checks,
        "upstream": {
            "calls": int(calls),
            "failures": int(calls - ok_calls),
            "fallbacks": int(_sum_counter("analytics_fetch_fallbacks_total")),
        },
    }


@router.get("/ready")
async def ready() -> Response:
    if not SETTINGS.moodle_configured:
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
