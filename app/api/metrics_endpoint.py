"""Prometheus scrape endpoint.

Returns the exposition text format, not JSON:

  # TYPE lms_upstream_requests_total counter
  lms_upstream_requests_total{function="core_enrol_get_enrolled_users",outcome="ok"} 212.0

Restrict access to /metrics at the ingress in production; it reveals
request rates and upstream error patterns.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
