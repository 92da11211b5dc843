from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.analytics.errors import (
    InvalidBucketKey,
    InvalidRange,
    LmsUnreachable,
    UpstreamError,
)
from app.api.activity_breakdown import router as activity_breakdown_router
from app.api.analytics import router as analytics_router
from app.api.auth import router as auth_router
from app.api.class_breakdown import router as class_breakdown_router
from app.api.consistent_access import router as consistent_access_router
from app.api.courses import router as courses_router
from app.api.health import router as health_router
from app.api.metrics_endpoint import router as metrics_router
from app.api.responses import error_response
from app.core.config import SETTINGS
from app.core.logging import setup_logging
from app.middleware.metrics import MetricsMiddleware
from app.middleware.request_context import RequestContextMiddleware

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)

# only app setup, error mapping + router registration

app = FastAPI(
    title="lms-analytics-service",
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(SETTINGS.allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Middleware execution order: last-added runs first (outermost layer).
# RequestContext (outermost) → Metrics → CORS → route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)


@app.exception_handler(InvalidRange)
async def _invalid_range(_request: Request, exc: InvalidRange) -> JSONResponse:
    return error_response(exc.message, 400)


@app.exception_handler(InvalidBucketKey)
async def _invalid_bucket(_request: Request, exc: InvalidBucketKey) -> JSONResponse:
    return error_response(exc.message, 400)


@app.exception_handler(LmsUnreachable)
async def _lms_unreachable(request: Request, exc: LmsUnreachable) -> JSONResponse:
    logger.error("LMS unreachable  path=%s error=%s", request.url.path, exc)
    return error_response("LMS server unavailable", 503, str(exc))


@app.exception_handler(UpstreamError)
async def _upstream_error(request: Request, exc: UpstreamError) -> JSONResponse:
    logger.error("LMS request failed  path=%s error=%s", request.url.path, exc)
    return error_response("LMS request failed", 502, str(exc))


app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(auth_router)
app.include_router(courses_router)
app.include_router(activity_breakdown_router)
app.include_router(class_breakdown_router)
app.include_router(consistent_access_router)
app.include_router(analytics_router)

logger.info(
    "lms-analytics-service started  env=%s log_level=%s port=%d lms=%s docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "configured" if SETTINGS.moodle_configured else "not configured",
    "on" if SETTINGS.is_dev else "off",
)
