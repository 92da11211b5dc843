"""Request context middleware: one id per request, stamped on every log line.

Report requests fan out into dozens of concurrent LMS calls whose log
lines interleave with those of other requests:

  WARNING  Fallback used  operation=completion_status id=17
  WARNING  Fallback used  operation=completion_status id=17  [req=3f2a course=5]

The id is stored in ``request_id_var`` (app/core/logging.py); the
handler's context filter copies it onto every record.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.core.logging import request_id_var

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id for the duration of the request and log its outcome.

    The frontend may send X-Request-ID to correlate with its own logs;
    otherwise a uuid4 is generated.  Either way it is echoed back.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_var.set(req_id)
        start = time.monotonic()
        try:
            response = await call_next(request)
            duration_ms = round((time.monotonic() - start) * 1000, 1)
            logger.info(
                "%s %s -> %d (%.1fms)",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "request_id": req_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                },
            )
        finally:
            request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = req_id
        return response
