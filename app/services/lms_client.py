"""Async client for the Moodle web-service REST API.

Every call is a GET on the REST endpoint:

    GET {MOODLE_URL}?wstoken=...&wsfunction=core_enrol_get_users_courses
                    &moodlewsrestformat=json&userid=42

Moodle answers HTTP 200 even for failures and signals them in the body
(``{"exception": ..., "errorcode": ..., "message": ...}``), so the body
is inspected as well as the status code.  Every failure mode (network,
timeout, HTTP status, malformed JSON, exception payload) surfaces as
UpstreamError so callers only handle one type.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Protocol, runtime_checkable

import httpx

from app.analytics.errors import LmsUnreachable, UpstreamError
from app.core.metrics import UPSTREAM_DURATION, UPSTREAM_REQUESTS

logger = logging.getLogger(__name__)

REST_PATH = "/webservice/rest/server.php"
TOKEN_PATH = "/login/token.php"
DEFAULT_SERVICE = "moodle_mobile_app"
DEFAULT_TIMEOUT = 15.0
TOKEN_TIMEOUT = 10.0


@runtime_checkable
class LmsClient(Protocol):
    """The upstream operations the report builders depend on."""

    async def fetch_courses(self, user_id: int) -> list[dict]: ...
    async def fetch_course_structure(self, course_id: int) -> list[dict]: ...
    async def fetch_enrolled_users(self, course_id: int) -> list[dict]: ...
    async def fetch_completion_status(self, course_id: int, student_id: int) -> dict: ...
    async def fetch_course_completion(self, course_id: int, user_id: int) -> dict: ...


def _error_message(body: Any) -> str | None:
    if isinstance(body, dict):
        return body.get("message") or body.get("error")
    return None


class MoodleClient:
    """Thin wrapper turning (wsfunction, params) into JSON or UpstreamError.

    One instance is created per request (it carries that user's LMS
    token) and closed when the request ends.  Pass *http* to share or
    mock the underlying httpx.AsyncClient.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        service: str = DEFAULT_SERVICE,
        timeout: float = DEFAULT_TIMEOUT,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        if not base_url:
            raise LmsUnreachable("MOODLE_URL is not configured")
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.service = service
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"Accept": "application/json"},
        )

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> MoodleClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def token_url(self) -> str:
        if self.base_url.endswith(REST_PATH):
            return self.base_url[: -len(REST_PATH)] + TOKEN_PATH
        return self.base_url + TOKEN_PATH

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _send(
        self, function: str, method: str, url: str, params: dict[str, Any], timeout: float | None = None
    ) -> Any:
        kwargs: dict[str, Any] = {"params": params}
        if timeout is not None:
            kwargs["timeout"] = timeout

        start = time.monotonic()
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.TimeoutException:
            UPSTREAM_REQUESTS.labels(function=function, outcome="timeout").inc()
            raise LmsUnreachable("LMS server timeout", function=function) from None
        except httpx.ConnectError:
            UPSTREAM_REQUESTS.labels(function=function, outcome="unreachable").inc()
            raise LmsUnreachable(
                "Cannot connect to LMS server, check MOODLE_URL", function=function
            ) from None
        except httpx.HTTPError as exc:
            UPSTREAM_REQUESTS.labels(function=function, outcome="transport_error").inc()
            raise UpstreamError(f"LMS request failed: {exc}", function=function) from None
        finally:
            UPSTREAM_DURATION.labels(function=function).observe(time.monotonic() - start)

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code >= 400:
            UPSTREAM_REQUESTS.labels(function=function, outcome="http_error").inc()
            raise UpstreamError(
                _error_message(body) or f"LMS returned HTTP {response.status_code}",
                function=function,
                status_code=response.status_code,
            )
        if body is None:
            UPSTREAM_REQUESTS.labels(function=function, outcome="bad_payload").inc()
            raise UpstreamError("LMS returned a non-JSON response", function=function)
        if isinstance(body, dict) and (body.get("exception") or body.get("errorcode")):
            UPSTREAM_REQUESTS.labels(function=function, outcome="lms_exception").inc()
            raise UpstreamError(
                _error_message(body) or "LMS API error",
                function=function,
                error_code=body.get("errorcode"),
            )

        UPSTREAM_REQUESTS.labels(function=function, outcome="ok").inc()
        logger.debug("LMS call ok  function=%s", function)
        return body

    async def call(self, function: str, **params: Any) -> Any:
        """Call any web-service function with the client's token."""
        if not self.token:
            raise UpstreamError("No LMS token for this request", function=function)
        query = {
            "wstoken": self.token,
            "wsfunction": function,
            "moodlewsrestformat": "json",
            **params,
        }
        return await self._send(function, "GET", self.base_url, query)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def get_token(self, username: str, password: str) -> str:
        """Exchange LMS credentials for a web-service token."""
        body = await self._send(
            "login_token",
            "POST",
            self.token_url,
            {"username": username, "password": password, "service": self.service},
            timeout=TOKEN_TIMEOUT,
        )
        token = body.get("token") if isinstance(body, dict) else None
        if not token:
            raise UpstreamError("No token received from LMS", function="login_token")
        return token

    async def get_site_info(self) -> dict:
        return await self.call("core_webservice_get_site_info")

    # ------------------------------------------------------------------
    # Report inputs
    # ------------------------------------------------------------------

    async def fetch_courses(self, user_id: int) -> list[dict]:
        return await self.call("core_enrol_get_users_courses", userid=user_id)

    async def fetch_course_structure(self, course_id: int) -> list[dict]:
        return await self.call("core_course_get_contents", courseid=course_id)

    async def fetch_enrolled_users(self, course_id: int) -> list[dict]:
        return await self.call("core_enrol_get_enrolled_users", courseid=course_id)

    async def fetch_completion_status(self, course_id: int, student_id: int) -> dict:
        return await self.call(
            "core_completion_get_activities_completion_status",
            courseid=course_id,
            userid=student_id,
        )

    async def fetch_course_completion(self, course_id: int, user_id: int) -> dict:
        return await self.call(
            "core_completion_get_course_completion_status",
            courseid=course_id,
            userid=user_id,
        )
