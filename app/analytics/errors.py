"""Error taxonomy for the analytics engine.

Only request-shape errors (InvalidRange, InvalidBucketKey) are meant to
reach the caller as 4xx responses.  UpstreamError is recovered per item
by the batch scheduler and only escapes when a whole-course input (the
roster or the course structure) could not be fetched.
"""

from __future__ import annotations


class AnalyticsError(Exception):
    """Base class for every error raised by the analytics engine."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class UpstreamError(AnalyticsError):
    """The LMS web service failed or answered with an exception payload.

    Attributes:
        function: the web-service function that was called, when known.
        error_code: the LMS ``errorcode`` field, when the LMS sent one.
        status_code: HTTP status of the response, when there was one.
    """

    def __init__(
        self,
        message: str,
        *,
        function: str | None = None,
        error_code: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.function = function
        self.error_code = error_code
        self.status_code = status_code

    def __str__(self) -> str:
        if self.function:
            return f"{self.function}: {self.message}"
        return self.message


class InvalidRange(AnalyticsError, ValueError):
    """A date range key or custom bound could not be resolved."""


class InvalidBucketKey(AnalyticsError, ValueError):
    """A completion range key is not defined by the active bucket policy."""


class LmsUnreachable(UpstreamError):
    """The LMS could not be reached at all (connection refused, DNS, timeout)."""
