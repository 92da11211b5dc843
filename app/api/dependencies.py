from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from app.analytics.reports import ReportBuilder
from app.core.config import SETTINGS
from app.models.principal import Principal
from app.services import token_service
from app.services.lms_client import LmsClient, MoodleClient

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_user(
    raw_token: Annotated[str, Depends(oauth2_scheme)],
) -> Principal:
    """Extract and validate the session bearer token. Returns a Principal.

    Used as a FastAPI dependency on every report endpoint.
    """
    try:
        claims = token_service.decode_session_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise _unauthorized("Token expired") from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise _unauthorized("Invalid token") from None

    try:
        user_id = int(claims["sub"])
    except (TypeError, ValueError):
        logger.warning("Token subject is not an LMS user id: %r", claims.get("sub"))
        raise _unauthorized("Invalid token") from None

    principal = Principal(
        user_id=user_id,
        username=claims.get("username") or "",
        lms_token=claims["lms_token"],
    )
    logger.debug("Token validated for user=%s", principal.user_id)
    return principal


def get_login_client() -> MoodleClient:
    """Token-less client, only good for the login exchange."""
    return MoodleClient(
        SETTINGS.moodle_url,
        service=SETTINGS.moodle_service,
        timeout=SETTINGS.upstream_timeout_seconds,
    )


async def get_lms_client(
    principal: Annotated[Principal, Depends(require_user)],
) -> AsyncIterator[LmsClient]:
    """Per-request LMS client authenticated with the caller's LMS token."""
    client = MoodleClient(
        SETTINGS.moodle_url,
        token=principal.lms_token,
        service=SETTINGS.moodle_service,
        timeout=SETTINGS.upstream_timeout_seconds,
    )
    try:
        yield client
    finally:
        await client.aclose()


def get_report_builder(
    client: Annotated[LmsClient, Depends(get_lms_client)],
) -> ReportBuilder:
    return ReportBuilder(client, SETTINGS.analytics_config())
