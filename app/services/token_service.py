"""Session token creation and validation (HS256).

After a successful LMS login the service hands the frontend its own JWT.
The token carries the LMS web-service token, so later requests can call
the LMS on the user's behalf without storing anything server-side.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import jwt

from app.core.config import SETTINGS

ALGORITHM = "HS256"
ISSUER = "lms-analytics-service"


def create_session_token(
    *,
    user_id: int,
    username: str,
    lms_token: str,
    secret: str | None = None,
    ttl_hours: int | None = None,
) -> str:
    """Build and sign a session JWT.

    Claims: sub (LMS user id, as a string), username, lms_token, iss,
    iat, exp, jti.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "username": username,
        "lms_token": lms_token,
        "iss": ISSUER,
        "iat": now,
        "exp": now + timedelta(hours=ttl_hours or SETTINGS.jwt_ttl_hours),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, secret or SETTINGS.jwt_secret, algorithm=ALGORITHM)


def decode_session_token(token: str, *, secret: str | None = None) -> dict:
    """Verify signature and claims, return the payload.

    Pins the algorithm to HS256 so alg:none and alg-switching tokens
    are rejected.

    Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError on failure.
    """
    return jwt.decode(
        token,
        secret or SETTINGS.jwt_secret,
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        options={"require": ["sub", "exp", "iat", "jti", "lms_token"]},
    )
