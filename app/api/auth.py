"""Login, logout and token verification.

Login is delegated to the LMS:

    POST /api/auth/login {username, password}
      -> LMS /login/token.php          (web-service token)
      -> core_webservice_get_site_info (user id, names)
      -> signed session JWT carrying the LMS token

The service keeps no session state; logout is an acknowledgement and
the client drops its token.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.analytics.errors import LmsUnreachable, UpstreamError
from app.api.dependencies import get_login_client, require_user
from app.api.responses import Envelope, error_response, ok
from app.models.principal import Principal
from app.services import token_service
from app.services.lms_client import MoodleClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginIn(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class UserOut(BaseModel):
    id: int
    username: str
    fullname: str = ""
    email: str = ""
    firstname: str = ""
    lastname: str = ""


class LoginOut(BaseModel):
    token: str
    user: UserOut


def _user_from_site_info(info: dict, username: str) -> UserOut:
    try:
        user_id = int(info["userid"])
    except (KeyError, TypeError, ValueError) as exc:
        raise UpstreamError(
            f"site info has no usable userid ({exc!r})",
            function="core_webservice_get_site_info",
        ) from exc
    return UserOut(
        id=user_id,
        username=info.get("username") or username,
        fullname=info.get("fullname") or "",
        email=info.get("email") or "",
        firstname=info.get("firstname") or "",
        lastname=info.get("lastname") or "",
    )


@router.post("/login", response_model=Envelope)
async def login(
    body: LoginIn,
    client: Annotated[MoodleClient, Depends(get_login_client)],
) -> Envelope | JSONResponse:
    logger.info("Login attempt for user=%s", body.username)
    try:
        async with client:
            client.token = await client.get_token(body.username, body.password)
            user = _user_from_site_info(await client.get_site_info(), body.username)
    except LmsUnreachable as exc:
        logger.error("LMS unreachable during login: %s", exc)
        return error_response(
            "Cannot connect to LMS server. Please check configuration.", 503, str(exc)
        )
    except UpstreamError as exc:
        if exc.error_code == "invalidlogin":
            logger.warning("Invalid credentials for user=%s", body.username)
            return error_response("Invalid username or password", 401)
        logger.error("Login failed for user=%s: %s", body.username, exc)
        return error_response("Login failed", 502, str(exc))

    token = token_service.create_session_token(
        user_id=user.id, username=user.username, lms_token=client.token
    )
    logger.info("Login successful for user=%s id=%d", user.username, user.id)
    return ok(LoginOut(token=token, user=user).model_dump(), "Login successful")


@router.post("/logout", response_model=Envelope)
def logout() -> Envelope:
    return ok(None, "Logout successful")


@router.get("/verify", response_model=Envelope)
def verify(
    principal: Annotated[Principal, Depends(require_user)],
) -> Envelope:
    return ok(
        {"valid": True, "userId": principal.user_id, "username": principal.username},
        "Token is valid",
    )
