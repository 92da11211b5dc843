from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated LMS user extracted from a validated session JWT.

    Carried through the request via FastAPI's dependency system.

        user_id:   LMS user id (the JWT subject)
        username:  LMS username, for logging only
        lms_token: web-service token issued by the LMS at login; every
                   upstream call for this request is made with it
    """

    user_id: int
    username: str
    lms_token: str

    def __repr__(self) -> str:
        # Keep the LMS token out of logs and tracebacks.
        return f"Principal(user_id={self.user_id!r}, username={self.username!r})"
