"""Response envelope shared by every /api endpoint.

    success:  {"success": true,  "message": "...", "data": {...}}
    failure:  {"success": false, "error": "...", "details": "..."}

details is only included outside production.
"""

from __future__ import annotations

from typing import Any

from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.core.config import SETTINGS


class Envelope(BaseModel):
    success: bool = True
    message: str = "Success"
    data: Any = None


def ok(data: Any, message: str = "Success") -> Envelope:
    return Envelope(success=True, message=message, data=data)


def error_response(
    message: str, status_code: int, details: str | None = None
) -> JSONResponse:
    body: dict[str, Any] = {"success": False, "error": message}
    if details and not SETTINGS.is_prod:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)
