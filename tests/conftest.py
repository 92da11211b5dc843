from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

# Ensure repo root is on sys.path so `import app` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Settings are read once at import time; pin the test environment first.
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("MOODLE_URL", "https://lms.example.test/webservice/rest/server.php")
os.environ.setdefault("BATCH_PAUSE_MS", "0")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.analytics.errors import UpstreamError  # noqa: E402
from app.api.dependencies import get_lms_client  # noqa: E402
from app.main import app  # noqa: E402
from app.services import token_service  # noqa: E402


# ---------------------------------------------------------------------------
# LMS payload builders
# ---------------------------------------------------------------------------


def module(cmid: int, name: str, modname: str = "resource", instance: int | None = None) -> dict:
    return {"id": cmid, "name": name, "modname": modname, "instance": instance or cmid + 1000}


def section(name: str, *modules: dict) -> dict:
    return {"name": name, "modules": list(modules)}


def status(cmid: int | None, state: int, instance: int | None = None) -> dict:
    return {"cmid": cmid, "instance": instance, "state": state, "timecompleted": 0}


def user(uid: int, fullname: str = "", lastaccess: int = 0, email: str = "") -> dict:
    return {
        "id": uid,
        "username": f"user{uid}",
        "fullname": fullname or f"Student {uid}",
        "email": email or f"user{uid}@example.com",
        "lastaccess": lastaccess,
    }


class FakeLmsClient:
    """In-memory LmsClient.

    Unknown courses answer with empty payloads.  Anything listed in
    *failing* as ``(method_name, key)`` raises UpstreamError instead,
    where key is the course id, or ``(course_id, user_id)`` for
    per-student calls.
    """

    def __init__(
        self,
        *,
        courses: list[dict] | None = None,
        structures: dict[int, list[dict]] | None = None,
        rosters: dict[int, list[dict]] | None = None,
        completions: dict[tuple[int, int], list[dict]] | None = None,
        course_completions: dict[int, dict] | None = None,
        failing: set[tuple[str, object]] | None = None,
    ) -> None:
        self.courses = courses or []
        self.structures = structures or {}
        self.rosters = rosters or {}
        self.completions = completions or {}
        self.course_completions = course_completions or {}
        self.failing = failing or set()
        self.calls: list[tuple[str, object]] = []

    def _record(self, name: str, key: object) -> None:
        self.calls.append((name, key))
        if (name, key) in self.failing:
            raise UpstreamError("simulated failure", function=name)

    async def fetch_courses(self, user_id: int) -> list[dict]:
        self._record("fetch_courses", user_id)
        return list(self.courses)

    async def fetch_course_structure(self, course_id: int) -> list[dict]:
        self._record("fetch_course_structure", course_id)
        return self.structures.get(course_id, [])

    async def fetch_enrolled_users(self, course_id: int) -> list[dict]:
        self._record("fetch_enrolled_users", course_id)
        return self.rosters.get(course_id, [])

    async def fetch_completion_status(self, course_id: int, student_id: int) -> dict:
        self._record("fetch_completion_status", (course_id, student_id))
        return {"statuses": self.completions.get((course_id, student_id), [])}

    async def fetch_course_completion(self, course_id: int, user_id: int) -> dict:
        self._record("fetch_course_completion", (course_id, user_id))
        return self.course_completions.get(course_id, {"completionstatus": {"completed": False}})


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_lms() -> FakeLmsClient:
    return FakeLmsClient()


@pytest.fixture
def client(fake_lms: FakeLmsClient) -> Iterator[TestClient]:
    app.dependency_overrides[get_lms_client] = lambda: fake_lms
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def mint_token(
    user_id: int = 2,
    username: str = "instructor",
    lms_token: str = "lms-token",
) -> str:
    """Create a valid HS256 session JWT for testing."""
    return token_service.create_session_token(
        user_id=user_id, username=username, lms_token=lms_token
    )


@pytest.fixture
def token() -> str:
    return mint_token()


@pytest.fixture
def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
