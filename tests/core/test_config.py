from __future__ import annotations

import pytest

from app.analytics.bucketing import BucketPolicy
from app.core.config import DEV_JWT_SECRET, AppEnv, Settings, load_settings

_ENV_VARS = (
    "APP_ENV",
    "LOG_LEVEL",
    "LOG_JSON",
    "PORT",
    "MOODLE_URL",
    "MOODLE_SERVICE",
    "JWT_SECRET",
    "JWT_TTL_HOURS",
    "ALLOWED_ORIGINS",
    "BATCH_SIZE",
    "BATCH_PAUSE_MS",
    "UPSTREAM_TIMEOUT_SECONDS",
    "COMPLETION_BUCKET_POLICY",
    "DATE_RANGE_FALLBACK",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


# ---- defaults and parsing ----


def test_load_settings_defaults() -> None:
    settings = load_settings()
    assert settings.app_env == "dev"
    assert settings.log_level == "info"
    assert settings.log_json is False
    assert settings.moodle_url == ""
    assert settings.moodle_service == "moodle_mobile_app"
    assert settings.jwt_secret == DEV_JWT_SECRET
    assert settings.jwt_ttl_hours == 24
    assert settings.allowed_origins == ("http://localhost:3000",)
    assert settings.batch_size == 20
    assert settings.batch_pause_ms == 100
    assert settings.upstream_timeout_seconds == 15.0
    assert settings.bucket_policy is BucketPolicy.PERCENTAGE
    assert settings.lenient_date_ranges is False


def test_load_settings_respects_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    monkeypatch.setenv("LOG_LEVEL", "error")
    monkeypatch.setenv("JWT_SECRET", "s3cret")
    monkeypatch.setenv("MOODLE_URL", "https://lms.example.org/webservice/rest/server.php")
    monkeypatch.setenv("COMPLETION_BUCKET_POLICY", "fixed_width")
    monkeypatch.setenv("DATE_RANGE_FALLBACK", "lenient")
    monkeypatch.setenv("BATCH_SIZE", "5")
    settings = load_settings()
    assert settings.app_env == "prod"
    assert settings.log_level == "error"
    assert settings.jwt_secret == "s3cret"
    assert settings.moodle_configured is True
    assert settings.bucket_policy is BucketPolicy.FIXED_WIDTH
    assert settings.lenient_date_ranges is True
    assert settings.batch_size == 5


def test_load_settings_normalizes_case_and_whitespace(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "  TEST  ")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("COMPLETION_BUCKET_POLICY", " Percentage ")
    settings = load_settings()
    assert settings.app_env == "test"
    assert settings.log_level == "debug"
    assert settings.bucket_policy is BucketPolicy.PERCENTAGE


def test_allowed_origins_are_split_and_trimmed(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.example, https://b.example ,,")
    assert load_settings().allowed_origins == ("https://a.example", "https://b.example")


@pytest.mark.parametrize(("raw", "expected"), [("true", True), ("1", True), ("off", False)])
def test_log_json_flag(monkeypatch: pytest.MonkeyPatch, raw: str, expected: bool) -> None:
    monkeypatch.setenv("LOG_JSON", raw)
    assert load_settings().log_json is expected


# ---- invalid values ----


def test_load_settings_rejects_invalid_app_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "staging")
    with pytest.raises(ValueError, match="APP_ENV must be dev|test|prod"):
        load_settings()


def test_load_settings_rejects_invalid_log_level(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "verbose")
    with pytest.raises(ValueError, match="LOG_LEVEL must be"):
        load_settings()


def test_prod_requires_jwt_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    with pytest.raises(ValueError, match="JWT_SECRET is required"):
        load_settings()


def test_rejects_unknown_bucket_policy(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COMPLETION_BUCKET_POLICY", "quartiles")
    with pytest.raises(ValueError, match="COMPLETION_BUCKET_POLICY"):
        load_settings()


def test_rejects_unknown_date_range_fallback(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATE_RANGE_FALLBACK", "sometimes")
    with pytest.raises(ValueError, match="DATE_RANGE_FALLBACK"):
        load_settings()


@pytest.mark.parametrize(("name", "raw"), [("BATCH_SIZE", "0"), ("BATCH_SIZE", "ten"), ("PORT", "0")])
def test_rejects_bad_integers(monkeypatch: pytest.MonkeyPatch, name: str, raw: str) -> None:
    monkeypatch.setenv(name, raw)
    with pytest.raises(ValueError, match=name):
        load_settings()


@pytest.mark.parametrize("raw", ["0", "-1", "soon"])
def test_rejects_bad_upstream_timeout(monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
    monkeypatch.setenv("UPSTREAM_TIMEOUT_SECONDS", raw)
    with pytest.raises(ValueError, match="UPSTREAM_TIMEOUT_SECONDS"):
        load_settings()


def test_rejects_bad_boolean(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_JSON", "maybe")
    with pytest.raises(ValueError, match="LOG_JSON"):
        load_settings()


# ---- Settings properties ----


def _make_settings(app_env: AppEnv = "dev", moodle_url: str = "") -> Settings:
    return Settings(
        app_env=app_env,
        log_level="info",
        log_json=False,
        port=8000,
        moodle_url=moodle_url,
        moodle_service="moodle_mobile_app",
        jwt_secret="x",
        jwt_ttl_hours=24,
        allowed_origins=(),
        batch_size=10,
        batch_pause_ms=250,
        upstream_timeout_seconds=15.0,
        bucket_policy=BucketPolicy.FIXED_WIDTH,
        lenient_date_ranges=True,
    )


def test_settings_env_flags() -> None:
    assert _make_settings("dev").is_dev is True
    assert _make_settings("test").is_test is True
    prod = _make_settings("prod")
    assert (prod.is_dev, prod.is_test, prod.is_prod) == (False, False, True)


def test_moodle_configured() -> None:
    assert _make_settings().moodle_configured is False
    assert _make_settings(moodle_url="https://lms.example.org").moodle_configured is True


def test_analytics_config_carries_batching_and_policy() -> None:
    cfg = _make_settings().analytics_config()
    assert cfg.batch_size == 10
    assert cfg.fetch_timeout == 15.0
    assert cfg.pause_seconds == 0.25
    assert cfg.bucket_policy is BucketPolicy.FIXED_WIDTH
    assert cfg.lenient_ranges is True


def test_settings_is_frozen() -> None:
    s = _make_settings()
    with pytest.raises(AttributeError):
        s.app_env = "prod"  # type: ignore[misc]
