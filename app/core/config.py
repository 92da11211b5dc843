from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

from app.analytics.bucketing import BucketPolicy
from app.analytics.config import AnalyticsConfig

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

DEV_JWT_SECRET = "dev-only-secret-change-me"


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it’s easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


def _getenv_int(name: str, default: str, *, minimum: int = 0) -> int:
    raw = _getenv(name, default)
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum} (got {value})")
    return value


def _getenv_bool(name: str, default: str) -> bool:
    raw = _getenv(name, default).lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"{name} must be true|false (got {raw!r})")


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    moodle_url: str
    moodle_service: str
    jwt_secret: str
    jwt_ttl_hours: int
    allowed_origins: tuple[str, ...]
    batch_size: int
    batch_pause_ms: int
    upstream_timeout_seconds: float
    bucket_policy: BucketPolicy
    lenient_date_ranges: bool

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"

    @property
    def moodle_configured(self) -> bool:
        return bool(self.moodle_url)

    def analytics_config(self) -> AnalyticsConfig:
        return AnalyticsConfig(
            batch_size=self.batch_size,
            pause_seconds=self.batch_pause_ms / 1000,
            fetch_timeout=self.upstream_timeout_seconds,
            bucket_policy=self.bucket_policy,
            lenient_ranges=self.lenient_date_ranges,
        )


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    port = _getenv_int("PORT", "8000", minimum=1)

    jwt_secret = _getenv("JWT_SECRET", "")
    if not jwt_secret:
        if app_env_raw == "prod":
            raise ValueError("JWT_SECRET is required when APP_ENV=prod")
        jwt_secret = DEV_JWT_SECRET

    policy_raw = _getenv("COMPLETION_BUCKET_POLICY", "percentage").lower()
    try:
        bucket_policy = BucketPolicy(policy_raw)
    except ValueError:
        raise ValueError(
            f"COMPLETION_BUCKET_POLICY must be percentage|fixed_width (got {policy_raw!r})"
        ) from None

    fallback_raw = _getenv("DATE_RANGE_FALLBACK", "strict").lower()
    if fallback_raw not in ("strict", "lenient"):
        raise ValueError(
            f"DATE_RANGE_FALLBACK must be strict|lenient (got {fallback_raw!r})"
        )

    timeout_raw = _getenv("UPSTREAM_TIMEOUT_SECONDS", "15")
    try:
        upstream_timeout = float(timeout_raw)
    except ValueError:
        raise ValueError(
            f"UPSTREAM_TIMEOUT_SECONDS must be a number (got {timeout_raw!r})"
        ) from None
    if upstream_timeout <= 0:
        raise ValueError(f"UPSTREAM_TIMEOUT_SECONDS must be > 0 (got {upstream_timeout})")

    origins = tuple(
        o.strip()
        for o in _getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
        if o.strip()
    )

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getenv_bool("LOG_JSON", "false"),
        port=port,
        moodle_url=_getenv("MOODLE_URL", ""),
        moodle_service=_getenv("MOODLE_SERVICE", "moodle_mobile_app"),
        jwt_secret=jwt_secret,
        jwt_ttl_hours=_getenv_int("JWT_TTL_HOURS", "24", minimum=1),
        allowed_origins=origins,
        batch_size=_getenv_int("BATCH_SIZE", "20", minimum=1),
        batch_pause_ms=_getenv_int("BATCH_PAUSE_MS", "100"),
        upstream_timeout_seconds=upstream_timeout,
        bucket_policy=bucket_policy,
        lenient_date_ranges=fallback_raw == "lenient",
    )


# Optional: module-level singleton so imports are cheap
SETTINGS = load_settings()
