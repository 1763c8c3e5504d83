from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it’s easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


def _getenv_int(name: str, default: str) -> int:
    raw = _getenv(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    cors_origins: tuple[str, ...] = ("http://localhost:5000",)
    frontend_url: str = "http://localhost:3000"
    ai_backend_url: str = "http://localhost:8001"
    ai_timeout_seconds: float = 30.0
    upload_dir: str = "uploads"
    max_upload_bytes: int = 50 * 1024 * 1024
    report_cache_ttl: int = 60

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    port = _getenv_int("PORT", "8000")
    max_upload_bytes = _getenv_int("MAX_UPLOAD_BYTES", str(50 * 1024 * 1024))
    report_cache_ttl = _getenv_int("REPORT_CACHE_TTL", "60")
    ai_timeout_raw = _getenv("AI_TIMEOUT_SECONDS", "30")
    try:
        ai_timeout_seconds = float(ai_timeout_raw)
    except ValueError:
        raise ValueError(
            f"AI_TIMEOUT_SECONDS must be a number (got {ai_timeout_raw!r})"
        ) from None
    if report_cache_ttl < 0:
        raise ValueError(
            f"REPORT_CACHE_TTL must be >= 0 (got {report_cache_ttl!r})"
        )

    log_json = _getenv("LOG_JSON", "false").lower() in ("1", "true", "yes")

    database_url = _getenv("DATABASE_URL", "") or None
    redis_url = _getenv("REDIS_URL", "") or None

    cors_origins = tuple(
        origin.strip()
        for origin in _getenv("CORS_ORIGINS", "http://localhost:5000").split(",")
        if origin.strip()
    )

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=log_json,
        port=port,
        database_url=database_url,
        redis_url=redis_url,
        cors_origins=cors_origins,
        frontend_url=_getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/"),
        ai_backend_url=_getenv("AI_BACKEND_URL", "http://localhost:8001").rstrip(
            "/"
        ),
        ai_timeout_seconds=ai_timeout_seconds,
        upload_dir=_getenv("UPLOAD_DIR", "uploads"),
        max_upload_bytes=max_upload_bytes,
        report_cache_ttl=report_cache_ttl,
    )


# Optional: module-level singleton so imports are cheap
SETTINGS = load_settings()
