"""Environment-backed application settings with strict validation."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping

logger = logging.getLogger(__name__)

REQUIRED_ENV_VARS = (
    "DATABASE_URL",
    "JWT_SECRET",
)


def _read_env_var(name: str, env: Mapping[str, str | None]) -> str:
    value = env.get(name)
    if value is None or str(value).strip() == "":
        raise RuntimeError(f"Missing required environment variable: {name}")
    return str(value)


def _read_optional(name: str, env: Mapping[str, str | None]) -> str | None:
    value = env.get(name)
    if value is None or str(value).strip() == "":
        return None
    return str(value).strip()


def _read_int(name: str, env: Mapping[str, str | None], default: int) -> int:
    raw = _read_optional(name, env)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {name} must be an integer") from None
    if value <= 0:
        raise RuntimeError(f"Environment variable {name} must be positive")
    return value


@dataclass(frozen=True)
class Settings:
    database_url: str
    jwt_secret: str
    app_env: str
    session_ttl_seconds: int = 7200
    max_failed_attempts: int = 5
    lockout_minutes: int = 15
    dashboard_session_secret: str | None = None
    emailjs_public_key: str | None = None
    emailjs_private_key: str | None = None
    emailjs_service_id: str | None = None
    emailjs_template_id: str | None = None


def load_settings(env: Mapping[str, str | None] | None = None) -> Settings:
    """Load and validate environment variables into a Settings object."""
    source_env = os.environ if env is None else env

    missing = [key for key in REQUIRED_ENV_VARS if not str(source_env.get(key) or "").strip()]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    app_env = str(source_env.get("APP_ENV", "development")).strip() or "development"

    settings = Settings(
        database_url=_read_env_var("DATABASE_URL", source_env),
        jwt_secret=_read_env_var("JWT_SECRET", source_env),
        app_env=app_env,
        session_ttl_seconds=_read_int("SESSION_TTL_SECONDS", source_env, 7200),
        max_failed_attempts=_read_int("MAX_FAILED_ATTEMPTS", source_env, 5),
        lockout_minutes=_read_int("LOCKOUT_MINUTES", source_env, 15),
        dashboard_session_secret=_read_optional("DASHBOARD_SESSION_SECRET", source_env),
        emailjs_public_key=_read_optional("EMAILJS_PUBLIC_KEY", source_env),
        emailjs_private_key=_read_optional("EMAILJS_PRIVATE_KEY", source_env),
        emailjs_service_id=_read_optional("EMAILJS_SERVICE_ID", source_env),
        emailjs_template_id=_read_optional("EMAILJS_TEMPLATE_ID", source_env),
    )

    logger.info("Loaded application settings for env=%s", settings.app_env)
    return settings
