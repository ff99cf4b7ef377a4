"""Runtime configuration.

Values are resolved with the following precedence (highest first):
- environment variables;
- optional text files under `config/` (one value per file);
- safe defaults for development.

Pydantic validates the result; an invalid configuration fails fast at
startup with the offending field named in the message.
"""

from __future__ import annotations

import logging
import os
import re
from datetime import timedelta
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator


CONFIG_DIR = Path("config")
logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": "seconds", "s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


def _read_config_file(rel_path: str) -> Optional[str]:
    path = CONFIG_DIR / rel_path
    try:
        if path.exists():
            return path.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as e:
        # Recoverable: log and ignore the unreadable override
        logger.warning("Failed to read override %s: %s", path, e)
        return None
    return None


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(key, default)


def parse_duration(value: str) -> timedelta:
    """Parse ``7d``, ``12h``, ``30m``, ``45s`` or plain seconds."""
    match = _DURATION_RE.match(value or "")
    if not match:
        raise ValueError(f"invalid duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


class AppConfig(BaseModel):
    app_env: Literal["development", "test", "production"] = "development"
    port: int = Field(default=4000, gt=0)
    frontend_url: str = "http://localhost:5173"
    jwt_secret: str
    jwt_expires_in: str = "7d"
    auto_apply_migrations: bool = True

    @field_validator("jwt_secret")
    @classmethod
    def secret_must_be_long_enough(cls, v: str) -> str:
        if len(v or "") < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters.")
        return v

    @field_validator("frontend_url")
    @classmethod
    def frontend_url_must_be_http(cls, v: str) -> str:
        if not re.match(r"^https?://[^\s/]+", v or ""):
            raise ValueError("FRONTEND_URL must be an http(s) URL.")
        return v.rstrip("/")

    @field_validator("jwt_expires_in")
    @classmethod
    def expiry_must_parse(cls, v: str) -> str:
        parse_duration(v)
        return v

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def session_lifetime(self) -> timedelta:
        return parse_duration(self.jwt_expires_in)


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def load_config() -> AppConfig:
    """Load and validate configuration from the environment."""
    app_env = _env("APP_ENV") or _read_config_file("app.env") or "development"
    jwt_secret = _env("JWT_SECRET") or _read_config_file("jwt.secret")
    if not jwt_secret:
        logger.error("Missing required configuration: JWT_SECRET")
        raise RuntimeError("Missing required environment variables: JWT_SECRET.")

    try:
        cfg = AppConfig(
            app_env=app_env.strip(),
            port=int((_env("PORT") or _read_config_file("port") or "4000").strip()),
            frontend_url=_env("FRONTEND_URL") or _read_config_file("frontend.url") or "http://localhost:5173",
            jwt_secret=jwt_secret,
            jwt_expires_in=_env("JWT_EXPIRES_IN") or _read_config_file("jwt.expires_in") or "7d",
            auto_apply_migrations=_flag(_env("AUTO_APPLY_MIGRATIONS"), True),
        )
    except (PydanticValidationError, ValueError) as e:
        logger.error("Invalid application configuration: %s", e)
        raise
    return cfg


__all__ = ["AppConfig", "load_config", "parse_duration"]
