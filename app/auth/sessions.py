"""Session tokens and the cookie that carries them.

A session is an HS256 JWT whose ``sub`` is the user id, stored in an
http-only cookie. Production cookies are ``Secure`` with ``SameSite=None``
so the separately hosted frontend can send them; elsewhere ``Lax``.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging

import jwt
from fastapi import Response
from jwt.exceptions import InvalidTokenError

from app.config import AppConfig

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "taxalpha_session"
JWT_ALGORITHM = "HS256"


def create_session_token(user_id: str, config: AppConfig) -> str:
    now = datetime.now(timezone.utc)
    payload = {"sub": user_id, "iat": now, "exp": now + config.session_lifetime}
    return jwt.encode(payload, config.jwt_secret, algorithm=JWT_ALGORITHM)


def verify_session_token(token: str, config: AppConfig) -> str | None:
    """Return the user id for a valid token, else None."""
    try:
        payload = jwt.decode(token, config.jwt_secret, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError as exc:
        logger.info("session_token_rejected reason=%s", type(exc).__name__)
        return None
    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        return None
    return subject


def set_session_cookie(response: Response, token: str, config: AppConfig) -> None:
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        max_age=int(config.session_lifetime.total_seconds()),
        path="/",
        httponly=True,
        secure=config.is_production,
        samesite="none" if config.is_production else "lax",
    )


def clear_session_cookie(response: Response, config: AppConfig) -> None:
    response.delete_cookie(
        SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=config.is_production,
        samesite="none" if config.is_production else "lax",
    )


__all__ = [
    "SESSION_COOKIE_NAME",
    "clear_session_cookie",
    "create_session_token",
    "set_session_cookie",
    "verify_session_token",
]
