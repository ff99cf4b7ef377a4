"""Session guard for authenticated routes."""

from __future__ import annotations

from typing import Any, Dict
import logging

from fastapi import Request

from app.auth.sessions import SESSION_COOKIE_NAME, verify_session_token
from app.config import AppConfig
from app.http.problem import ApiError
from app.logic.repository_users import get_user_by_id

logger = logging.getLogger(__name__)


def app_config(request: Request) -> AppConfig:
    return request.app.state.config


def require_user(request: Request) -> Dict[str, Any]:
    """Resolve the signed-in user from the session cookie or raise 401."""
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        raise ApiError(401, "Authentication required.")
    user_id = verify_session_token(token, app_config(request))
    if user_id is None:
        raise ApiError(401, "Session expired. Please sign in again.")
    user = get_user_by_id(user_id)
    if user is None:
        logger.info("session_user_missing user=%s", user_id)
        raise ApiError(401, "User not found for this session.")
    return user


__all__ = ["app_config", "require_user"]
