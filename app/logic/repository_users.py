"""User account data access helpers."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import text as sql_text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from app.db.base import get_engine

logger = logging.getLogger(__name__)


class DuplicateUserError(Exception):
    """Raised when an account with the same email already exists."""


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_user_by_email(email: str) -> Optional[Dict[str, Any]]:
    """Return the user row including its password hash, or None."""
    eng = get_engine()
    with eng.connect() as conn:
        row = conn.execute(
            sql_text("SELECT id, name, email, password_hash FROM users WHERE email = :email"),
            {"email": email},
        ).mappings().first()
    return dict(row) if row else None


def get_user_by_id(user_id: str) -> Optional[Dict[str, Any]]:
    eng = get_engine()
    with eng.connect() as conn:
        row = conn.execute(
            sql_text("SELECT id, name, email FROM users WHERE id = :id"),
            {"id": user_id},
        ).mappings().first()
    return dict(row) if row else None


def ensure_self_broker(conn: Connection, user: Dict[str, Any]) -> str:
    """Return the id of the broker record representing the user themself."""
    existing = conn.execute(
        sql_text("SELECT id FROM brokers WHERE owner_user_id = :owner AND email = :email"),
        {"owner": user["id"], "email": user["email"]},
    ).scalar()
    if existing:
        return str(existing)
    broker_id = str(uuid.uuid4())
    conn.execute(
        sql_text(
            "INSERT INTO brokers (id, owner_user_id, name, email, kind, created_at) "
            "VALUES (:id, :owner, :name, :email, 'SELF', :created_at)"
        ),
        {
            "id": broker_id,
            "owner": user["id"],
            "name": user["name"],
            "email": user["email"],
            "created_at": utc_timestamp(),
        },
    )
    return broker_id


def create_user(name: str, email: str, password_hash: str) -> Dict[str, Any]:
    """Insert a user and their SELF broker in one transaction."""
    user = {"id": str(uuid.uuid4()), "name": name, "email": email}
    eng = get_engine()
    try:
        with eng.begin() as conn:
            conn.execute(
                sql_text(
                    "INSERT INTO users (id, name, email, password_hash, created_at) "
                    "VALUES (:id, :name, :email, :password_hash, :created_at)"
                ),
                {**user, "password_hash": password_hash, "created_at": utc_timestamp()},
            )
            ensure_self_broker(conn, user)
    except IntegrityError as exc:
        logger.info("user_insert_conflict error=%s", type(exc).__name__)
        raise DuplicateUserError(email) from exc
    return user


__all__ = [
    "DuplicateUserError",
    "create_user",
    "ensure_self_broker",
    "get_user_by_email",
    "get_user_by_id",
    "utc_timestamp",
]
