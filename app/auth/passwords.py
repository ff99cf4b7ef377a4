"""Password hashing with bcrypt."""

from __future__ import annotations

import logging
import os

import bcrypt

logger = logging.getLogger(__name__)

DEFAULT_BCRYPT_ROUNDS = 12
# bcrypt only reads the first 72 bytes of its input
MAX_PASSWORD_BYTES = 72


def _rounds() -> int:
    raw = os.environ.get("BCRYPT_ROUNDS", "")
    try:
        rounds = int(raw) if raw.strip() else DEFAULT_BCRYPT_ROUNDS
    except ValueError:
        logger.warning("invalid BCRYPT_ROUNDS=%r; using %s", raw, DEFAULT_BCRYPT_ROUNDS)
        return DEFAULT_BCRYPT_ROUNDS
    return min(max(rounds, 4), 31)


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("Password cannot be empty")
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password exceeds {MAX_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=_rounds())).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    """True when ``password`` matches; malformed hashes never match."""
    encoded = (password or "").encode("utf-8")
    if not encoded or len(encoded) > MAX_PASSWORD_BYTES or not hashed:
        return False
    try:
        return bcrypt.checkpw(encoded, hashed.encode("utf-8"))
    except ValueError:
        logger.warning("password_hash_unreadable")
        return False


__all__ = ["MAX_PASSWORD_BYTES", "hash_password", "verify_password"]
