"""Database bootstrap utilities.

Exposes engine construction and the migrations runner that applies SQL
files from the local migrations/ directory. Route handlers never see
connections directly; repositories under ``app.logic`` own all SQL.
"""

from app.db.base import get_engine
from app.db.migrations_runner import apply_migrations

__all__ = [
    "apply_migrations",
    "get_engine",
]
