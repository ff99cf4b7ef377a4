"""Lightweight SQL migrations runner.

Applies .sql files in lexical order from the local `migrations/` directory
and records applied filenames, per database, in a file-backed journal
(`migrations/_journal.json`). In-memory SQLite databases start empty in
every process, so they always receive the full set and are never journaled.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Iterable
from datetime import datetime, timezone

from sqlalchemy.engine import Engine, Connection
import logging

logger = logging.getLogger(__name__)

DEFAULT_MIGRATIONS_DIR = Path(__file__).resolve().parents[2] / "migrations"


def _iter_sql_files(root: Path) -> Iterable[Path]:
    for p in sorted(root.glob("*.sql")):
        if "rollback" in p.name.lower():
            continue
        yield p


def _exec_sql_compat(conn: Connection, sql: str) -> None:
    """Execute a multi-statement SQL file.

    pysqlite refuses several statements in one execute() call, so SQLite
    goes through the DB-API ``executescript``. Other dialects receive the
    script as-is.
    """
    name = (getattr(conn.dialect, "name", "") or "").lower()
    if "sqlite" in name:
        raw = conn.connection.driver_connection
        raw.executescript(sql)
        return
    conn.exec_driver_sql(sql)


def _database_key(engine: Engine) -> str:
    return engine.url.render_as_string(hide_password=True)


def _is_ephemeral(engine: Engine) -> bool:
    return engine.url.get_backend_name() == "sqlite" and engine.url.database in (None, "", ":memory:")


def _load_journal(journal_path: Path) -> list[dict]:
    if not journal_path.exists():
        return []
    try:
        data = json.loads(journal_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        logger.error("migration_journal_parse_failed path=%s", str(journal_path), exc_info=True)
        return []
    return [e for e in data if isinstance(e, dict)] if isinstance(data, list) else []


def apply_migrations(engine: Engine, migrations_dir: str | os.PathLike[str] | None = None) -> list[str]:
    """Apply pending migrations; return the filenames applied in this run."""
    root = Path(migrations_dir) if migrations_dir is not None else DEFAULT_MIGRATIONS_DIR
    if not root.exists():
        logger.warning("migrations_dir_missing path=%s", str(root))
        return []

    journal_path = root / "_journal.json"
    ephemeral = _is_ephemeral(engine)
    database = _database_key(engine)
    journal_entries = [] if ephemeral else _load_journal(journal_path)
    applied = {
        Path(str(e.get("filename", ""))).name for e in journal_entries if e.get("database") == database
    }

    newly_applied: list[str] = []
    with engine.begin() as conn:
        for sql_path in _iter_sql_files(root):
            fname = sql_path.name
            if fname in applied:
                continue
            sql = sql_path.read_text(encoding="utf-8")
            if not sql.strip():
                continue
            _exec_sql_compat(conn, sql)
            logger.info("migration_applied file=%s database=%s", fname, database)
            newly_applied.append(fname)
            if ephemeral:
                continue
            journal_entries.append(
                {
                    "filename": f"migrations/{fname}",
                    "database": database,
                    # ISO-8601 UTC without fractional seconds
                    "applied_at": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
                }
            )
            _atomic_write_json(journal_path, journal_entries)
    return newly_applied


def _atomic_write_json(path: Path, content: list[dict]) -> None:
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(json.dumps(content, ensure_ascii=False, indent=2), encoding="utf-8")
    os.replace(tmp_path, path)


__all__ = ["DEFAULT_MIGRATIONS_DIR", "apply_migrations"]
