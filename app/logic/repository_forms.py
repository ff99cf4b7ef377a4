"""Form catalogue data access helpers."""

from __future__ import annotations

from typing import Dict, Iterable, List

from sqlalchemy import bindparam, text as sql_text

from app.db.base import get_engine


def list_active_forms() -> List[Dict[str, str]]:
    """Active catalogue entries ordered by title."""
    eng = get_engine()
    with eng.connect() as conn:
        rows = conn.execute(
            sql_text("SELECT id, code, title FROM forms WHERE active = :active ORDER BY title ASC"),
            {"active": True},
        ).mappings().all()
    return [dict(r) for r in rows]


def active_forms_by_code(codes: Iterable[str]) -> Dict[str, Dict[str, str]]:
    """Active catalogue entries for ``codes``, keyed by code."""
    wanted = list(codes)
    if not wanted:
        return {}
    eng = get_engine()
    stmt = sql_text(
        "SELECT id, code, title FROM forms WHERE active = :active AND code IN :codes"
    ).bindparams(bindparam("codes", expanding=True))
    with eng.connect() as conn:
        rows = conn.execute(stmt, {"active": True, "codes": wanted}).mappings().all()
    return {str(r["code"]): dict(r) for r in rows}


__all__ = ["active_forms_by_code", "list_active_forms"]
