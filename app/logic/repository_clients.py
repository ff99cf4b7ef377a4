"""Client data access helpers.

Clients belong to the user who created them; every lookup is scoped by
owner so one broker never sees another's clients.
"""

from __future__ import annotations

import uuid
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import bindparam, text as sql_text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from app.db.base import get_engine
from app.logic.repository_onboardings import ensure_onboarding, load_onboardings
from app.logic.repository_users import ensure_self_broker, utc_timestamp
from app.models.onboarding import ClientSnapshot

logger = logging.getLogger(__name__)


class DuplicateClientError(Exception):
    """Raised when the owner already has a client with the same email."""


def _upsert_external_broker(conn: Connection, owner_id: str, name: str, email: str) -> str:
    existing = conn.execute(
        sql_text("SELECT id FROM brokers WHERE owner_user_id = :owner AND email = :email"),
        {"owner": owner_id, "email": email},
    ).scalar()
    if existing:
        conn.execute(
            sql_text("UPDATE brokers SET name = :name, kind = 'EXTERNAL' WHERE id = :id"),
            {"name": name, "id": existing},
        )
        return str(existing)
    broker_id = str(uuid.uuid4())
    conn.execute(
        sql_text(
            "INSERT INTO brokers (id, owner_user_id, name, email, kind, created_at) "
            "VALUES (:id, :owner, :name, :email, 'EXTERNAL', :created_at)"
        ),
        {"id": broker_id, "owner": owner_id, "name": name, "email": email, "created_at": utc_timestamp()},
    )
    return broker_id


def _insert_selections(conn: Connection, client_id: str, forms: Iterable[Dict[str, str]]) -> List[str]:
    added: List[str] = []
    for form in forms:
        conn.execute(
            sql_text(
                "INSERT INTO client_form_selections (client_id, form_id, created_at) "
                "VALUES (:cid, :fid, :created_at)"
            ),
            {"cid": client_id, "fid": form["id"], "created_at": utc_timestamp()},
        )
        ensure_onboarding(conn, client_id, form["code"])
        added.append(form["code"])
    return added


def create_client(
    owner: Dict[str, Any],
    *,
    name: str,
    email: str,
    phone: Optional[str],
    additional_brokers: Iterable[Dict[str, str]],
    forms: Iterable[Dict[str, str]],
) -> str:
    """Insert a client with its broker links, form selections and onboardings.

    ``additional_brokers`` are upserted by email as EXTERNAL brokers; the
    owner's own SELF broker is always the primary.
    """
    client_id = str(uuid.uuid4())
    eng = get_engine()
    try:
        with eng.begin() as conn:
            duplicate = conn.execute(
                sql_text("SELECT 1 FROM clients WHERE owner_user_id = :owner AND email = :email"),
                {"owner": owner["id"], "email": email},
            ).first()
            if duplicate:
                raise DuplicateClientError(email)

            primary_id = ensure_self_broker(conn, owner)
            additional_ids: List[str] = []
            for broker in additional_brokers:
                broker_id = _upsert_external_broker(conn, owner["id"], broker["name"], broker["email"])
                if broker_id != primary_id and broker_id not in additional_ids:
                    additional_ids.append(broker_id)

            conn.execute(
                sql_text(
                    "INSERT INTO clients (id, owner_user_id, name, email, phone, created_at) "
                    "VALUES (:id, :owner, :name, :email, :phone, :created_at)"
                ),
                {
                    "id": client_id,
                    "owner": owner["id"],
                    "name": name,
                    "email": email,
                    "phone": phone,
                    "created_at": utc_timestamp(),
                },
            )
            links = [(primary_id, "PRIMARY")] + [(bid, "ADDITIONAL") for bid in additional_ids]
            for position, (broker_id, role) in enumerate(links):
                conn.execute(
                    sql_text(
                        "INSERT INTO client_brokers (client_id, broker_id, role, position) "
                        "VALUES (:cid, :bid, :role, :position)"
                    ),
                    {"cid": client_id, "bid": broker_id, "role": role, "position": position},
                )
            _insert_selections(conn, client_id, forms)
    except IntegrityError as exc:
        logger.info("client_insert_conflict owner=%s error=%s", owner["id"], type(exc).__name__)
        raise DuplicateClientError(email) from exc
    return client_id


def add_form_selections(client_id: str, forms: Iterable[Dict[str, str]]) -> List[str]:
    """Select ``forms`` for a client and open their onboardings; return the codes added."""
    eng = get_engine()
    with eng.begin() as conn:
        return _insert_selections(conn, client_id, forms)


def _hydrate(conn: Connection, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    ids = [str(r["id"]) for r in rows]
    if not ids:
        return []
    brokers: Dict[str, List[Dict[str, Any]]] = {cid: [] for cid in ids}
    broker_rows = conn.execute(
        sql_text(
            "SELECT cb.client_id, cb.role, b.id, b.name, b.email, b.kind "
            "FROM client_brokers cb JOIN brokers b ON b.id = cb.broker_id "
            "WHERE cb.client_id IN :ids ORDER BY cb.position ASC"
        ).bindparams(bindparam("ids", expanding=True)),
        {"ids": ids},
    ).mappings().all()
    for b in broker_rows:
        brokers[str(b["client_id"])].append(
            {"id": b["id"], "name": b["name"], "email": b["email"], "kind": b["kind"], "role": b["role"]}
        )

    selections: Dict[str, List[Dict[str, Any]]] = {cid: [] for cid in ids}
    selection_rows = conn.execute(
        sql_text(
            "SELECT s.client_id, f.id, f.code, f.title "
            "FROM client_form_selections s JOIN forms f ON f.id = s.form_id "
            "WHERE s.client_id IN :ids ORDER BY s.created_at ASC, f.title ASC"
        ).bindparams(bindparam("ids", expanding=True)),
        {"ids": ids},
    ).mappings().all()
    for s in selection_rows:
        selections[str(s["client_id"])].append({"id": s["id"], "code": s["code"], "title": s["title"]})

    onboardings = load_onboardings(conn, ids)
    hydrated = []
    for r in rows:
        cid = str(r["id"])
        hydrated.append(
            {
                **r,
                "brokers": brokers[cid],
                "selected_forms": selections[cid],
                "onboardings": onboardings[cid],
            }
        )
    return hydrated


def list_clients(owner_id: str) -> List[Dict[str, Any]]:
    """Hydrated clients of one owner, newest first."""
    eng = get_engine()
    with eng.connect() as conn:
        rows = conn.execute(
            sql_text(
                "SELECT id, name, email, phone, created_at FROM clients "
                "WHERE owner_user_id = :owner ORDER BY created_at DESC"
            ),
            {"owner": owner_id},
        ).mappings().all()
        return _hydrate(conn, [dict(r) for r in rows])


def get_client(owner_id: str, client_id: str) -> Optional[Dict[str, Any]]:
    eng = get_engine()
    with eng.connect() as conn:
        row = conn.execute(
            sql_text(
                "SELECT id, name, email, phone, created_at FROM clients "
                "WHERE id = :id AND owner_user_id = :owner"
            ),
            {"id": client_id, "owner": owner_id},
        ).mappings().first()
        if not row:
            return None
        return _hydrate(conn, [dict(row)])[0]


def to_snapshot(client: Dict[str, Any], advisor_name: str) -> ClientSnapshot:
    return ClientSnapshot(
        client_id=str(client["id"]),
        client_name=str(client["name"]),
        advisor_name=advisor_name,
        selected_codes=[str(f["code"]) for f in client["selected_forms"]],
        onboardings=client["onboardings"],
    )


def load_snapshot(owner: Dict[str, Any], client_id: str) -> Optional[ClientSnapshot]:
    """Snapshot of one owned client, or None when it does not exist."""
    client = get_client(owner["id"], client_id)
    if client is None:
        return None
    return to_snapshot(client, owner["name"])


__all__ = [
    "DuplicateClientError",
    "add_form_selections",
    "create_client",
    "get_client",
    "list_clients",
    "load_snapshot",
    "to_snapshot",
]
