"""Onboarding state data access helpers.

One ``onboardings`` row per client and form carries the status, a version
counter used for compare-and-swap writes, and the flat investor-profile
step 1 columns. Each step's field record lives in ``onboarding_steps`` as a
JSON document alongside its question cursor.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import bindparam, text as sql_text
from sqlalchemy.engine import Connection

from app.db.base import get_engine
from app.logic.repository_users import utc_timestamp
from app.models.onboarding import OnboardingRecord, OnboardingStatus, StepRecord

logger = logging.getLogger(__name__)

LEGACY_TEXT_COLUMNS = ("step1_rr_name", "step1_rr_no", "step1_customer_names", "step1_account_no")
LEGACY_JSON_COLUMNS = ("step1_account_type",)


class StaleOnboardingError(Exception):
    """Raised when an onboarding row changed since it was read."""


def _decode(raw: Any) -> Any:
    if raw is None or not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("onboarding_json_unreadable length=%s", len(raw))
        return None


def ensure_onboarding(conn: Connection, client_id: str, form_code: str) -> bool:
    """Create a NOT_STARTED row when missing; return True if one was created."""
    exists = conn.execute(
        sql_text("SELECT 1 FROM onboardings WHERE client_id = :cid AND form_code = :code"),
        {"cid": client_id, "code": form_code},
    ).first()
    if exists:
        return False
    conn.execute(
        sql_text(
            "INSERT INTO onboardings (client_id, form_code, status, version, updated_at) "
            "VALUES (:cid, :code, :status, 0, :updated_at)"
        ),
        {
            "cid": client_id,
            "code": form_code,
            "status": OnboardingStatus.NOT_STARTED.value,
            "updated_at": utc_timestamp(),
        },
    )
    return True


def load_onboardings(conn: Connection, client_ids: Iterable[str]) -> Dict[str, Dict[str, OnboardingRecord]]:
    """Onboarding records for each client id, keyed by form code."""
    ids = list(client_ids)
    result: Dict[str, Dict[str, OnboardingRecord]] = {cid: {} for cid in ids}
    if not ids:
        return result

    rows = conn.execute(
        sql_text(
            "SELECT client_id, form_code, status, version, "
            + ", ".join(LEGACY_TEXT_COLUMNS + LEGACY_JSON_COLUMNS)
            + " FROM onboardings WHERE client_id IN :ids"
        ).bindparams(bindparam("ids", expanding=True)),
        {"ids": ids},
    ).mappings().all()
    for r in rows:
        legacy: Dict[str, Any] = {col: r[col] for col in LEGACY_TEXT_COLUMNS if r[col] is not None}
        legacy.update({col: _decode(r[col]) for col in LEGACY_JSON_COLUMNS if r[col] is not None})
        result[str(r["client_id"])][str(r["form_code"])] = OnboardingRecord(
            form_code=str(r["form_code"]),
            status=OnboardingStatus(str(r["status"])),
            version=int(r["version"] or 0),
            legacy=legacy,
        )

    steps = conn.execute(
        sql_text(
            "SELECT client_id, form_code, step_number, current_question_index, data "
            "FROM onboarding_steps WHERE client_id IN :ids"
        ).bindparams(bindparam("ids", expanding=True)),
        {"ids": ids},
    ).mappings().all()
    for s in steps:
        record = result[str(s["client_id"])].get(str(s["form_code"]))
        if record is None:
            continue
        record.steps[int(s["step_number"])] = StepRecord(
            current_question_index=int(s["current_question_index"] or 0),
            data=_decode(s["data"]),
        )
    return result


def save_step(
    client_id: str,
    form_code: str,
    step_number: int,
    data: Dict[str, Any],
    *,
    status: OnboardingStatus,
    expected_version: int,
    current_question_index: Optional[int] = None,
    legacy_columns: Optional[Dict[str, Any]] = None,
) -> int:
    """Persist one step and the recomputed status; return the new version.

    The onboarding row is updated only while its version still equals
    ``expected_version``; otherwise ``StaleOnboardingError`` is raised and
    nothing is written.
    """
    columns = {
        col: (json.dumps(value) if col in LEGACY_JSON_COLUMNS and value is not None else value)
        for col, value in (legacy_columns or {}).items()
        if col in LEGACY_TEXT_COLUMNS + LEGACY_JSON_COLUMNS
    }
    assignments = "".join(f", {col} = :{col}" for col in columns)
    eng = get_engine()
    with eng.begin() as conn:
        ensure_onboarding(conn, client_id, form_code)
        updated = conn.execute(
            sql_text(
                "UPDATE onboardings SET status = :status, version = version + 1, updated_at = :updated_at"
                + assignments
                + " WHERE client_id = :cid AND form_code = :code AND version = :expected"
            ),
            {
                "status": status.value,
                "updated_at": utc_timestamp(),
                "cid": client_id,
                "code": form_code,
                "expected": expected_version,
                **columns,
            },
        )
        if updated.rowcount != 1:
            logger.info(
                "onboarding_write_conflict client=%s form=%s expected_version=%s",
                client_id,
                form_code,
                expected_version,
            )
            raise StaleOnboardingError(form_code)

        params = {
            "cid": client_id,
            "code": form_code,
            "num": step_number,
            "data": json.dumps(data),
            "idx": current_question_index,
        }
        if current_question_index is None:
            changed = conn.execute(
                sql_text(
                    "UPDATE onboarding_steps SET data = :data "
                    "WHERE client_id = :cid AND form_code = :code AND step_number = :num"
                ),
                params,
            )
            params["idx"] = 0
        else:
            changed = conn.execute(
                sql_text(
                    "UPDATE onboarding_steps SET data = :data, current_question_index = :idx "
                    "WHERE client_id = :cid AND form_code = :code AND step_number = :num"
                ),
                params,
            )
        if changed.rowcount == 0:
            conn.execute(
                sql_text(
                    "INSERT INTO onboarding_steps (client_id, form_code, step_number, current_question_index, data) "
                    "VALUES (:cid, :code, :num, :idx, :data)"
                ),
                params,
            )
    return expected_version + 1


__all__ = [
    "LEGACY_JSON_COLUMNS",
    "LEGACY_TEXT_COLUMNS",
    "StaleOnboardingError",
    "ensure_onboarding",
    "load_onboardings",
    "save_step",
]
