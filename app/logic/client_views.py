"""Response shapes for clients as listed on the dashboard."""

from __future__ import annotations

from typing import Any, Dict

from app.forms.registry import (
    BAIODF,
    BAIV_506C,
    INVESTOR_PROFILE,
    STATEMENT_OF_FINANCIAL_CONDITION,
    stored_status,
)
from app.logic.repository_clients import to_snapshot

# DTO key prefix per form; each yields has<X>, <x>OnboardingStatus, <x>ResumeStepRoute
_FORM_KEYS = (
    (INVESTOR_PROFILE, "InvestorProfile", "investorProfile"),
    (STATEMENT_OF_FINANCIAL_CONDITION, "StatementOfFinancialCondition", "statementOfFinancialCondition"),
    (BAIODF, "Baiodf", "baiodf"),
    (BAIV_506C, "Baiv506c", "baiv506c"),
)


def _broker(broker: Dict[str, Any]) -> Dict[str, Any]:
    return {"id": broker["id"], "name": broker["name"], "email": broker["email"]}


def to_client_dto(client: Dict[str, Any], advisor_name: str) -> Dict[str, Any]:
    snapshot = to_snapshot(client, advisor_name)
    primary = next((b for b in client["brokers"] if b["role"] == "PRIMARY"), None)
    dto: Dict[str, Any] = {
        "id": client["id"],
        "name": client["name"],
        "email": client["email"],
        "phone": client["phone"],
        "createdAt": client["created_at"],
        "primaryBroker": _broker(primary) if primary else None,
        "additionalBrokers": [_broker(b) for b in client["brokers"] if b["role"] == "ADDITIONAL"],
        "selectedForms": [dict(f) for f in client["selected_forms"]],
    }
    for form, flag, prefix in _FORM_KEYS:
        selected = snapshot.is_selected(form.code)
        dto[f"has{flag}"] = selected
        dto[f"{prefix}OnboardingStatus"] = stored_status(snapshot, form.code).value
        dto[f"{prefix}ResumeStepRoute"] = form.resume_route(snapshot) if selected else None
    return dto


__all__ = ["to_client_dto"]
