"""Supported forms, their onboarding order and cross-form routing.

Forms are built once, in dependency order, and looked up by code or by
the URL slug their step routes use.
"""

from __future__ import annotations

from typing import Iterable
import logging

from app.forms.baiodf import BAIODF_CODE, BaiodfForm
from app.forms.baiv_506c import BAIV_506C_CODE, Baiv506cForm
from app.forms.base import FormDefinition
from app.forms.investor_profile import INVESTOR_PROFILE_CODE, InvestorProfileForm
from app.forms.statement_of_financial_condition import SFC_CODE, StatementOfFinancialConditionForm
from app.models.onboarding import ClientSnapshot, OnboardingStatus

logger = logging.getLogger(__name__)

FORM_SEQUENCE: tuple[str, ...] = (INVESTOR_PROFILE_CODE, SFC_CODE, BAIODF_CODE, BAIV_506C_CODE)

INVESTOR_PROFILE = InvestorProfileForm()
STATEMENT_OF_FINANCIAL_CONDITION = StatementOfFinancialConditionForm(INVESTOR_PROFILE)
BAIODF = BaiodfForm(INVESTOR_PROFILE, STATEMENT_OF_FINANCIAL_CONDITION)
BAIV_506C = Baiv506cForm(INVESTOR_PROFILE, STATEMENT_OF_FINANCIAL_CONDITION, BAIODF)

_FORMS: dict[str, FormDefinition] = {
    form.code: form for form in (INVESTOR_PROFILE, STATEMENT_OF_FINANCIAL_CONDITION, BAIODF, BAIV_506C)
}
_FORMS_BY_SLUG: dict[str, FormDefinition] = {form.slug: form for form in _FORMS.values()}


def is_supported(code: str) -> bool:
    return code in _FORMS


def get_form(code: str) -> FormDefinition | None:
    return _FORMS.get(code)


def form_by_slug(slug: str) -> FormDefinition | None:
    return _FORMS_BY_SLUG.get(slug)


def sequence_index(code: str) -> int:
    """Position in the onboarding order; unknown codes sort last."""
    try:
        return FORM_SEQUENCE.index(code)
    except ValueError:
        return len(FORM_SEQUENCE)


def normalize_form_codes(codes: Iterable[str]) -> list[str]:
    """Trim, uppercase and de-duplicate, keeping first-seen order."""
    result: list[str] = []
    for code in codes:
        value = str(code).strip().upper()
        if value and value not in result:
            result.append(value)
    return result


def unsupported_codes(codes: Iterable[str]) -> list[str]:
    return [code for code in codes if not is_supported(code)]


def stored_status(snapshot: ClientSnapshot, code: str) -> OnboardingStatus:
    record = snapshot.onboarding(code)
    return record.status if record else OnboardingStatus.NOT_STARTED


def next_route_after_completion(snapshot: ClientSnapshot, completed_code: str) -> str | None:
    """First pending step among the selected forms after ``completed_code``.

    Forms without an onboarding row start at step 1; forms whose required
    steps all validate are skipped.
    """
    start = sequence_index(completed_code) + 1
    for code in FORM_SEQUENCE[start:]:
        if not snapshot.is_selected(code):
            continue
        route = _FORMS[code].pending_route(snapshot)
        if route is not None:
            return route
    return None


def next_onboarding_route(snapshot: ClientSnapshot) -> str | None:
    """Resume route of the first selected form that is not COMPLETED."""
    for code in FORM_SEQUENCE:
        if not snapshot.is_selected(code):
            continue
        if stored_status(snapshot, code) is OnboardingStatus.COMPLETED:
            continue
        route = _FORMS[code].resume_route(snapshot)
        if route:
            return route
    return None


def build_workspace(snapshot: ClientSnapshot, active_forms: Iterable[dict]) -> dict:
    """Workspace view over every active catalogue form, in onboarding order."""
    ordered = sorted(active_forms, key=lambda form: (sequence_index(form["code"]), form["title"]))
    items = []
    for catalogue in ordered:
        code = catalogue["code"]
        selected = snapshot.is_selected(code)
        form = _FORMS.get(code)
        can_route = selected and form is not None
        items.append(
            {
                "code": code,
                "title": catalogue["title"],
                "selected": selected,
                "onboardingStatus": stored_status(snapshot, code).value if selected and form else None,
                "resumeRoute": form.resume_route(snapshot) if can_route else None,
                "viewRoute": f"/clients/{snapshot.client_id}/forms/{code}/view/step/1" if can_route else None,
                "editRoute": f"/clients/{snapshot.client_id}/forms/{code}/edit/step/1" if can_route else None,
                "totalSteps": form.total_steps if form else None,
            }
        )
    return {"clientId": snapshot.client_id, "clientName": snapshot.client_name, "forms": items}


__all__ = [
    "BAIODF",
    "BAIV_506C",
    "FORM_SEQUENCE",
    "INVESTOR_PROFILE",
    "STATEMENT_OF_FINANCIAL_CONDITION",
    "build_workspace",
    "form_by_slug",
    "get_form",
    "is_supported",
    "next_onboarding_route",
    "next_route_after_completion",
    "normalize_form_codes",
    "sequence_index",
    "stored_status",
    "unsupported_codes",
]
