"""Client creation, listing and form selection endpoints."""

from __future__ import annotations

from typing import Any, Dict
import logging

from fastapi import APIRouter, Depends, status

from app.auth.guard import require_user
from app.forms.investor_profile import INVESTOR_PROFILE_CODE
from app.forms.registry import (
    build_workspace,
    next_onboarding_route,
    normalize_form_codes,
    sequence_index,
    unsupported_codes,
)
from app.http.problem import ApiError
from app.logic.client_views import to_client_dto
from app.logic.events import CLIENT_CREATED, FORMS_SELECTED, publish
from app.logic.repository_clients import (
    DuplicateClientError,
    add_form_selections,
    create_client,
    get_client,
    list_clients,
    to_snapshot,
)
from app.logic.repository_forms import active_forms_by_code, list_active_forms
from app.models.requests import CreateClientBody, SelectFormsBody

router = APIRouter()
logger = logging.getLogger(__name__)


def clean_client_id(client_id: str) -> str:
    cleaned = (client_id or "").strip()
    if not cleaned:
        raise ApiError(400, "Invalid client identifier.")
    return cleaned


def _active_forms_or_error(codes: list[str], field: str) -> list[Dict[str, str]]:
    available = active_forms_by_code(codes)
    missing = [code for code in codes if code not in available]
    if missing:
        raise ApiError(
            400,
            "Some selected forms are inactive or missing.",
            {field: f"Unavailable form code(s): {', '.join(missing)}."},
        )
    return [available[code] for code in codes]


def _unsupported_error(codes: list[str], field: str) -> ApiError:
    return ApiError(400, "Unsupported form selection.", {field: f"Unsupported form code(s): {', '.join(codes)}."})


@router.get("/clients", summary="List the broker's clients", operation_id="listClients")
def get_clients(user: Dict[str, Any] = Depends(require_user)):
    return {"clients": [to_client_dto(c, user["name"]) for c in list_clients(user["id"])]}


@router.post(
    "/clients",
    summary="Create a client with selected forms",
    operation_id="createClient",
    status_code=status.HTTP_201_CREATED,
)
def post_client(body: CreateClientBody, user: Dict[str, Any] = Depends(require_user)):
    codes = normalize_form_codes(body.selectedFormCodes)
    if INVESTOR_PROFILE_CODE not in codes:
        raise ApiError(
            400,
            "Investor Profile must be selected for every client.",
            {"selectedFormCodes": "Investor Profile is required."},
        )
    unsupported = unsupported_codes(codes)
    if unsupported:
        raise _unsupported_error(unsupported, "selectedFormCodes")
    forms = _active_forms_or_error(codes, "selectedFormCodes")

    brokers: Dict[str, Dict[str, str]] = {}
    for broker in body.additionalBrokers:
        if broker.email != user["email"]:
            brokers[broker.email] = {"name": broker.name, "email": broker.email}

    try:
        client_id = create_client(
            user,
            name=body.clientName,
            email=body.clientEmail,
            phone=body.clientPhone,
            additional_brokers=brokers.values(),
            forms=forms,
        )
    except DuplicateClientError as exc:
        raise ApiError(
            409, "A client with this email already exists.", {"clientEmail": "Client email already exists."}
        ) from exc

    publish(CLIENT_CREATED, {"client_id": client_id, "form_codes": codes})
    logger.info("client_created client=%s forms=%s", client_id, codes)
    client = get_client(user["id"], client_id)
    return {"client": to_client_dto(client, user["name"])}


@router.get(
    "/clients/{client_id}/forms/workspace",
    summary="Forms workspace for one client",
    operation_id="getClientFormsWorkspace",
)
def get_workspace(client_id: str, user: Dict[str, Any] = Depends(require_user)):
    client = get_client(user["id"], clean_client_id(client_id))
    if client is None:
        raise ApiError(404, "Client not found.")
    snapshot = to_snapshot(client, user["name"])
    return {"workspace": build_workspace(snapshot, list_active_forms())}


@router.post(
    "/clients/{client_id}/forms/select",
    summary="Add forms to a client",
    operation_id="selectClientForms",
)
def select_forms(client_id: str, body: SelectFormsBody, user: Dict[str, Any] = Depends(require_user)):
    cleaned_id = clean_client_id(client_id)
    codes = normalize_form_codes(body.formCodes)
    unsupported = unsupported_codes(codes)
    if unsupported:
        raise _unsupported_error(unsupported, "formCodes")

    client = get_client(user["id"], cleaned_id)
    if client is None:
        raise ApiError(404, "Client not found.")
    forms = _active_forms_or_error(codes, "formCodes")

    selected = {f["code"] for f in client["selected_forms"]}
    to_add = sorted((f for f in forms if f["code"] not in selected), key=lambda f: sequence_index(f["code"]))
    added = add_form_selections(cleaned_id, to_add) if to_add else []
    if added:
        publish(FORMS_SELECTED, {"client_id": cleaned_id, "form_codes": added})
        logger.info("client_forms_selected client=%s added=%s", cleaned_id, added)

    snapshot = to_snapshot(get_client(user["id"], cleaned_id), user["name"])
    return {
        "addedFormCodes": added,
        "nextOnboardingRoute": next_onboarding_route(snapshot),
        "workspace": build_workspace(snapshot, list_active_forms()),
    }
