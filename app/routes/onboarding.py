"""Step and review endpoints shared by every supported form.

Paths follow ``/clients/{client_id}/{form_slug}/step-{n}`` and
``/clients/{client_id}/{form_slug}/review/step-{n}``; the slug selects the
form definition and the step number one of its steps.
"""

from __future__ import annotations

from typing import Any, Dict, Tuple
import logging

from fastapi import APIRouter, Depends

from app.auth.guard import require_user
from app.forms.base import FormDefinition
from app.forms.registry import form_by_slug
from app.http.problem import ApiError
from app.logic.onboarding_flow import (
    check_question_id,
    require_available,
    require_selected,
    review_response,
    step_response,
    submit_review_fields,
    submit_step_answer,
)
from app.logic.repository_clients import load_snapshot
from app.models.onboarding import ClientSnapshot
from app.models.requests import ReviewStepBody, StepAnswerBody
from app.routes.clients import clean_client_id

router = APIRouter()
logger = logging.getLogger(__name__)


def _parse_step_number(raw: str) -> int:
    # ASCII only; int() rejects superscripts that str.isdigit() accepts
    return int(raw) if raw.isascii() and raw.isdigit() else 0


def _step_or_404(form_slug: str, step_number: str) -> Tuple[FormDefinition, int]:
    form = form_by_slug(form_slug)
    number = _parse_step_number(step_number)
    if form is None or form.step(number) is None:
        raise ApiError(404, "Endpoint not found.")
    return form, number


def _review_step(form_slug: str, step_number: str) -> Tuple[FormDefinition, int]:
    form = form_by_slug(form_slug)
    if form is None:
        raise ApiError(404, "Endpoint not found.")
    number = _parse_step_number(step_number.strip())
    if form.step(number) is None:
        raise ApiError(400, "Invalid review step request.")
    return form, number


def _snapshot(user: Dict[str, Any], client_id: str, form: FormDefinition) -> ClientSnapshot:
    snapshot = load_snapshot(user, client_id)
    if snapshot is None:
        raise ApiError(404, "Client not found.")
    require_selected(form, snapshot)
    return snapshot


@router.get(
    "/clients/{client_id}/{form_slug}/step-{step_number}",
    summary="Current state of one onboarding step",
    operation_id="getOnboardingStep",
)
def get_step(client_id: str, form_slug: str, step_number: str, user: Dict[str, Any] = Depends(require_user)):
    form, number = _step_or_404(form_slug, step_number)
    snapshot = _snapshot(user, clean_client_id(client_id), form)
    require_available(form, number, snapshot)
    return step_response(form, number, snapshot)


@router.post(
    "/clients/{client_id}/{form_slug}/step-{step_number}",
    summary="Answer one question of an onboarding step",
    operation_id="answerOnboardingQuestion",
)
def post_step(
    client_id: str,
    form_slug: str,
    step_number: str,
    body: StepAnswerBody,
    user: Dict[str, Any] = Depends(require_user),
):
    form, number = _step_or_404(form_slug, step_number)
    cleaned_id = clean_client_id(client_id)
    check_question_id(form.step(number), body.questionId)
    snapshot = _snapshot(user, cleaned_id, form)
    require_available(form, number, snapshot)
    return submit_step_answer(form, number, snapshot, body.questionId, body.answer)


@router.get(
    "/clients/{client_id}/{form_slug}/review/step-{step_number}",
    summary="Review one onboarding step",
    operation_id="getOnboardingReviewStep",
)
def get_review_step(client_id: str, form_slug: str, step_number: str, user: Dict[str, Any] = Depends(require_user)):
    form, number = _review_step(form_slug, step_number)
    snapshot = _snapshot(user, clean_client_id(client_id), form)
    return review_response(form, number, snapshot)


@router.post(
    "/clients/{client_id}/{form_slug}/review/step-{step_number}",
    summary="Replace one onboarding step from the review screen",
    operation_id="updateOnboardingReviewStep",
)
def post_review_step(
    client_id: str,
    form_slug: str,
    step_number: str,
    body: ReviewStepBody,
    user: Dict[str, Any] = Depends(require_user),
):
    form, number = _review_step(form_slug, step_number)
    snapshot = _snapshot(user, clean_client_id(client_id), form)
    return submit_review_fields(form, number, snapshot, body.fields)
