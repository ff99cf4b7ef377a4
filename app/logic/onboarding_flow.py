"""Read and write paths for one form step of one client.

Routes load a ``ClientSnapshot``, then call into this module, which runs
the step engine, recomputes the form status against the updated snapshot,
persists through the onboarding repository and shapes the response.
"""

from __future__ import annotations

from typing import Any, Dict
import logging

from app.forms.base import FormDefinition
from app.forms.registry import next_route_after_completion, stored_status
from app.http.problem import ApiError, validation_failed
from app.logic.events import ONBOARDING_STATUS_CHANGED, ONBOARDING_STEP_SAVED, publish
from app.logic.repository_onboardings import StaleOnboardingError, save_step
from app.logic.step_engine import StepDefinition, StepState, submit_answer
from app.logic.validation import unsupported_question
from app.models.onboarding import ClientSnapshot, OnboardingStatus

logger = logging.getLogger(__name__)

CONFLICT_MESSAGE = "This form was updated by another request. Reload and try again."


def require_selected(form: FormDefinition, snapshot: ClientSnapshot) -> None:
    if not snapshot.is_selected(form.code):
        raise ApiError(400, form.not_selected_message)


def require_available(form: FormDefinition, number: int, snapshot: ClientSnapshot) -> None:
    message = form.unavailable_step_message(number, snapshot)
    if message:
        raise ApiError(400, message)


def check_question_id(step: StepDefinition, question_id: str) -> None:
    """Reject ids the step does not define before any lookup."""
    if not step.is_question_id(question_id):
        raise validation_failed(unsupported_question().field_errors)


def _step_payload(form: FormDefinition, number: int, snapshot: ClientSnapshot, state: StepState) -> Dict[str, Any]:
    step = form.step(number)
    status = stored_status(snapshot, form.code)
    payload: Dict[str, Any] = {
        "key": step.key,
        "label": step.label,
        "currentQuestionId": state.current_question_id,
        "currentQuestionIndex": state.current_question_index,
        "visibleQuestionIds": state.visible_question_ids,
        "fields": state.fields,
    }
    payload.update(form.response_extras(number, state.fields, snapshot))
    if number == form.total_steps:
        payload["nextRouteAfterCompletion"] = (
            next_route_after_completion(snapshot, form.code) if status is OnboardingStatus.COMPLETED else None
        )
    return {"onboarding": {"clientId": snapshot.client_id, "status": status.value, "step": payload}}


def step_response(form: FormDefinition, number: int, snapshot: ClientSnapshot) -> Dict[str, Any]:
    """Current state of a step with prefill applied and the cursor clamped."""
    fields = form.load_fields(number, snapshot)
    record = snapshot.onboarding(form.code)
    stored_index = record.step(number).current_question_index if record else 0
    return _step_payload(form, number, snapshot, form.step(number).state(fields, stored_index))


def review_response(form: FormDefinition, number: int, snapshot: ClientSnapshot) -> Dict[str, Any]:
    body = step_response(form, number, snapshot)
    body["review"] = {"stepNumber": number, "totalSteps": form.total_steps}
    return body


def _persist(
    form: FormDefinition,
    number: int,
    snapshot: ClientSnapshot,
    fields: Dict[str, Any],
    index: int | None,
) -> ClientSnapshot:
    serialized = form.serialize(number, fields)
    updated = snapshot.with_step_data(form.code, number, serialized, index)
    status = form.compute_status(updated)
    previous = stored_status(snapshot, form.code)
    record = snapshot.onboarding(form.code)
    expected_version = record.version if record else 0
    try:
        version = save_step(
            snapshot.client_id,
            form.code,
            number,
            serialized,
            status=status,
            expected_version=expected_version,
            current_question_index=index,
            legacy_columns=form.legacy_columns(number, fields),
        )
    except StaleOnboardingError as exc:
        raise ApiError(409, CONFLICT_MESSAGE) from exc

    saved = updated.onboardings[form.code]
    saved.status = status
    saved.version = version
    publish(
        ONBOARDING_STEP_SAVED,
        {"client_id": snapshot.client_id, "form_code": form.code, "step": number, "status": status.value},
    )
    if status is not previous:
        publish(
            ONBOARDING_STATUS_CHANGED,
            {"client_id": snapshot.client_id, "form_code": form.code, "from": previous.value, "to": status.value},
        )
    return updated


def submit_step_answer(
    form: FormDefinition,
    number: int,
    snapshot: ClientSnapshot,
    question_id: str,
    answer: Any,
) -> Dict[str, Any]:
    """Validate one answer, store the step and return its new state."""
    step = form.step(number)
    context = form.step_context(number, snapshot)
    existing = form.load_fields(number, snapshot, context=context)
    result = submit_answer(step, existing, question_id, answer, context)
    if not result.success:
        raise validation_failed(result.field_errors)

    state: StepState = result.value
    updated = _persist(form, number, snapshot, state.fields, state.current_question_index)
    logger.info(
        "step_answer_saved client=%s form=%s step=%s question=%s",
        snapshot.client_id,
        form.code,
        number,
        question_id,
    )
    return _step_payload(form, number, updated, step.state(form.load_fields(number, updated), state.current_question_index))


def submit_review_fields(form: FormDefinition, number: int, snapshot: ClientSnapshot, raw_fields: Any) -> Dict[str, Any]:
    """Replace a whole step from the review screen after completion checks.

    Optional steps (investor profile step 4 on single-owner paths) are stored
    without completion checks.
    """
    step = form.step(number)
    context = form.step_context(number, snapshot)
    fields = step.sanitize(step.apply_prefill(step.normalize(raw_fields, context), context))
    if form.is_step_required(number, snapshot):
        errors = step.validate_completion(fields, context)
        if errors:
            raise validation_failed(errors)

    updated = _persist(form, number, snapshot, fields, None)
    logger.info("review_step_saved client=%s form=%s step=%s", snapshot.client_id, form.code, number)
    return review_response(form, number, updated)


__all__ = [
    "CONFLICT_MESSAGE",
    "check_question_id",
    "require_available",
    "require_selected",
    "review_response",
    "step_response",
    "submit_review_fields",
    "submit_step_answer",
]
