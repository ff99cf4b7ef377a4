"""Generic questionnaire step engine.

A form step is described by a ``StepDefinition`` subclass that supplies:

- ``default_fields`` / ``normalize``: tolerant decoding of the stored blob;
- ``sanitize``: the pass that clears data of branches no longer selected;
- ``visible_question_ids``: ordered questions derived from field state;
- a question table mapping each question id to a validator and a writer;
- ``validate_completion``: the full re-check used for onboarding status.

``submit_answer`` runs the shared read-validate-apply-advance cycle so the
HTTP layer only loads and persists records.
"""

from __future__ import annotations

import copy
from typing import Any, Callable, Iterable
import logging

from pydantic import BaseModel, Field

from app.logic.validation import (
    INACTIVE_QUESTION_MESSAGE,
    FieldErrors,
    ValidationResult,
    fail,
    ok,
    unsupported_question,
)
from app.logic.visibility_rules import (
    clamp_question_index,
    current_question_id,
    next_question_index,
)

logger = logging.getLogger(__name__)


class StepContext(BaseModel):
    """Read-only inputs a step may consult besides its own fields.

    ``prefill`` holds cross-form values keyed by the step's own prefill
    names; ``legacy`` holds flat legacy columns used while normalizing;
    ``related`` carries values read from sibling steps for derived output;
    ``current_fields`` is the normalized record an answer is applied to.
    """

    requires_joint_owner_signature: bool = False
    advisor_name: str | None = None
    prefill: dict[str, Any] = Field(default_factory=dict)
    legacy: dict[str, Any] = Field(default_factory=dict)
    related: dict[str, Any] = Field(default_factory=dict)
    current_fields: dict[str, Any] | None = None


class StepState(BaseModel):
    fields: dict[str, Any]
    visible_question_ids: list[str]
    current_question_index: int
    current_question_id: str


AnswerValidator = Callable[[Any, StepContext], ValidationResult]
AnswerWriter = Callable[[dict, Any], None]


class Question:
    """One addressable unit of input bound to a field group."""

    __slots__ = ("id", "validator", "writer")

    def __init__(self, question_id: str, validator: AnswerValidator, writer: AnswerWriter) -> None:
        self.id = question_id
        self.validator = validator
        self.writer = writer

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"Question({self.id!r})"


def set_path(fields: dict, path: Iterable[str], value: Any) -> None:
    """Write ``value`` at a dotted path inside ``fields``."""
    keys = list(path)
    target = fields
    for key in keys[:-1]:
        target = target.setdefault(key, {})
    target[keys[-1]] = value


def writer_for(*path: str) -> AnswerWriter:
    """Writer that stores the validated value at ``path``."""

    def _write(fields: dict, value: Any) -> None:
        set_path(fields, path, value)

    return _write


def merge_writer(*path: str) -> AnswerWriter:
    """Writer that merges a dict value into the group at ``path``."""

    def _write(fields: dict, value: Any) -> None:
        target = fields
        for key in path:
            target = target.setdefault(key, {})
        target.update(value)

    return _write


class StepDefinition:
    """Base class for one step of a form."""

    number: int = 1
    key: str = ""
    label: str = ""

    def __init__(self) -> None:
        questions = self.build_questions()
        self._questions: dict[str, Question] = {q.id: q for q in questions}
        self._question_ids: tuple[str, ...] = tuple(q.id for q in questions)

    # -- description ------------------------------------------------------

    def build_questions(self) -> list[Question]:
        raise NotImplementedError

    @property
    def question_ids(self) -> tuple[str, ...]:
        return self._question_ids

    @property
    def fallback_question_id(self) -> str:
        return self._question_ids[0]

    def is_question_id(self, question_id: str) -> bool:
        return question_id in self._questions

    # -- field record -----------------------------------------------------

    def default_fields(self) -> dict:
        raise NotImplementedError

    def normalize(self, raw: Any, context: StepContext | None = None) -> dict:
        raise NotImplementedError

    def sanitize(self, fields: dict) -> dict:
        return copy.deepcopy(fields)

    def serialize(self, fields: dict) -> dict:
        return self.sanitize(fields)

    def apply_prefill(self, fields: dict, context: StepContext) -> dict:
        return fields

    def visible_question_ids(self, fields: dict) -> list[str]:
        return list(self._question_ids)

    def response_extras(self, fields: dict, context: StepContext) -> dict:
        return {}

    # -- answers ----------------------------------------------------------

    def validate_answer(
        self, question_id: str, answer: Any, context: StepContext | None = None
    ) -> ValidationResult:
        question = self._questions.get(question_id)
        if question is None:
            return unsupported_question()
        return question.validator(answer, context or StepContext())

    def apply_answer(self, fields: dict, question_id: str, value: Any) -> dict:
        """Deep-copy, write the validated value, then re-sanitize."""
        question = self._questions.get(question_id)
        next_fields = copy.deepcopy(fields)
        if question is not None:
            question.writer(next_fields, copy.deepcopy(value))
        return self.sanitize(next_fields)

    def validate_completion(self, fields: dict, context: StepContext | None = None) -> FieldErrors:
        raise NotImplementedError

    # -- cursor -----------------------------------------------------------

    def state(self, fields: dict, stored_index: Any) -> StepState:
        visible = self.visible_question_ids(fields)
        index = clamp_question_index(stored_index, visible)
        return StepState(
            fields=fields,
            visible_question_ids=visible,
            current_question_index=index,
            current_question_id=current_question_id(visible, index, self.fallback_question_id),
        )


def submit_answer(
    step: StepDefinition,
    existing_fields: dict,
    question_id: str,
    answer: Any,
    context: StepContext | None = None,
) -> ValidationResult:
    """Validate and apply one answer against the current record.

    Returns a successful result carrying a ``StepState`` whose cursor sits
    one past the answered question, or a failed result with field errors.
    The question must be visible before the answer is applied.
    """
    if not step.is_question_id(question_id):
        return unsupported_question()
    if question_id not in step.visible_question_ids(existing_fields):
        return fail({"questionId": INACTIVE_QUESTION_MESSAGE})

    base = context or StepContext()
    answer_context = base.model_copy(update={"current_fields": existing_fields})
    validation = step.validate_answer(question_id, answer, answer_context)
    if not validation.success:
        logger.info(
            "answer_rejected step=%s question=%s fields=%s",
            step.key,
            question_id,
            sorted(validation.field_errors),
        )
        return validation

    next_fields = step.apply_answer(existing_fields, question_id, validation.value)
    visible_after = step.visible_question_ids(next_fields)
    index = next_question_index(question_id, visible_after)
    return ok(
        StepState(
            fields=next_fields,
            visible_question_ids=visible_after,
            current_question_index=index,
            current_question_id=current_question_id(visible_after, index, step.fallback_question_id),
        )
    )


__all__ = [
    "AnswerValidator",
    "AnswerWriter",
    "Question",
    "StepContext",
    "StepDefinition",
    "StepState",
    "merge_writer",
    "set_path",
    "submit_answer",
    "writer_for",
]
