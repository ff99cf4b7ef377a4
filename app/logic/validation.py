"""Result values for answer and completion validation.

Validators never raise for bad user input; they return a
``ValidationResult`` carrying either the normalized value or a map of
dotted field paths to messages. Callers branch on ``success``.
"""

from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, Field

FieldErrors = Dict[str, str]

UNSUPPORTED_QUESTION_MESSAGE = "Unsupported onboarding question."
INACTIVE_QUESTION_MESSAGE = "This question is not active for the selected account path."
CORRECT_FIELDS_MESSAGE = "Please correct the highlighted fields."


class ValidationResult(BaseModel):
    success: bool
    value: Any = None
    field_errors: FieldErrors = Field(default_factory=dict)


def ok(value: Any) -> ValidationResult:
    return ValidationResult(success=True, value=value)


def fail(field_errors: FieldErrors) -> ValidationResult:
    return ValidationResult(success=False, field_errors=dict(field_errors))


def from_errors(field_errors: FieldErrors, value: Any) -> ValidationResult:
    """Fail when ``field_errors`` is non-empty, else succeed with ``value``."""
    if field_errors:
        return fail(field_errors)
    return ok(value)


def unsupported_question() -> ValidationResult:
    return fail({"questionId": UNSUPPORTED_QUESTION_MESSAGE})


def collect(errors: FieldErrors, result: ValidationResult) -> bool:
    """Merge a failed result's errors into ``errors``; return its success."""
    if not result.success:
        errors.update(result.field_errors)
    return result.success


__all__ = [
    "CORRECT_FIELDS_MESSAGE",
    "FieldErrors",
    "INACTIVE_QUESTION_MESSAGE",
    "UNSUPPORTED_QUESTION_MESSAGE",
    "ValidationResult",
    "collect",
    "fail",
    "from_errors",
    "ok",
    "unsupported_question",
]
