"""Boolean-choice maps used for single and multi choice questions.

A map holds every allowed key with a boolean flag. Storage tolerates any
combination (all-false defaults included); cardinality is only enforced
when an answer or a completed step is validated.
"""

from __future__ import annotations

from typing import Any, Iterable, Sequence

from app.logic.validation import ValidationResult, fail, ok

SELECT_EXACTLY_ONE = "Select exactly one option."
SELECT_AT_LEAST_ONE = "Select at least one option."


def create_boolean_map(keys: Iterable[str], source: Any = None) -> dict[str, bool]:
    """Build a map over ``keys`` defaulting to False.

    Only literal booleans in ``source`` override the default; strings,
    numbers and nulls are ignored.
    """
    base = {key: False for key in keys}
    if not isinstance(source, dict):
        return base
    for key in base:
        if isinstance(source.get(key), bool):
            base[key] = source[key]
    return base


def count_true_flags(mapping: dict) -> int:
    return sum(1 for value in mapping.values() if value is True)


def selected_keys(mapping: dict, keys: Sequence[str]) -> list[str]:
    return [key for key in keys if mapping.get(key) is True]


def single_selection(mapping: dict, keys: Sequence[str]) -> str | None:
    """The one selected key, or ``None`` when zero or several are set."""
    selected = selected_keys(mapping, keys)
    return selected[0] if len(selected) == 1 else None


def validate_single_choice(
    answer: Any,
    keys: Sequence[str],
    path: str,
    message: str = SELECT_EXACTLY_ONE,
) -> ValidationResult:
    normalized = create_boolean_map(keys, answer)
    if count_true_flags(normalized) != 1:
        return fail({path: message})
    return ok(normalized)


def validate_multi_choice(
    answer: Any,
    keys: Sequence[str],
    path: str,
    message: str = SELECT_AT_LEAST_ONE,
) -> ValidationResult:
    normalized = create_boolean_map(keys, answer)
    if count_true_flags(normalized) < 1:
        return fail({path: message})
    return ok(normalized)


def validate_choice_object(
    answer: Any,
    keys: Sequence[str],
    path: str,
    *,
    not_object_message: str,
    count_message: str,
) -> ValidationResult:
    """Single choice that distinguishes a non-object answer from a bad count."""
    if not isinstance(answer, dict):
        return fail({path: not_object_message})
    return validate_single_choice(answer, keys, path, count_message)


__all__ = [
    "SELECT_AT_LEAST_ONE",
    "SELECT_EXACTLY_ONE",
    "count_true_flags",
    "create_boolean_map",
    "selected_keys",
    "single_selection",
    "validate_choice_object",
    "validate_multi_choice",
    "validate_single_choice",
]
