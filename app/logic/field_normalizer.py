"""Tolerant coercion of persisted JSON into typed field values.

Every helper here is total: malformed or missing input degrades to a
default (empty string, ``None``, ``0``) and never raises. Validation of
fresh answers lives in ``app.logic.leaf_validators``.
"""

from __future__ import annotations

import math
import re
from typing import Any, Callable, Sequence
import logging

from pydantic import BaseModel

logger = logging.getLogger(__name__)

_CURRENCY_NOISE = re.compile(r"[$,\s]")
_RADIX_PREFIXES = ("0x", "0o", "0b")


def to_record(value: Any) -> dict:
    """Return ``value`` when it is a JSON object, else an empty dict."""
    if isinstance(value, dict):
        return value
    return {}


def to_list(value: Any) -> list:
    if isinstance(value, list):
        return value
    return []


def normalize_nullable_string(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def normalize_required_string(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def normalize_upper_code(value: Any) -> str | None:
    """Trimmed, upper-cased code (country codes) or ``None`` when empty."""
    normalized = normalize_nullable_string(value)
    return normalized.upper() if normalized else None


def _parse_number(text: str) -> int | float | None:
    """Parse a numeric string; integral literals stay ints.

    Accepts unsigned ``0x``/``0o``/``0b`` literals and rejects non-ASCII digits.
    """
    if "_" in text or not text.isascii():
        return None
    if text[:2].lower() in _RADIX_PREFIXES:
        try:
            return int(text, 0)
        except ValueError:
            return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        parsed = float(text)
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def _is_number(value: Any) -> bool:
    # bool is an int subclass but never a JSON number here
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def normalize_amount(value: Any) -> int | float:
    """Coerce an amount to a non-negative number, falling back to 0."""
    if value is None or value == "":
        return 0
    if _is_number(value):
        if isinstance(value, float) and not math.isfinite(value):
            return 0
        return value if value >= 0 else 0
    if isinstance(value, str):
        trimmed = value.strip()
        if not trimmed:
            return 0
        parsed = _parse_number(trimmed)
        if parsed is not None:
            return parsed if parsed >= 0 else 0
    return 0


def has_invalid_amount_input(value: Any) -> bool:
    """True for inputs ``normalize_amount`` would silently zero.

    Empty input is valid (it means 0); negative numbers, non-numeric
    strings and non-scalar values are reportable.
    """
    if value is None or value == "":
        return False
    if _is_number(value):
        if isinstance(value, float) and not math.isfinite(value):
            return True
        return value < 0
    if isinstance(value, str):
        trimmed = value.strip()
        if not trimmed:
            return False
        parsed = _parse_number(trimmed)
        return parsed is None or parsed < 0
    return True


def normalize_optional_amount(value: Any) -> int | float | None:
    """Non-negative number or ``None``; strings may carry ``$`` and commas."""
    if _is_number(value):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return value if value >= 0 else None
    if isinstance(value, str):
        if not value.strip():
            return None
        cleaned = _CURRENCY_NOISE.sub("", value)
        if not cleaned:
            # "$" alone reads as zero
            return 0
        parsed = _parse_number(cleaned)
        if parsed is None or parsed < 0:
            return None
        return parsed
    return None


def _as_integer(value: Any) -> int | None:
    """Integral JSON number (``3`` or ``3.0``) as an int, else ``None``."""
    if not _is_number(value):
        return None
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            return None
        return int(value)
    return value


def normalize_integer(value: Any) -> int | None:
    """Integer from a number or numeric string (years)."""
    if isinstance(value, str):
        trimmed = value.strip()
        if not trimmed:
            return None
        parsed = _parse_number(trimmed)
        return _as_integer(parsed) if parsed is not None else None
    return _as_integer(value)


def normalize_non_negative_int(value: Any) -> int | None:
    parsed = normalize_integer(value)
    return parsed if parsed is not None and parsed >= 0 else None


def normalize_positive_int(value: Any) -> int | None:
    """Positive integer; only real JSON numbers qualify."""
    parsed = _as_integer(value)
    return parsed if parsed is not None and parsed > 0 else None


def normalize_digits(value: Any) -> str | None:
    """Strip everything but digits (SSN, EIN); empty result is ``None``."""
    if not isinstance(value, str):
        return None
    digits = re.sub(r"[^0-9]", "", value)
    return digits or None


def normalize_country_list(value: Any) -> list[str]:
    """Unique, upper-cased two-letter codes in first-seen order."""
    seen: list[str] = []
    for item in to_list(value):
        code = normalize_upper_code(item)
        if code and re.fullmatch(r"[A-Z]{2}", code) and code not in seen:
            seen.append(code)
    return seen


class FieldSource(BaseModel):
    """One candidate location for a field value.

    ``origin`` names where the value came from (nested JSON, root-level
    legacy key, legacy column) so resolution can be logged and tested.
    """

    origin: str
    value: Any = None


def resolve_fallback_chain(
    sources: Sequence[FieldSource],
    normalize: Callable[[Any], Any] = normalize_required_string,
    *,
    is_present: Callable[[Any], bool] = bool,
    default: Any = "",
) -> Any:
    """Return the first normalized source value that ``is_present``.

    Sources are consulted in order; the first non-empty one wins.
    """
    for source in sources:
        normalized = normalize(source.value)
        if is_present(normalized):
            logger.debug("fallback_resolved origin=%s", source.origin)
            return normalized
    return default


__all__ = [
    "FieldSource",
    "has_invalid_amount_input",
    "normalize_amount",
    "normalize_country_list",
    "normalize_digits",
    "normalize_integer",
    "normalize_non_negative_int",
    "normalize_nullable_string",
    "normalize_optional_amount",
    "normalize_positive_int",
    "normalize_required_string",
    "normalize_upper_code",
    "resolve_fallback_chain",
    "to_list",
    "to_record",
]
