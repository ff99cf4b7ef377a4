"""Per-leaf validation rules shared by every form step.

Dates are ISO ``YYYY-MM-DD`` strings compared against the UTC calendar
date. A date string is valid only when it matches the pattern and names a
real calendar day, so ``2023-02-30`` is rejected rather than rolled over.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any
import logging

from app.logic.field_normalizer import normalize_nullable_string, to_record

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
PHONE_PATTERN = re.compile(r"[+0-9()\-.\s]{7,20}")
COUNTRY_CODE_PATTERN = re.compile(r"[A-Z]{2}")
NINE_DIGITS_PATTERN = re.compile(r"[0-9]{9}")

MIN_YEAR = 1900

SIGNATURE_KEYS = ("typedSignature", "printedName", "date")


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def parse_iso_date(value: Any) -> date | None:
    """Parse ``YYYY-MM-DD`` into a date; ``None`` for anything else."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not DATE_PATTERN.fullmatch(trimmed):
        return None
    # year 0000 has no datetime.date and is rejected
    try:
        return date.fromisoformat(trimmed)
    except ValueError:
        return None


def is_valid_date(value: Any) -> bool:
    return parse_iso_date(value) is not None


def is_past_or_today(value: Any) -> bool:
    parsed = parse_iso_date(value)
    return parsed is not None and parsed <= utc_today()


def is_past(value: Any) -> bool:
    parsed = parse_iso_date(value)
    return parsed is not None and parsed < utc_today()


def is_today_or_future(value: Any) -> bool:
    parsed = parse_iso_date(value)
    return parsed is not None and parsed >= utc_today()


def is_minor(date_of_birth: Any) -> bool:
    """True when the date of birth puts the person under 18 today (UTC)."""
    dob = parse_iso_date(date_of_birth)
    if dob is None:
        return False
    today = utc_today()
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age < 18


def is_valid_email(value: Any) -> bool:
    return isinstance(value, str) and EMAIL_PATTERN.fullmatch(value) is not None


def is_valid_phone(value: Any) -> bool:
    return isinstance(value, str) and PHONE_PATTERN.fullmatch(value) is not None


def is_valid_country_code(value: Any) -> bool:
    return isinstance(value, str) and COUNTRY_CODE_PATTERN.fullmatch(value) is not None


def is_nine_digits(value: Any) -> bool:
    return isinstance(value, str) and NINE_DIGITS_PATTERN.fullmatch(value) is not None


def is_valid_year(value: Any, *, minimum: int = MIN_YEAR, maximum: int | None = None) -> bool:
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    upper = utc_today().year if maximum is None else maximum
    return minimum <= value <= upper


def validate_required_date(
    value: Any,
    path: str,
    *,
    required_message: str,
    format_message: str = "Use YYYY-MM-DD format.",
) -> dict[str, str]:
    if not normalize_nullable_string(value):
        return {path: required_message}
    if not is_valid_date(value):
        return {path: format_message}
    return {}


# -- signature blocks -------------------------------------------------------


def create_signature_block(source: Any) -> dict[str, str | None]:
    record = to_record(source)
    return {key: normalize_nullable_string(record.get(key)) for key in SIGNATURE_KEYS}


def is_signature_block_empty(block: dict) -> bool:
    return not any(block.get(key) for key in SIGNATURE_KEYS)


def validate_required_signature_block(block: dict, prefix: str, label: str) -> dict[str, str]:
    """All three leaves required; the date must be real and not in the future."""
    errors: dict[str, str] = {}
    if not block.get("typedSignature"):
        errors[f"{prefix}.typedSignature"] = f"{label} typed signature is required."
    if not block.get("printedName"):
        errors[f"{prefix}.printedName"] = f"{label} printed name is required."
    signed_on = block.get("date")
    if not signed_on:
        errors[f"{prefix}.date"] = f"{label} signature date is required."
    elif not is_valid_date(signed_on):
        errors[f"{prefix}.date"] = "Enter a valid date in YYYY-MM-DD format."
    elif not is_past_or_today(signed_on):
        errors[f"{prefix}.date"] = "Signature date cannot be in the future."
    return errors


def validate_optional_signature_block(block: dict, prefix: str, label: str) -> dict[str, str]:
    """Untouched blocks pass; a partially filled block must be complete."""
    if is_signature_block_empty(block):
        return {}
    return validate_required_signature_block(block, prefix, label)


def merge_signature_prefill(existing: dict, prefill: dict | None) -> dict:
    """Fill empty leaves of ``existing`` from ``prefill`` without overwriting."""
    if not prefill:
        return existing
    return {key: existing.get(key) or prefill.get(key) or None for key in SIGNATURE_KEYS}


__all__ = [
    "MIN_YEAR",
    "SIGNATURE_KEYS",
    "create_signature_block",
    "is_minor",
    "is_nine_digits",
    "is_past",
    "is_past_or_today",
    "is_signature_block_empty",
    "is_today_or_future",
    "is_valid_country_code",
    "is_valid_date",
    "is_valid_email",
    "is_valid_phone",
    "is_valid_year",
    "merge_signature_prefill",
    "parse_iso_date",
    "utc_today",
    "validate_optional_signature_block",
    "validate_required_date",
    "validate_required_signature_block",
]
