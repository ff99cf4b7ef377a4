"""Field groups reused across forms.

Account registration, amount maps, addresses, phone blocks and signature
groups appear on several steps with identical rules; only the dotted error
prefix differs. ``AcknowledgementSignatureStep`` covers the closing step
shape shared by the alternative-investment and accredited-investor forms.
"""

from __future__ import annotations

import copy
from typing import Any, Sequence
import logging

from app.logic.boolean_maps import count_true_flags, create_boolean_map
from app.logic.field_normalizer import (
    normalize_amount,
    has_invalid_amount_input,
    normalize_nullable_string,
    normalize_required_string,
    normalize_upper_code,
    to_record,
)
from app.logic.leaf_validators import (
    create_signature_block,
    is_valid_country_code,
    is_valid_phone,
    merge_signature_prefill,
    validate_optional_signature_block,
    validate_required_signature_block,
)
from app.logic.step_engine import Question, StepContext, StepDefinition, merge_writer, writer_for
from app.logic.validation import FieldErrors, ValidationResult, fail, from_errors, ok

logger = logging.getLogger(__name__)

AMOUNT_MESSAGE = "Enter a valid non-negative amount."
ADDRESS_KEYS = ("line1", "city", "stateProvince", "postalCode", "country")
PHONE_KEYS = ("home", "business", "mobile")
REGISTRATION_KEYS = ("rrName", "rrNo", "customerNames")

_REGISTRATION_MESSAGES = {
    "rrName": "RR Name is required.",
    "rrNo": "RR No. is required.",
    "customerNames": "Customer name(s) are required.",
}


# -- account registration ---------------------------------------------------


def normalize_account_registration(source: Any) -> dict[str, str]:
    record = to_record(source)
    return {key: normalize_required_string(record.get(key)) for key in REGISTRATION_KEYS}


def account_registration_errors(registration: dict, prefix: str) -> FieldErrors:
    return {
        f"{prefix}.{key}": message
        for key, message in _REGISTRATION_MESSAGES.items()
        if not registration.get(key)
    }


def validate_account_registration(
    answer: Any, prefix: str, *, not_object_message: str | None = None
) -> ValidationResult:
    """RR name, RR number and customer names, all required.

    With ``not_object_message`` a non-object answer fails outright;
    otherwise it is read as an empty registration.
    """
    if not_object_message and not isinstance(answer, dict):
        return fail({prefix: not_object_message})
    registration = normalize_account_registration(answer)
    return from_errors(account_registration_errors(registration, prefix), registration)


def prefill_account_registration(registration: dict, prefill: dict) -> dict:
    """Fill blank registration leaves from ``prefill``; never overwrite."""
    merged = dict(registration)
    for key in REGISTRATION_KEYS:
        candidate = normalize_nullable_string(prefill.get(key))
        if not merged.get(key) and candidate:
            merged[key] = candidate
    return merged


# -- amounts ----------------------------------------------------------------


def normalize_amount_map(keys: Sequence[str], source: Any) -> dict[str, int | float]:
    record = to_record(source)
    return {key: normalize_amount(record.get(key)) for key in keys}


def amount_errors(record: dict, keys: Sequence[str], prefix: str) -> FieldErrors:
    return {
        f"{prefix}.{key}": AMOUNT_MESSAGE
        for key in keys
        if has_invalid_amount_input(record.get(key))
    }


def validate_amount_map(
    answer: Any,
    keys: Sequence[str],
    prefix: str,
    *,
    not_object_message: str | None = None,
) -> ValidationResult:
    if not_object_message and not isinstance(answer, dict):
        return fail({prefix: not_object_message})
    record = to_record(answer)
    return from_errors(amount_errors(record, keys, prefix), normalize_amount_map(keys, record))


def sum_amounts(values: dict) -> int | float:
    return sum(values.values())


# -- contact ----------------------------------------------------------------


def normalize_address(source: Any) -> dict[str, str | None]:
    record = to_record(source)
    address = {key: normalize_nullable_string(record.get(key)) for key in ADDRESS_KEYS}
    address["country"] = normalize_upper_code(record.get("country"))
    return address


def empty_address() -> dict[str, None]:
    return {key: None for key in ADDRESS_KEYS}


def normalize_phones(source: Any) -> dict[str, str | None]:
    record = to_record(source)
    return {key: normalize_nullable_string(record.get(key)) for key in PHONE_KEYS}


def phone_errors(phones: dict, prefix: str, *, missing_message: str) -> FieldErrors:
    """Each present phone must look like a phone; at least one is required."""
    errors = {
        f"{prefix}.{key}": "Enter a valid phone number."
        for key in PHONE_KEYS
        if phones.get(key) and not is_valid_phone(phones[key])
    }
    if not any(phones.get(key) for key in PHONE_KEYS):
        errors[f"{prefix}.mobile"] = missing_message
    return errors


def country_errors(value: Any, path: str, label: str) -> FieldErrors:
    if not value:
        return {path: f"{label} is required."}
    if not is_valid_country_code(value):
        return {path: f"Enter a valid {label.lower()}."}
    return {}


# -- signatures -------------------------------------------------------------

SignatureSpec = tuple[str, str, bool]


def normalize_signature_group(source: Any, names: Sequence[str]) -> dict[str, dict]:
    record = to_record(source)
    return {name: create_signature_block(record.get(name)) for name in names}


def validate_signature_group(answer: Any, prefix: str, specs: Sequence[SignatureSpec]) -> ValidationResult:
    """Validate named signature blocks posted together.

    Each ``SignatureSpec`` is ``(name, label, required)``. Optional blocks pass when
    untouched and must be complete once any leaf is filled.
    """
    record = to_record(answer)
    blocks: dict[str, dict] = {}
    errors: FieldErrors = {}
    for name, label, required in specs:
        block = create_signature_block(record.get(name))
        blocks[name] = block
        check = validate_required_signature_block if required else validate_optional_signature_block
        errors.update(check(block, f"{prefix}.{name}", label))
    return from_errors(errors, blocks)


def account_owner_specs(requires_joint: bool) -> list[SignatureSpec]:
    return [
        ("accountOwner", "Account Owner", True),
        ("jointAccountOwner", "Joint Account Owner", requires_joint),
    ]


def resolve_signature_block(*candidates: dict | None) -> dict[str, str | None]:
    """Per leaf, the first non-empty value across ``candidates``."""
    resolved: dict[str, str | None] = create_signature_block(None)
    for key in resolved:
        for candidate in candidates:
            value = (candidate or {}).get(key)
            if value:
                resolved[key] = value
                break
    return resolved


def prefill_signatures(
    signatures: dict, prefill: dict, names: Sequence[str], *, requires_joint: bool
) -> dict:
    """Merge prefilled blocks into empty leaves; the joint block only when required."""
    merged = dict(signatures)
    for name in names:
        if name == "jointAccountOwner" and not requires_joint:
            continue
        merged[name] = merge_signature_prefill(merged[name], prefill.get(name))
    return merged


# -- acknowledgements + signatures step -------------------------------------


class AcknowledgementSignatureStep(StepDefinition):
    """Closing step: every acknowledgement accepted, then three signatures.

    The account owner and financial professional always sign; the joint
    owner signs when the account type requires it and may otherwise sign
    all-or-nothing.
    """

    acknowledgement_keys: tuple[str, ...] = ()
    acknowledgement_message: str = ""
    signature_names = ("accountOwner", "jointAccountOwner", "financialProfessional")

    def __init__(self, number: int, key: str, label: str) -> None:
        self.number = number
        self.key = key
        self.label = label
        self.prefix = f"step{number}"
        super().__init__()

    def build_questions(self) -> list[Question]:
        return [
            Question(f"{self.prefix}.acknowledgements", self._validate_acknowledgements, writer_for("acknowledgements")),
            Question(
                f"{self.prefix}.signatures.accountOwners",
                self._validate_account_owners,
                merge_writer("signatures"),
            ),
            Question(
                f"{self.prefix}.signatures.financialProfessional",
                self._validate_financial_professional,
                merge_writer("signatures"),
            ),
        ]

    def default_fields(self) -> dict:
        return self.normalize(None)

    def normalize(self, raw: Any, context: StepContext | None = None) -> dict:
        root = to_record(raw)
        return {
            "acknowledgements": create_boolean_map(self.acknowledgement_keys, root.get("acknowledgements")),
            "signatures": normalize_signature_group(root.get("signatures"), self.signature_names),
        }

    def apply_prefill(self, fields: dict, context: StepContext) -> dict:
        next_fields = copy.deepcopy(fields)
        next_fields["signatures"] = prefill_signatures(
            next_fields["signatures"],
            context.prefill,
            self.signature_names,
            requires_joint=context.requires_joint_owner_signature,
        )
        return next_fields

    def response_extras(self, fields: dict, context: StepContext) -> dict:
        return {"requiresJointOwnerSignature": context.requires_joint_owner_signature}

    def _validate_acknowledgements(self, answer: Any, context: StepContext) -> ValidationResult:
        acknowledgements = create_boolean_map(self.acknowledgement_keys, answer)
        if count_true_flags(acknowledgements) != len(self.acknowledgement_keys):
            return fail({f"{self.prefix}.acknowledgements": self.acknowledgement_message})
        return ok(acknowledgements)

    def _validate_account_owners(self, answer: Any, context: StepContext) -> ValidationResult:
        return validate_signature_group(
            answer,
            f"{self.prefix}.signatures.accountOwners",
            account_owner_specs(context.requires_joint_owner_signature),
        )

    def _validate_financial_professional(self, answer: Any, context: StepContext) -> ValidationResult:
        return validate_signature_group(
            answer,
            f"{self.prefix}.signatures.financialProfessional",
            [("financialProfessional", "Financial Professional", True)],
        )

    def validate_completion(self, fields: dict, context: StepContext | None = None) -> FieldErrors:
        context = context or StepContext()
        signatures = fields["signatures"]
        errors: FieldErrors = {}
        for result in (
            self._validate_acknowledgements(fields["acknowledgements"], context),
            self._validate_account_owners(signatures, context),
            self._validate_financial_professional(signatures, context),
        ):
            errors.update(result.field_errors)
        return errors


__all__ = [
    "ADDRESS_KEYS",
    "AMOUNT_MESSAGE",
    "AcknowledgementSignatureStep",
    "PHONE_KEYS",
    "REGISTRATION_KEYS",
    "account_owner_specs",
    "account_registration_errors",
    "amount_errors",
    "country_errors",
    "empty_address",
    "normalize_account_registration",
    "normalize_address",
    "normalize_amount_map",
    "normalize_phones",
    "normalize_signature_group",
    "phone_errors",
    "prefill_account_registration",
    "prefill_signatures",
    "resolve_signature_block",
    "sum_amounts",
    "validate_account_registration",
    "validate_amount_map",
    "validate_signature_group",
]
