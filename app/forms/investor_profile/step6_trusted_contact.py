"""Investor Profile step 6: trusted contact person."""

from __future__ import annotations

import copy
from typing import Any

from app.forms.shared import (
    country_errors,
    empty_address,
    normalize_address,
    normalize_phones,
    phone_errors,
)
from app.logic.boolean_maps import create_boolean_map, single_selection, validate_single_choice
from app.logic.field_normalizer import normalize_nullable_string, normalize_required_string, to_record
from app.logic.leaf_validators import is_valid_email
from app.logic.step_engine import Question, StepContext, StepDefinition, writer_for
from app.logic.validation import FieldErrors, ValidationResult, collect, from_errors

YES_NO_KEYS = ("yes", "no")

_CONTACT = "step6.trustedContact.contactInfo"
_ADDRESS = "step6.trustedContact.mailingAddress"
_ADDRESS_MESSAGES = (
    ("line1", "Mailing address is required."),
    ("city", "City is required."),
    ("stateProvince", "State/Province is required."),
    ("postalCode", "ZIP/Postal code is required."),
)


def validate_contact_info(answer: Any, context: StepContext | None = None) -> ValidationResult:
    record = to_record(answer)
    name = normalize_required_string(record.get("name"))
    email = normalize_required_string(record.get("email"))
    phones = normalize_phones(record.get("phones"))
    errors: FieldErrors = {}
    if not name:
        errors[f"{_CONTACT}.name"] = "Trusted contact name is required."
    if not email:
        errors[f"{_CONTACT}.email"] = "Trusted contact email is required."
    elif not is_valid_email(email):
        errors[f"{_CONTACT}.email"] = "Enter a valid trusted contact email."
    errors.update(
        phone_errors(
            phones,
            f"{_CONTACT}.phones",
            missing_message="Enter at least one phone number (home, business, or mobile).",
        )
    )
    return from_errors(errors, {"name": name, "email": email, "phones": phones})


def validate_mailing_address(answer: Any, context: StepContext | None = None) -> ValidationResult:
    address = normalize_address(answer)
    errors: FieldErrors = {
        f"{_ADDRESS}.{leaf}": message for leaf, message in _ADDRESS_MESSAGES if not address[leaf]
    }
    country = country_errors(address["country"], f"{_ADDRESS}.country", "Country")
    if country and address["country"]:
        country = {f"{_ADDRESS}.country": "Enter a valid country code."}
    errors.update(country)
    return from_errors(errors, address)


def _empty_contact() -> dict:
    return {"name": None, "email": None, "phones": normalize_phones(None)}


class TrustedContactStep(StepDefinition):
    number = 6
    key = "STEP_6_TRUSTED_CONTACT"
    label = "STEP 6. TRUSTED CONTACT"

    def build_questions(self) -> list[Question]:
        return [
            Question(
                "step6.trustedContact.decline",
                lambda answer, context: validate_single_choice(answer, YES_NO_KEYS, "step6.trustedContact.decline"),
                writer_for("trustedContact", "decline"),
            ),
            Question(_CONTACT, validate_contact_info, writer_for("trustedContact", "contactInfo")),
            Question(_ADDRESS, validate_mailing_address, writer_for("trustedContact", "mailingAddress")),
        ]

    def default_fields(self) -> dict:
        return self.normalize(None)

    def normalize(self, raw: Any, context: StepContext | None = None) -> dict:
        trusted_contact = to_record(to_record(raw).get("trustedContact"))
        contact_info = to_record(trusted_contact.get("contactInfo"))
        fields = {
            "trustedContact": {
                "decline": create_boolean_map(YES_NO_KEYS, trusted_contact.get("decline")),
                "contactInfo": {
                    "name": normalize_nullable_string(contact_info.get("name")),
                    "email": normalize_nullable_string(contact_info.get("email")),
                    "phones": normalize_phones(contact_info.get("phones")),
                },
                "mailingAddress": normalize_address(trusted_contact.get("mailingAddress")),
            }
        }
        return self.sanitize(fields)

    def sanitize(self, fields: dict) -> dict:
        result = copy.deepcopy(fields)
        trusted_contact = result["trustedContact"]
        if self._declined(result) == "yes":
            trusted_contact["contactInfo"] = _empty_contact()
            trusted_contact["mailingAddress"] = empty_address()
        else:
            contact_info = trusted_contact["contactInfo"]
            contact_info["name"] = normalize_nullable_string(contact_info.get("name"))
            contact_info["email"] = normalize_nullable_string(contact_info.get("email"))
        return result

    @staticmethod
    def _declined(fields: dict) -> str | None:
        return single_selection(fields["trustedContact"]["decline"], YES_NO_KEYS)

    def visible_question_ids(self, fields: dict) -> list[str]:
        visible = ["step6.trustedContact.decline"]
        if self._declined(fields) == "no":
            visible.extend([_CONTACT, _ADDRESS])
        return visible

    def validate_completion(self, fields: dict, context: StepContext | None = None) -> FieldErrors:
        fields = self.sanitize(fields)
        declined = self._declined(fields)
        if declined is None:
            return {"step6.trustedContact.decline": "Select whether to provide a trusted contact."}
        if declined == "yes":
            return {}
        errors: FieldErrors = {}
        collect(errors, validate_contact_info(fields["trustedContact"]["contactInfo"]))
        collect(errors, validate_mailing_address(fields["trustedContact"]["mailingAddress"]))
        return errors


__all__ = ["TrustedContactStep", "validate_contact_info", "validate_mailing_address"]
