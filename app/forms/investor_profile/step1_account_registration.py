"""Investor Profile step 1: account registration and type of account.

Older onboarding rows kept the registration leaves in flat columns and at
the root of the JSON blob. Normalization resolves each leaf through an
ordered fallback chain: nested JSON, then root-level key, then column.
"""

from __future__ import annotations

import copy
from typing import Any
import logging

from app.forms.investor_profile.account_types import PRIMARY_TYPE_KEYS, selected_primary_type
from app.logic.boolean_maps import count_true_flags, create_boolean_map, validate_choice_object
from app.logic.field_normalizer import (
    FieldSource,
    normalize_integer,
    normalize_nullable_string,
    normalize_positive_int,
    normalize_required_string,
    resolve_fallback_chain,
    to_list,
    to_record,
)
from app.logic.leaf_validators import is_valid_date, validate_required_date
from app.logic.step_engine import Question, StepContext, StepDefinition, writer_for
from app.logic.validation import FieldErrors, ValidationResult, fail, from_errors, ok

logger = logging.getLogger(__name__)

RETAIL_RETIREMENT_KEYS = ("retail", "retirement")
CORPORATION_DESIGNATION_KEYS = ("cCorp", "sCorp")
LLC_DESIGNATION_KEYS = ("cCorp", "sCorp", "partnership")
TRUST_TYPE_KEYS = (
    "charitable",
    "living",
    "irrevocableLiving",
    "family",
    "revocable",
    "irrevocable",
    "testamentary",
)
CUSTODIAL_TYPE_KEYS = ("ugma", "utma")
YES_NO_KEYS = ("yes", "no")
TENANCY_CLAUSE_KEYS = (
    "communityProperty",
    "tenantsByEntirety",
    "communityPropertyWithRightsOfSurvivorship",
    "jointTenantsWithRightsOfSurvivorship",
    "tenantsInCommon",
)

# registration leaf -> legacy column
LEGACY_COLUMNS = {
    "rrName": "step1_rr_name",
    "rrNo": "step1_rr_no",
    "customerNames": "step1_customer_names",
    "accountNo": "step1_account_no",
}
LEGACY_ACCOUNT_TYPE_COLUMN = "step1_account_type"

# primary type -> question ids that only apply to it
_BRANCH_QUESTIONS = {
    "corporation": ("typeOfAccount.corporationDesignation",),
    "limitedLiabilityCompany": ("typeOfAccount.llcDesignation",),
    "trust": ("typeOfAccount.trust.establishmentDate", "typeOfAccount.trust.trustType"),
    "custodial": ("typeOfAccount.custodial.custodialType", "typeOfAccount.custodial.gifts"),
    "jointTenant": (
        "typeOfAccount.joint.marriedToEachOther",
        "typeOfAccount.joint.tenancyState",
        "typeOfAccount.joint.numberOfTenants",
        "typeOfAccount.joint.tenancyClause",
    ),
    "transferOnDeathIndividual": ("typeOfAccount.transferOnDeath.individualAgreementDate",),
    "transferOnDeathJoint": ("typeOfAccount.transferOnDeath.jointAgreementDate",),
    "other": ("typeOfAccount.otherDescription",),
}

_BASE_QUESTIONS = (
    "rrName",
    "rrNo",
    "customerNames",
    "accountNo",
    "accountRegistration.retailRetirement",
    "typeOfAccount.primaryType",
)

_FORMAT_MESSAGE = "Use YYYY-MM-DD format."


def _required_string(label: str, path: str):
    def _validate(answer: Any, context: StepContext) -> ValidationResult:
        value = normalize_required_string(answer)
        if not value:
            return fail({path: f"{label} is required."})
        return ok(value)

    return _validate


def _required_date(label: str, path: str):
    def _validate(answer: Any, context: StepContext) -> ValidationResult:
        value = normalize_nullable_string(answer)
        errors = validate_required_date(
            value,
            path,
            required_message=f"{label} is required.",
            format_message=f"Enter a valid {label.lower()} in YYYY-MM-DD format.",
        )
        return from_errors(errors, value)

    return _validate


def _choice(keys: tuple[str, ...], path: str):
    def _validate(answer: Any, context: StepContext) -> ValidationResult:
        return validate_choice_object(
            answer,
            keys,
            path,
            not_object_message="Please choose one option.",
            count_message="Please choose exactly one option.",
        )

    return _validate


def _normalize_gift(entry: dict) -> dict[str, str]:
    return {
        "state": normalize_required_string(entry.get("state")),
        "dateGiftWasGiven": normalize_required_string(entry.get("dateGiftWasGiven")),
    }


def normalize_gifts(source: Any) -> list[dict[str, str]]:
    return [_normalize_gift(entry) for entry in to_list(source) if isinstance(entry, dict)]


def _gift_errors(gifts: list[dict], *, date_required_message: str) -> FieldErrors:
    errors: FieldErrors = {}
    for index, gift in enumerate(gifts):
        prefix = f"typeOfAccount.custodial.gifts.{index}"
        if not gift["state"]:
            errors[f"{prefix}.state"] = "State is required."
        if not gift["dateGiftWasGiven"]:
            errors[f"{prefix}.dateGiftWasGiven"] = date_required_message
        elif not is_valid_date(gift["dateGiftWasGiven"]):
            errors[f"{prefix}.dateGiftWasGiven"] = _FORMAT_MESSAGE
    return errors


def validate_custodial_gifts(answer: Any, context: StepContext) -> ValidationResult:
    """At least one non-blank gift; blank rows are dropped before checking."""
    missing = {"typeOfAccount.custodial.gifts": "Add at least one custodial gift entry."}
    if not isinstance(answer, list):
        return fail(missing)
    gifts = [gift for gift in normalize_gifts(answer) if gift["state"] or gift["dateGiftWasGiven"]]
    if not gifts:
        return fail(missing)
    errors = _gift_errors(gifts, date_required_message="Date gift was given is required.")
    return from_errors(errors, gifts)


def validate_number_of_tenants(answer: Any, context: StepContext) -> ValidationResult:
    count = None if isinstance(answer, bool) else normalize_integer(answer)
    if count is None or count < 2:
        return fail({"typeOfAccount.joint.numberOfTenants": "Enter a valid number of tenants (2 or more)."})
    return ok(count)


class AccountRegistrationStep(StepDefinition):
    number = 1
    key = "STEP_1_ACCOUNT_REGISTRATION"
    label = "STEP 1. ACCOUNT REGISTRATION"

    def build_questions(self) -> list[Question]:
        return [
            Question("rrName", _required_string("RR Name", "rrName"), writer_for("accountRegistration", "rrName")),
            Question("rrNo", _required_string("RR No.", "rrNo"), writer_for("accountRegistration", "rrNo")),
            Question(
                "customerNames",
                _required_string("Customer Name(s)", "customerNames"),
                writer_for("accountRegistration", "customerNames"),
            ),
            Question(
                "accountNo", _required_string("Account No.", "accountNo"), writer_for("accountRegistration", "accountNo")
            ),
            Question(
                "accountRegistration.retailRetirement",
                _choice(RETAIL_RETIREMENT_KEYS, "accountRegistration.retailRetirement"),
                writer_for("accountRegistration", "retailRetirement"),
            ),
            Question(
                "typeOfAccount.primaryType",
                _choice(PRIMARY_TYPE_KEYS, "typeOfAccount.primaryType"),
                writer_for("typeOfAccount", "primaryType"),
            ),
            Question(
                "typeOfAccount.corporationDesignation",
                _choice(CORPORATION_DESIGNATION_KEYS, "typeOfAccount.corporationDesignation"),
                writer_for("typeOfAccount", "corporationDesignation"),
            ),
            Question(
                "typeOfAccount.llcDesignation",
                _choice(LLC_DESIGNATION_KEYS, "typeOfAccount.llcDesignation"),
                writer_for("typeOfAccount", "llcDesignation"),
            ),
            Question(
                "typeOfAccount.trust.establishmentDate",
                _required_date("Trust establishment date", "typeOfAccount.trust.establishmentDate"),
                writer_for("typeOfAccount", "trust", "establishmentDate"),
            ),
            Question(
                "typeOfAccount.trust.trustType",
                _choice(TRUST_TYPE_KEYS, "typeOfAccount.trust.trustType"),
                writer_for("typeOfAccount", "trust", "trustType"),
            ),
            Question(
                "typeOfAccount.custodial.custodialType",
                _choice(CUSTODIAL_TYPE_KEYS, "typeOfAccount.custodial.custodialType"),
                writer_for("typeOfAccount", "custodial", "custodialType"),
            ),
            Question(
                "typeOfAccount.custodial.gifts",
                validate_custodial_gifts,
                writer_for("typeOfAccount", "custodial", "gifts"),
            ),
            Question(
                "typeOfAccount.joint.marriedToEachOther",
                _choice(YES_NO_KEYS, "typeOfAccount.joint.marriedToEachOther"),
                writer_for("typeOfAccount", "joint", "marriedToEachOther"),
            ),
            Question(
                "typeOfAccount.joint.tenancyState",
                _required_string("Tenancy state", "typeOfAccount.joint.tenancyState"),
                writer_for("typeOfAccount", "joint", "tenancyState"),
            ),
            Question(
                "typeOfAccount.joint.numberOfTenants",
                validate_number_of_tenants,
                writer_for("typeOfAccount", "joint", "numberOfTenants"),
            ),
            Question(
                "typeOfAccount.joint.tenancyClause",
                _choice(TENANCY_CLAUSE_KEYS, "typeOfAccount.joint.tenancyClause"),
                writer_for("typeOfAccount", "joint", "tenancyClause"),
            ),
            Question(
                "typeOfAccount.transferOnDeath.individualAgreementDate",
                _required_date("Agreement date", "typeOfAccount.transferOnDeath.individualAgreementDate"),
                writer_for("typeOfAccount", "transferOnDeath", "individualAgreementDate"),
            ),
            Question(
                "typeOfAccount.transferOnDeath.jointAgreementDate",
                _required_date("Agreement date", "typeOfAccount.transferOnDeath.jointAgreementDate"),
                writer_for("typeOfAccount", "transferOnDeath", "jointAgreementDate"),
            ),
            Question(
                "typeOfAccount.otherDescription",
                _required_string("Other account type description", "typeOfAccount.otherDescription"),
                writer_for("typeOfAccount", "otherDescription"),
            ),
        ]

    # -- field record -----------------------------------------------------

    def default_fields(self) -> dict:
        return self.normalize(None)

    def normalize(self, raw: Any, context: StepContext | None = None) -> dict:
        legacy = context.legacy if context else {}
        root = to_record(raw)
        registration = to_record(root.get("accountRegistration"))
        account = to_record(root.get("typeOfAccount"))
        trust = to_record(account.get("trust"))
        custodial = to_record(account.get("custodial"))
        joint = to_record(account.get("joint"))
        transfer_on_death = to_record(account.get("transferOnDeath"))

        resolved = {
            leaf: resolve_fallback_chain(
                [
                    FieldSource(origin="accountRegistration", value=registration.get(leaf)),
                    FieldSource(origin="root", value=root.get(leaf)),
                    FieldSource(origin=column, value=legacy.get(column)),
                ],
                normalize_nullable_string,
            )
            for leaf, column in LEGACY_COLUMNS.items()
        }

        retail_retirement = create_boolean_map(RETAIL_RETIREMENT_KEYS, registration.get("retailRetirement"))
        if count_true_flags(retail_retirement) == 0:
            from_root = create_boolean_map(RETAIL_RETIREMENT_KEYS, root.get("accountType"))
            from_legacy = create_boolean_map(RETAIL_RETIREMENT_KEYS, legacy.get(LEGACY_ACCOUNT_TYPE_COLUMN))
            retail_retirement = from_root if count_true_flags(from_root) > 0 else from_legacy

        fields = {
            "accountRegistration": {**resolved, "retailRetirement": retail_retirement},
            "typeOfAccount": {
                "primaryType": create_boolean_map(PRIMARY_TYPE_KEYS, account.get("primaryType")),
                "corporationDesignation": create_boolean_map(
                    CORPORATION_DESIGNATION_KEYS, account.get("corporationDesignation")
                ),
                "llcDesignation": create_boolean_map(LLC_DESIGNATION_KEYS, account.get("llcDesignation")),
                "trust": {
                    "establishmentDate": normalize_nullable_string(trust.get("establishmentDate")),
                    "trustType": create_boolean_map(TRUST_TYPE_KEYS, trust.get("trustType")),
                },
                "custodial": {
                    "custodialType": create_boolean_map(CUSTODIAL_TYPE_KEYS, custodial.get("custodialType")),
                    "gifts": normalize_gifts(custodial.get("gifts")),
                },
                "joint": {
                    "marriedToEachOther": create_boolean_map(YES_NO_KEYS, joint.get("marriedToEachOther")),
                    "tenancyState": normalize_nullable_string(joint.get("tenancyState")),
                    "numberOfTenants": normalize_positive_int(joint.get("numberOfTenants")),
                    "tenancyClause": create_boolean_map(TENANCY_CLAUSE_KEYS, joint.get("tenancyClause")),
                },
                "transferOnDeath": {
                    "individualAgreementDate": normalize_nullable_string(
                        transfer_on_death.get("individualAgreementDate")
                    ),
                    "jointAgreementDate": normalize_nullable_string(transfer_on_death.get("jointAgreementDate")),
                },
                "otherDescription": normalize_nullable_string(account.get("otherDescription")),
            },
        }
        return self.sanitize(fields)

    def sanitize(self, fields: dict) -> dict:
        """Reset every type-specific group the selected primary type does not use."""
        result = copy.deepcopy(fields)
        account = result["typeOfAccount"]
        selected = selected_primary_type(result)
        if selected != "corporation":
            account["corporationDesignation"] = create_boolean_map(CORPORATION_DESIGNATION_KEYS)
        if selected != "limitedLiabilityCompany":
            account["llcDesignation"] = create_boolean_map(LLC_DESIGNATION_KEYS)
        if selected != "trust":
            account["trust"] = {"establishmentDate": None, "trustType": create_boolean_map(TRUST_TYPE_KEYS)}
        if selected != "custodial":
            account["custodial"] = {"custodialType": create_boolean_map(CUSTODIAL_TYPE_KEYS), "gifts": []}
        if selected != "jointTenant":
            account["joint"] = {
                "marriedToEachOther": create_boolean_map(YES_NO_KEYS),
                "tenancyState": None,
                "numberOfTenants": None,
                "tenancyClause": create_boolean_map(TENANCY_CLAUSE_KEYS),
            }
        if selected != "transferOnDeathIndividual":
            account["transferOnDeath"]["individualAgreementDate"] = None
        if selected != "transferOnDeathJoint":
            account["transferOnDeath"]["jointAgreementDate"] = None
        if selected != "other":
            account["otherDescription"] = None
        return result

    def visible_question_ids(self, fields: dict) -> list[str]:
        visible = list(_BASE_QUESTIONS)
        visible.extend(_BRANCH_QUESTIONS.get(selected_primary_type(fields) or "", ()))
        return visible

    def legacy_columns(self, fields: dict) -> dict[str, Any]:
        registration = fields["accountRegistration"]
        columns: dict[str, Any] = {column: registration[leaf] for leaf, column in LEGACY_COLUMNS.items()}
        columns[LEGACY_ACCOUNT_TYPE_COLUMN] = dict(registration["retailRetirement"])
        return columns

    # -- completion -------------------------------------------------------

    def validate_completion(self, fields: dict, context: StepContext | None = None) -> FieldErrors:
        errors: FieldErrors = {}
        registration = fields["accountRegistration"]
        account = fields["typeOfAccount"]
        for leaf, label in (
            ("rrName", "RR Name"),
            ("rrNo", "RR No."),
            ("customerNames", "Customer Name(s)"),
            ("accountNo", "Account No."),
        ):
            if not registration[leaf]:
                errors[leaf] = f"{label} is required."
        if count_true_flags(registration["retailRetirement"]) != 1:
            errors["accountRegistration.retailRetirement"] = "Choose Retirement or Retail."

        primary_type = selected_primary_type(fields)
        if primary_type is None:
            errors["typeOfAccount.primaryType"] = "Select one account type."
            return errors

        if primary_type == "corporation" and count_true_flags(account["corporationDesignation"]) != 1:
            errors["typeOfAccount.corporationDesignation"] = "Select one corporation designation."
        if primary_type == "limitedLiabilityCompany" and count_true_flags(account["llcDesignation"]) != 1:
            errors["typeOfAccount.llcDesignation"] = "Select one LLC designation."
        if primary_type == "trust":
            errors.update(
                validate_required_date(
                    account["trust"]["establishmentDate"],
                    "typeOfAccount.trust.establishmentDate",
                    required_message="Trust establishment date is required.",
                )
            )
            if count_true_flags(account["trust"]["trustType"]) != 1:
                errors["typeOfAccount.trust.trustType"] = "Select one trust type."
        if primary_type == "custodial":
            custodial = account["custodial"]
            if count_true_flags(custodial["custodialType"]) != 1:
                errors["typeOfAccount.custodial.custodialType"] = "Select UGMA or UTMA."
            if not custodial["gifts"]:
                errors["typeOfAccount.custodial.gifts"] = "Add at least one custodial gift entry."
            errors.update(_gift_errors(custodial["gifts"], date_required_message="Date is required."))
        if primary_type == "jointTenant":
            joint = account["joint"]
            if count_true_flags(joint["marriedToEachOther"]) != 1:
                errors["typeOfAccount.joint.marriedToEachOther"] = "Choose Yes or No."
            if not joint["tenancyState"]:
                errors["typeOfAccount.joint.tenancyState"] = "Tenancy state is required."
            tenants = joint["numberOfTenants"]
            if not isinstance(tenants, int) or tenants < 2:
                errors["typeOfAccount.joint.numberOfTenants"] = "Enter number of tenants (2 or more)."
            if count_true_flags(joint["tenancyClause"]) != 1:
                errors["typeOfAccount.joint.tenancyClause"] = "Select one tenancy clause."
        for branch, leaf in (
            ("transferOnDeathIndividual", "individualAgreementDate"),
            ("transferOnDeathJoint", "jointAgreementDate"),
        ):
            if primary_type == branch:
                errors.update(
                    validate_required_date(
                        account["transferOnDeath"][leaf],
                        f"typeOfAccount.transferOnDeath.{leaf}",
                        required_message="Agreement date is required.",
                    )
                )
        if primary_type == "other" and not account["otherDescription"]:
            errors["typeOfAccount.otherDescription"] = "Please describe this account type."
        return errors


__all__ = [
    "AccountRegistrationStep",
    "LEGACY_ACCOUNT_TYPE_COLUMN",
    "LEGACY_COLUMNS",
    "validate_custodial_gifts",
    "validate_number_of_tenants",
]
