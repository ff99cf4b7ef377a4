"""Account-type rules shared by Investor Profile steps and later forms.

Step 1's primary account type decides whether the secondary holder step
is required, whether a joint owner must sign, and which holder kind the
holder steps default to.
"""

from __future__ import annotations

from typing import Any

from app.logic.boolean_maps import create_boolean_map, count_true_flags, single_selection
from app.logic.field_normalizer import to_record

PRIMARY_TYPE_KEYS = (
    "individual",
    "corporation",
    "corporatePensionProfitSharing",
    "custodial",
    "estate",
    "jointTenant",
    "limitedLiabilityCompany",
    "individualSingleMemberLlc",
    "soleProprietorship",
    "transferOnDeathIndividual",
    "transferOnDeathJoint",
    "trust",
    "nonprofitOrganization",
    "partnership",
    "exemptOrganization",
    "other",
)

PERSON_ACCOUNT_TYPES = frozenset(
    {"individual", "custodial", "jointTenant", "transferOnDeathIndividual", "transferOnDeathJoint"}
)

STEP4_REQUIRED_ACCOUNT_TYPES = frozenset(
    {
        "jointTenant",
        "transferOnDeathJoint",
        "trust",
        "corporation",
        "corporatePensionProfitSharing",
        "limitedLiabilityCompany",
        "individualSingleMemberLlc",
        "partnership",
        "nonprofitOrganization",
        "exemptOrganization",
        "estate",
    }
)


def primary_type_map(step1_fields: Any) -> dict[str, bool]:
    type_of_account = to_record(to_record(step1_fields).get("typeOfAccount"))
    return create_boolean_map(PRIMARY_TYPE_KEYS, type_of_account.get("primaryType"))


def selected_primary_type(step1_fields: Any) -> str | None:
    return single_selection(primary_type_map(step1_fields), PRIMARY_TYPE_KEYS)


def is_step4_required(step1_fields: Any) -> bool:
    """The secondary holder step applies only to multi-party account types."""
    return selected_primary_type(step1_fields) in STEP4_REQUIRED_ACCOUNT_TYPES


def requires_joint_owner_signature(step1_fields: Any) -> bool:
    return is_step4_required(step1_fields)


def infer_default_holder_kind(step1_fields: Any) -> str:
    """``person`` unless exactly one non-person account type is selected."""
    primary_type = primary_type_map(step1_fields)
    if count_true_flags(primary_type) != 1:
        return "person"
    selected = single_selection(primary_type, PRIMARY_TYPE_KEYS)
    return "person" if selected in PERSON_ACCOUNT_TYPES else "entity"


__all__ = [
    "PERSON_ACCOUNT_TYPES",
    "PRIMARY_TYPE_KEYS",
    "STEP4_REQUIRED_ACCOUNT_TYPES",
    "infer_default_holder_kind",
    "is_step4_required",
    "primary_type_map",
    "requires_joint_owner_signature",
    "selected_primary_type",
]
