"""Statement of Financial Condition: balance sheet, then notes and signatures.

Registration details and signatures are prefilled from the Investor
Profile; step 1 also reports running totals that the alternative
investment order form reads for its net worth figures.
"""

from __future__ import annotations

import copy
from typing import Any

from app.forms.base import FormDefinition
from app.forms.investor_profile import InvestorProfileForm
from app.forms.shared import (
    AMOUNT_MESSAGE,
    account_owner_specs,
    normalize_account_registration,
    normalize_amount_map,
    normalize_signature_group,
    prefill_account_registration,
    prefill_signatures,
    sum_amounts,
    validate_account_registration,
    validate_amount_map,
    validate_signature_group,
)
from app.logic.boolean_maps import count_true_flags, create_boolean_map
from app.logic.field_normalizer import normalize_nullable_string, to_record
from app.logic.step_engine import Question, StepContext, StepDefinition, merge_writer, writer_for
from app.logic.validation import FieldErrors, ValidationResult, collect, fail, ok
from app.models.onboarding import ClientSnapshot

SFC_CODE = "SFC"

AMOUNT_SECTIONS: dict[str, tuple[str, ...]] = {
    "liquidNonQualifiedAssets": (
        "cashMoneyMarketsCds",
        "brokerageNonManaged",
        "managedAccounts",
        "mutualFundsDirect",
        "annuitiesLessSurrenderCharges",
        "cashValueLifeInsurance",
        "otherBusinessAssetsCollectibles",
    ),
    "liabilities": (
        "mortgagePrimaryResidence",
        "mortgagesSecondaryInvestment",
        "homeEquityLoans",
        "creditCards",
        "otherLiabilities",
    ),
    "illiquidNonQualifiedAssets": ("primaryResidence", "investmentRealEstate", "privateBusiness"),
    "liquidQualifiedAssets": (
        "cashMoneyMarketsCds",
        "retirementPlans",
        "brokerageNonManaged",
        "managedAccounts",
        "mutualFundsDirect",
        "annuities",
    ),
    "incomeSummary": (
        "salaryCommissions",
        "investmentIncome",
        "pension",
        "socialSecurity",
        "netRentalIncome",
        "other",
    ),
    "illiquidQualifiedAssets": ("purchaseAmountValue",),
}

ACKNOWLEDGEMENT_KEYS = (
    "attestDataAccurateComplete",
    "agreeReportMaterialChanges",
    "understandMayNeedRecertification",
    "understandMayNeedSupportingDocumentation",
    "understandInfoUsedForBestInterestRecommendations",
)
SIGNATURE_NAMES = ("accountOwner", "jointAccountOwner", "financialProfessional", "registeredPrincipal")
FIRM_SPECS = [
    ("financialProfessional", "Financial Professional", True),
    ("registeredPrincipal", "Registered Principal", False),
]

_COMPLETION_REGISTRATION_MESSAGES = {
    "rrName": "RR Name is required.",
    "rrNo": "RR No. is required.",
    "customerNames": "Customer name(s) is required.",
}


def compute_totals(fields: dict) -> dict[str, int | float]:
    """Section sums and the derived net worth and liquidity figures."""
    illiquid = fields["illiquidNonQualifiedAssets"]
    liabilities = sum_amounts(fields["liabilities"])
    liquid = sum_amounts(fields["liquidNonQualifiedAssets"])
    liquid_qualified = sum_amounts(fields["liquidQualifiedAssets"])
    illiquid_equity = sum_amounts(illiquid)
    illiquid_securities = illiquid["investmentRealEstate"] + illiquid["privateBusiness"]
    assets_less_primary = liquid + illiquid_securities
    return {
        "totalLiabilities": liabilities,
        "totalLiquidAssets": liquid,
        "totalLiquidQualifiedAssets": liquid_qualified,
        "totalAnnualIncome": sum_amounts(fields["incomeSummary"]),
        "totalIlliquidAssetsEquity": illiquid_equity,
        "totalAssetsLessPrimaryResidence": assets_less_primary,
        "totalNetWorthAssetsLessPrimaryResidenceLiabilities": assets_less_primary - liabilities,
        "totalIlliquidSecurities": illiquid_securities,
        "totalNetWorth": liquid + illiquid_equity - liabilities,
        "totalPotentialLiquidity": liquid + liquid_qualified,
        "totalIlliquidQualifiedAssets": sum_amounts(fields["illiquidQualifiedAssets"]),
    }


class FinancialsStep(StepDefinition):
    number = 1
    key = "STEP_1_FINANCIALS"
    label = "STEP 1. STATEMENT OF FINANCIAL CONDITION"

    def build_questions(self) -> list[Question]:
        questions = [
            Question(
                "step1.accountRegistration",
                lambda answer, context: validate_account_registration(
                    answer,
                    "step1.accountRegistration",
                    not_object_message="Please provide account registration details.",
                ),
                writer_for("accountRegistration"),
            )
        ]
        for section in AMOUNT_SECTIONS:
            questions.append(Question(f"step1.{section}", self._amount_validator(section), writer_for(section)))
        return questions

    @staticmethod
    def _amount_validator(section: str):
        def _validate(answer: Any, context: StepContext) -> ValidationResult:
            return validate_amount_map(
                answer,
                AMOUNT_SECTIONS[section],
                f"step1.{section}",
                not_object_message="Please provide values for this section.",
            )

        return _validate

    def default_fields(self) -> dict:
        return self.normalize(None)

    def normalize(self, raw: Any, context: StepContext | None = None) -> dict:
        root = to_record(raw)
        fields: dict[str, Any] = {"accountRegistration": normalize_account_registration(root.get("accountRegistration"))}
        for section, keys in AMOUNT_SECTIONS.items():
            fields[section] = normalize_amount_map(keys, root.get(section))
        return fields

    def apply_prefill(self, fields: dict, context: StepContext) -> dict:
        next_fields = copy.deepcopy(fields)
        next_fields["accountRegistration"] = prefill_account_registration(
            next_fields["accountRegistration"], context.prefill
        )
        return next_fields

    def response_extras(self, fields: dict, context: StepContext) -> dict:
        return {"totals": compute_totals(fields)}

    def validate_completion(self, fields: dict, context: StepContext | None = None) -> FieldErrors:
        registration = fields["accountRegistration"]
        errors: FieldErrors = {
            f"step1.accountRegistration.{key}": message
            for key, message in _COMPLETION_REGISTRATION_MESSAGES.items()
            if not registration.get(key)
        }
        for section in AMOUNT_SECTIONS:
            for key, value in fields[section].items():
                if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                    errors[f"step1.{section}.{key}"] = AMOUNT_MESSAGE
        return errors


def validate_notes(answer: Any, context: StepContext | None = None) -> ValidationResult:
    if not isinstance(answer, dict):
        return fail({"step2.notes": "Please provide notes."})
    return ok(
        {
            "notes": normalize_nullable_string(answer.get("notes")),
            "additionalNotes": normalize_nullable_string(answer.get("additionalNotes")),
        }
    )


class FinalizationStep(StepDefinition):
    number = 2
    key = "STEP_2_FINALIZATION"
    label = "STEP 2. STATEMENT OF FINANCIAL CONDITION"

    def build_questions(self) -> list[Question]:
        return [
            Question("step2.notes", validate_notes, writer_for("notes")),
            Question("step2.acknowledgements", self._validate_acknowledgements, writer_for("acknowledgements")),
            Question("step2.signatures.accountOwners", self._validate_account_owners, merge_writer("signatures")),
            Question("step2.signatures.firm", self._validate_firm, merge_writer("signatures")),
        ]

    @staticmethod
    def _validate_acknowledgements(answer: Any, context: StepContext | None = None) -> ValidationResult:
        acknowledgements = create_boolean_map(ACKNOWLEDGEMENT_KEYS, answer)
        if count_true_flags(acknowledgements) != len(ACKNOWLEDGEMENT_KEYS):
            return fail({"step2.acknowledgements": "All acknowledgements must be accepted."})
        return ok(acknowledgements)

    @staticmethod
    def _validate_account_owners(answer: Any, context: StepContext) -> ValidationResult:
        return validate_signature_group(
            answer,
            "step2.signatures.accountOwners",
            account_owner_specs(context.requires_joint_owner_signature),
        )

    @staticmethod
    def _validate_firm(answer: Any, context: StepContext) -> ValidationResult:
        return validate_signature_group(answer, "step2.signatures.firm", FIRM_SPECS)

    def default_fields(self) -> dict:
        return self.normalize(None)

    def normalize(self, raw: Any, context: StepContext | None = None) -> dict:
        root = to_record(raw)
        notes = to_record(root.get("notes"))
        return {
            "notes": {
                "notes": normalize_nullable_string(notes.get("notes")),
                "additionalNotes": normalize_nullable_string(notes.get("additionalNotes")),
            },
            "acknowledgements": create_boolean_map(ACKNOWLEDGEMENT_KEYS, root.get("acknowledgements")),
            "signatures": normalize_signature_group(root.get("signatures"), SIGNATURE_NAMES),
        }

    def apply_prefill(self, fields: dict, context: StepContext) -> dict:
        next_fields = copy.deepcopy(fields)
        next_fields["signatures"] = prefill_signatures(
            next_fields["signatures"],
            context.prefill,
            SIGNATURE_NAMES,
            requires_joint=context.requires_joint_owner_signature,
        )
        return next_fields

    def response_extras(self, fields: dict, context: StepContext) -> dict:
        return {"requiresJointOwnerSignature": context.requires_joint_owner_signature}

    def validate_completion(self, fields: dict, context: StepContext | None = None) -> FieldErrors:
        context = context or StepContext()
        errors: FieldErrors = {}
        collect(errors, self._validate_acknowledgements(fields["acknowledgements"]))
        collect(errors, self._validate_account_owners(fields["signatures"], context))
        collect(errors, self._validate_firm(fields["signatures"], context))
        return errors


class StatementOfFinancialConditionForm(FormDefinition):
    code = SFC_CODE
    title = "Statement of Financial Condition"
    slug = "statement-of-financial-condition"

    def __init__(self, investor_profile: InvestorProfileForm) -> None:
        super().__init__([FinancialsStep(), FinalizationStep()])
        self.investor_profile = investor_profile

    def step_context(self, number: int, snapshot: ClientSnapshot) -> StepContext:
        context = StepContext(
            advisor_name=snapshot.advisor_name,
            requires_joint_owner_signature=self.investor_profile.requires_joint_owner_signature(snapshot),
        )
        if number == 1:
            context.prefill.update(registration_prefill(self.investor_profile, snapshot))
        else:
            signatures = self.investor_profile.signatures(snapshot)
            context.prefill.update(
                {
                    "accountOwner": signatures["accountOwner"],
                    "jointAccountOwner": signatures["jointAccountOwner"],
                    "financialProfessional": signatures["financialProfessional"],
                    "registeredPrincipal": signatures["supervisorPrincipal"],
                }
            )
        return context

    def totals(self, snapshot: ClientSnapshot) -> dict[str, int | float]:
        return compute_totals(self.load_fields(1, snapshot))

    def signatures(self, snapshot: ClientSnapshot) -> dict:
        return self.load_fields(2, snapshot)["signatures"]


def registration_prefill(investor_profile: InvestorProfileForm, snapshot: ClientSnapshot) -> dict[str, str | None]:
    """RR details from Investor Profile step 1; customer names fall back to the client name."""
    registration = investor_profile.account_registration(snapshot)["accountRegistration"]
    return {
        "rrName": registration.get("rrName") or None,
        "rrNo": registration.get("rrNo") or None,
        "customerNames": registration.get("customerNames") or snapshot.client_name,
    }


__all__ = [
    "ACKNOWLEDGEMENT_KEYS",
    "AMOUNT_SECTIONS",
    "FinalizationStep",
    "FinancialsStep",
    "SFC_CODE",
    "StatementOfFinancialConditionForm",
    "compute_totals",
    "registration_prefill",
]
