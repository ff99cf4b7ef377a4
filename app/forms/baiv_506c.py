"""Brokerage Accredited Investor Verification Form for SEC Rule 506(c)."""

from __future__ import annotations

import copy
from typing import Any

from app.forms.base import FormDefinition
from app.forms.baiodf import BaiodfForm, signature_prefill
from app.forms.investor_profile import InvestorProfileForm
from app.forms.shared import (
    AcknowledgementSignatureStep,
    account_registration_errors,
    normalize_account_registration,
    prefill_account_registration,
    validate_account_registration,
)
from app.forms.statement_of_financial_condition import StatementOfFinancialConditionForm, registration_prefill
from app.logic.field_normalizer import to_record
from app.logic.step_engine import Question, StepContext, StepDefinition, writer_for
from app.logic.validation import FieldErrors
from app.models.onboarding import ClientSnapshot

BAIV_506C_CODE = "BAIV_506C"

ACKNOWLEDGEMENT_KEYS = (
    "rule506cGuidelineAcknowledged",
    "secRuleReviewedAndUnderstood",
    "incomeOrNetWorthVerified",
    "documentationReviewed",
)


class ClientAccountStep(StepDefinition):
    number = 1
    key = "STEP_1_CLIENT_ACCOUNT_INFORMATION"
    label = "STEP 1. CLIENT / ACCOUNT INFORMATION"

    def build_questions(self) -> list[Question]:
        return [
            Question(
                "step1.accountRegistration",
                lambda answer, context: validate_account_registration(answer, "step1.accountRegistration"),
                writer_for("accountRegistration"),
            )
        ]

    def default_fields(self) -> dict:
        return self.normalize(None)

    def normalize(self, raw: Any, context: StepContext | None = None) -> dict:
        return {"accountRegistration": normalize_account_registration(to_record(raw).get("accountRegistration"))}

    def apply_prefill(self, fields: dict, context: StepContext) -> dict:
        next_fields = copy.deepcopy(fields)
        next_fields["accountRegistration"] = prefill_account_registration(
            next_fields["accountRegistration"], context.prefill
        )
        return next_fields

    def validate_completion(self, fields: dict, context: StepContext | None = None) -> FieldErrors:
        return account_registration_errors(fields["accountRegistration"], "step1.accountRegistration")


class AcknowledgementsStep(AcknowledgementSignatureStep):
    acknowledgement_keys = ACKNOWLEDGEMENT_KEYS
    acknowledgement_message = "All required acknowledgements must be accepted."

    def __init__(self) -> None:
        super().__init__(2, "STEP_2_ACKNOWLEDGEMENTS_AND_SIGNATURES", "STEP 2. ACKNOWLEDGEMENTS AND SIGNATURES")


class Baiv506cForm(FormDefinition):
    code = BAIV_506C_CODE
    title = "Brokerage Accredited Investor Verification Form for SEC Rule 506(c)"
    slug = "brokerage-accredited-investor-verification"

    def __init__(
        self,
        investor_profile: InvestorProfileForm,
        sfc: StatementOfFinancialConditionForm,
        baiodf: BaiodfForm,
    ) -> None:
        super().__init__([ClientAccountStep(), AcknowledgementsStep()])
        self.investor_profile = investor_profile
        self.sfc = sfc
        self.baiodf = baiodf

    def step_context(self, number: int, snapshot: ClientSnapshot) -> StepContext:
        context = StepContext(
            advisor_name=snapshot.advisor_name,
            requires_joint_owner_signature=self.investor_profile.requires_joint_owner_signature(snapshot),
        )
        if number == 1:
            context.prefill.update(registration_prefill(self.investor_profile, snapshot))
        else:
            context.prefill.update(
                signature_prefill(
                    [
                        self.baiodf.signatures(snapshot),
                        self.sfc.signatures(snapshot),
                        self.investor_profile.signatures(snapshot),
                    ],
                    snapshot.advisor_name,
                )
            )
        return context


__all__ = ["ACKNOWLEDGEMENT_KEYS", "AcknowledgementsStep", "BAIV_506C_CODE", "Baiv506cForm", "ClientAccountStep"]
