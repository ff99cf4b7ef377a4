"""Investor Profile: the seven-step form every client starts with."""

from __future__ import annotations

from typing import Any

from app.forms.base import FormDefinition
from app.forms.investor_profile.account_types import (
    infer_default_holder_kind,
    is_step4_required,
    requires_joint_owner_signature,
)
from app.forms.investor_profile.holder import primary_holder_step, secondary_holder_step
from app.forms.investor_profile.step1_account_registration import AccountRegistrationStep
from app.forms.investor_profile.step2_source_of_funds import SourceOfFundsStep
from app.forms.investor_profile.step5_objectives import ObjectivesStep
from app.forms.investor_profile.step6_trusted_contact import TrustedContactStep
from app.forms.investor_profile.step7_signatures import SignaturesStep
from app.logic.step_engine import StepContext
from app.models.onboarding import ClientSnapshot

INVESTOR_PROFILE_CODE = "INVESTOR_PROFILE"


class InvestorProfileForm(FormDefinition):
    code = INVESTOR_PROFILE_CODE
    title = "Investor Profile"
    slug = "investor-profile"

    def __init__(self) -> None:
        super().__init__(
            [
                AccountRegistrationStep(),
                SourceOfFundsStep(),
                primary_holder_step(),
                secondary_holder_step(),
                ObjectivesStep(),
                TrustedContactStep(),
                SignaturesStep(),
            ]
        )

    # -- cross-step reads -------------------------------------------------

    def account_registration(self, snapshot: ClientSnapshot) -> dict:
        """Step 1 fields, legacy columns folded in."""
        return self.load_fields(1, snapshot)

    def requires_step4(self, snapshot: ClientSnapshot) -> bool:
        return is_step4_required(self.account_registration(snapshot))

    def requires_joint_owner_signature(self, snapshot: ClientSnapshot) -> bool:
        return requires_joint_owner_signature(self.account_registration(snapshot))

    def holder_name(self, number: int, snapshot: ClientSnapshot) -> str | None:
        return self.load_fields(number, snapshot)["holder"]["name"] or None

    def signatures(self, snapshot: ClientSnapshot) -> dict:
        return self.load_fields(7, snapshot)["signatures"]

    # -- per-step context -------------------------------------------------

    def step_context(self, number: int, snapshot: ClientSnapshot) -> StepContext:
        if number == 1:
            return StepContext(advisor_name=snapshot.advisor_name, legacy=snapshot.legacy(self.code))

        step1 = self.account_registration(snapshot)
        context = StepContext(
            advisor_name=snapshot.advisor_name,
            requires_joint_owner_signature=requires_joint_owner_signature(step1),
        )
        if number in (3, 4):
            context.prefill["holderKind"] = infer_default_holder_kind(step1)
        if number in (3, 5):
            context.related["requiresStep4"] = is_step4_required(step1)
        if number == 7:
            context.prefill.update(
                {
                    "accountOwner": {"printedName": self.holder_name(3, snapshot)},
                    "jointAccountOwner": {"printedName": self.holder_name(4, snapshot)},
                    "financialProfessional": {"printedName": snapshot.advisor_name or None},
                }
            )
        return context

    def is_step_required(self, number: int, snapshot: ClientSnapshot) -> bool:
        if number == 4:
            return self.requires_step4(snapshot)
        return True

    def unavailable_step_message(self, number: int, snapshot: ClientSnapshot) -> str | None:
        if number == 4 and not self.requires_step4(snapshot):
            return "Step 4 is not required for the selected account type."
        return None

    def legacy_columns(self, number: int, fields: dict) -> dict[str, Any]:
        if number != 1:
            return {}
        return self.step(1).legacy_columns(fields)


__all__ = ["INVESTOR_PROFILE_CODE", "InvestorProfileForm"]
