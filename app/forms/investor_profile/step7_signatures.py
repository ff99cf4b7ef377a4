"""Investor Profile step 7: certifications and signatures."""

from __future__ import annotations

import copy
from typing import Any

from app.forms.shared import (
    account_owner_specs,
    normalize_signature_group,
    prefill_signatures,
    validate_signature_group,
)
from app.logic.field_normalizer import to_record
from app.logic.step_engine import Question, StepContext, StepDefinition, merge_writer, writer_for
from app.logic.validation import FieldErrors, ValidationResult, collect, fail, ok

ACCEPTANCE_KEYS = ("attestationsAccepted", "taxpayerCertificationAccepted", "usPersonDefinitionAcknowledged")
SIGNATURE_NAMES = ("accountOwner", "jointAccountOwner", "financialProfessional", "supervisorPrincipal")
FIRM_SPECS = [
    ("financialProfessional", "Financial Professional", True),
    ("supervisorPrincipal", "Supervisor / Principal", False),
]


def _normalize_acceptances(source: Any) -> dict[str, bool]:
    record = to_record(source)
    return {key: record.get(key) is True for key in ACCEPTANCE_KEYS}


def validate_acceptances(answer: Any, context: StepContext | None = None) -> ValidationResult:
    acceptances = _normalize_acceptances(answer)
    if not all(acceptances.values()):
        return fail(
            {"step7.certifications.acceptances": "All required attestations and certifications must be accepted."}
        )
    return ok(acceptances)


class SignaturesStep(StepDefinition):
    number = 7
    key = "STEP_7_SIGNATURES"
    label = "STEP 7. SIGNATURES"

    def build_questions(self) -> list[Question]:
        return [
            Question(
                "step7.certifications.acceptances",
                validate_acceptances,
                writer_for("certifications", "acceptances"),
            ),
            Question(
                "step7.signatures.accountOwners",
                self._validate_account_owners,
                merge_writer("signatures"),
            ),
            Question("step7.signatures.firm", self._validate_firm, merge_writer("signatures")),
        ]

    def _validate_account_owners(self, answer: Any, context: StepContext) -> ValidationResult:
        return validate_signature_group(
            answer,
            "step7.signatures.accountOwners",
            account_owner_specs(context.requires_joint_owner_signature),
        )

    def _validate_firm(self, answer: Any, context: StepContext) -> ValidationResult:
        return validate_signature_group(answer, "step7.signatures.firm", FIRM_SPECS)

    def default_fields(self) -> dict:
        return self.normalize(None)

    def normalize(self, raw: Any, context: StepContext | None = None) -> dict:
        root = to_record(raw)
        return {
            "certifications": {
                "acceptances": _normalize_acceptances(to_record(root.get("certifications")).get("acceptances"))
            },
            "signatures": normalize_signature_group(root.get("signatures"), SIGNATURE_NAMES),
        }

    def apply_prefill(self, fields: dict, context: StepContext) -> dict:
        """Printed names only: holder names for the owners, advisor for the firm."""
        next_fields = copy.deepcopy(fields)
        next_fields["signatures"] = prefill_signatures(
            next_fields["signatures"],
            context.prefill,
            ("accountOwner", "jointAccountOwner", "financialProfessional"),
            requires_joint=context.requires_joint_owner_signature,
        )
        return next_fields

    def response_extras(self, fields: dict, context: StepContext) -> dict:
        return {"requiresJointOwnerSignature": context.requires_joint_owner_signature}

    def validate_completion(self, fields: dict, context: StepContext | None = None) -> FieldErrors:
        context = context or StepContext()
        errors: FieldErrors = {}
        collect(errors, validate_acceptances(fields["certifications"]["acceptances"]))
        collect(errors, self._validate_account_owners(fields["signatures"], context))
        collect(errors, self._validate_firm(fields["signatures"], context))
        return errors


__all__ = ["ACCEPTANCE_KEYS", "SIGNATURE_NAMES", "SignaturesStep", "validate_acceptances"]
