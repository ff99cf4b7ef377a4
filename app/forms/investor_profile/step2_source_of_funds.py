"""Investor Profile step 2: USA PATRIOT Act source of funds."""

from __future__ import annotations

from typing import Any

from app.logic.boolean_maps import count_true_flags, create_boolean_map
from app.logic.field_normalizer import normalize_nullable_string, to_record
from app.logic.step_engine import Question, StepContext, StepDefinition, writer_for
from app.logic.validation import FieldErrors, ValidationResult, fail, ok

SOURCE_OF_FUNDS_KEYS = (
    "accountsReceivable",
    "incomeFromEarnings",
    "legalSettlement",
    "spouseParent",
    "accumulatedSavings",
    "inheritance",
    "lotteryGaming",
    "rentalIncome",
    "alimony",
    "insuranceProceeds",
    "pensionIraRetirementSavings",
    "saleOfBusiness",
    "gift",
    "investmentProceeds",
    "saleOfRealEstate",
    "other",
)

_SELECT_MESSAGE = "Please select at least one source of funds."
_OTHER_MESSAGE = "Please add details for Other."


def _normalize_sources(source: Any) -> dict:
    record = to_record(source)
    value: dict[str, Any] = create_boolean_map(SOURCE_OF_FUNDS_KEYS, record)
    value["otherDetails"] = normalize_nullable_string(record.get("otherDetails")) if value["other"] else None
    return value


def _source_errors(sources: dict) -> FieldErrors:
    flags = {key: sources[key] for key in SOURCE_OF_FUNDS_KEYS}
    if count_true_flags(flags) == 0:
        return {"initialSourceOfFunds": _SELECT_MESSAGE}
    if sources["other"] and not sources["otherDetails"]:
        return {"initialSourceOfFunds.otherDetails": _OTHER_MESSAGE}
    return {}


def validate_initial_source_of_funds(answer: Any, context: StepContext) -> ValidationResult:
    if not isinstance(answer, dict):
        return fail({"initialSourceOfFunds": _SELECT_MESSAGE})
    sources = _normalize_sources(answer)
    errors = _source_errors(sources)
    return fail(errors) if errors else ok(sources)


class SourceOfFundsStep(StepDefinition):
    number = 2
    key = "STEP_2_USA_PATRIOT_ACT_INFORMATION"
    label = "STEP 2. USA PATRIOT ACT INFORMATION"

    def build_questions(self) -> list[Question]:
        return [
            Question(
                "step2.initialSourceOfFunds",
                validate_initial_source_of_funds,
                writer_for("initialSourceOfFunds"),
            )
        ]

    def default_fields(self) -> dict:
        return self.normalize(None)

    def normalize(self, raw: Any, context: StepContext | None = None) -> dict:
        return {"initialSourceOfFunds": _normalize_sources(to_record(raw).get("initialSourceOfFunds"))}

    def sanitize(self, fields: dict) -> dict:
        # otherDetails only survives while Other is ticked
        return {"initialSourceOfFunds": _normalize_sources(fields["initialSourceOfFunds"])}

    def validate_completion(self, fields: dict, context: StepContext | None = None) -> FieldErrors:
        return _source_errors(self.sanitize(fields)["initialSourceOfFunds"])


__all__ = ["SOURCE_OF_FUNDS_KEYS", "SourceOfFundsStep", "validate_initial_source_of_funds"]
