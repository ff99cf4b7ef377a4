"""Investor Profile step 5: objectives and investment detail."""

from __future__ import annotations

import copy
from typing import Any

from app.logic.boolean_maps import (
    count_true_flags,
    create_boolean_map,
    single_selection,
    validate_multi_choice,
    validate_single_choice,
)
from app.logic.field_normalizer import (
    normalize_integer,
    normalize_nullable_string,
    normalize_optional_amount,
    to_list,
    to_record,
)
from app.logic.step_engine import Question, StepContext, StepDefinition, writer_for
from app.logic.validation import FieldErrors, ValidationResult, collect, from_errors

RISK_EXPOSURE_KEYS = ("low", "moderate", "speculation", "highRisk")
ACCOUNT_OBJECTIVE_KEYS = ("income", "longTermGrowth", "shortTermGrowth")
YES_NO_KEYS = ("yes", "no")
LIQUIDITY_NEEDS_KEYS = ("high", "medium", "low")

MIN_HORIZON_YEAR = 1900
MAX_HORIZON_YEAR = 2100

FIXED_VALUE_GROUPS: dict[str, tuple[tuple[str, str], ...]] = {
    "marketIncome": (
        ("equities", "Equities"),
        ("options", "Options"),
        ("fixedIncome", "Fixed Income"),
        ("mutualFunds", "Mutual Funds"),
        ("unitInvestmentTrusts", "Unit Investment Trusts"),
        ("exchangeTradedFunds", "Exchange-Traded Funds"),
    ),
    "alternativesInsurance": (
        ("realEstate", "Real Estate"),
        ("insurance", "Insurance"),
        ("variableAnnuities", "Variable Annuities"),
        ("fixedAnnuities", "Fixed Annuities"),
        ("preciousMetals", "Precious Metals"),
        ("commoditiesFutures", "Commodities/Futures"),
    ),
}

_OTHER_ENTRIES_PATH = "step5.investments.otherEntries.entries"
_HORIZON_PATH = "step5.horizonAndLiquidity"


def _normalize_fixed_values(group: str, source: Any) -> dict[str, int | float | None]:
    record = to_record(source)
    return {key: normalize_optional_amount(record.get(key)) for key, _label in FIXED_VALUE_GROUPS[group]}


def normalize_other_entries(source: Any) -> list[dict]:
    """Rows with neither a label nor a value are dropped."""
    entries = []
    for item in to_list(source):
        record = to_record(item)
        entry = {
            "label": normalize_nullable_string(record.get("label")),
            "value": normalize_optional_amount(record.get("value")),
        }
        if entry["label"] is None and entry["value"] is None:
            continue
        entries.append(entry)
    return entries


def _fixed_values_validator(group: str):
    prefix = f"step5.investments.fixedValues.{group}"

    def _validate(answer: Any, context: StepContext | None = None) -> ValidationResult:
        values = _normalize_fixed_values(group, answer)
        errors = {
            f"{prefix}.{key}": f"{label} value is required."
            for key, label in FIXED_VALUE_GROUPS[group]
            if values[key] is None
        }
        return from_errors(errors, values)

    return _validate


def validate_other_entries(answer: Any, context: StepContext | None = None) -> ValidationResult:
    entries = normalize_other_entries(to_record(answer).get("entries"))
    errors: FieldErrors = {}
    if not entries:
        errors[_OTHER_ENTRIES_PATH] = "Add at least one other investment category and value."
    for index, entry in enumerate(entries):
        if not entry["label"]:
            errors[f"{_OTHER_ENTRIES_PATH}.{index}.label"] = "Other investment label is required."
        if entry["value"] is None:
            errors[f"{_OTHER_ENTRIES_PATH}.{index}.value"] = (
                "Other investment value must be a number greater than or equal to 0."
            )
    return from_errors(errors, {"entries": entries})


def _horizon_year(value: Any) -> int | None:
    return None if isinstance(value, bool) else normalize_integer(value)


def validate_horizon_and_liquidity(answer: Any, context: StepContext | None = None) -> ValidationResult:
    record = to_record(answer)
    horizon = to_record(record.get("timeHorizon"))
    from_year = _horizon_year(horizon.get("fromYear"))
    to_year = _horizon_year(horizon.get("toYear"))
    liquidity = create_boolean_map(LIQUIDITY_NEEDS_KEYS, record.get("liquidityNeeds"))
    errors: FieldErrors = {}

    if from_year is None or not MIN_HORIZON_YEAR <= from_year <= MAX_HORIZON_YEAR:
        errors[f"{_HORIZON_PATH}.timeHorizon.fromYear"] = (
            f"Enter a valid From Year between {MIN_HORIZON_YEAR} and {MAX_HORIZON_YEAR}."
        )
    if to_year is None or not MIN_HORIZON_YEAR <= to_year <= MAX_HORIZON_YEAR:
        errors[f"{_HORIZON_PATH}.timeHorizon.toYear"] = (
            f"Enter a valid To Year between {MIN_HORIZON_YEAR} and {MAX_HORIZON_YEAR}."
        )
    if from_year is not None and to_year is not None and from_year > to_year:
        errors[f"{_HORIZON_PATH}.timeHorizon.toYear"] = "To Year must be greater than or equal to From Year."
    if count_true_flags(liquidity) != 1:
        errors[f"{_HORIZON_PATH}.liquidityNeeds"] = "Select exactly one liquidity need."

    return from_errors(
        errors,
        {"timeHorizon": {"fromYear": from_year, "toYear": to_year}, "liquidityNeeds": liquidity},
    )


class ObjectivesStep(StepDefinition):
    number = 5
    key = "STEP_5_OBJECTIVES_AND_INVESTMENT_DETAIL"
    label = "STEP 5. OBJECTIVES AND INVESTMENT DETAIL"

    def build_questions(self) -> list[Question]:
        return [
            Question(
                "step5.profile.riskExposure",
                lambda answer, context: validate_single_choice(
                    answer,
                    RISK_EXPOSURE_KEYS,
                    "step5.profile.riskExposure",
                    "Select exactly one risk exposure option.",
                ),
                writer_for("profile", "riskExposure"),
            ),
            Question(
                "step5.profile.accountObjectives",
                lambda answer, context: validate_multi_choice(
                    answer,
                    ACCOUNT_OBJECTIVE_KEYS,
                    "step5.profile.accountObjectives",
                    "Select at least one investment objective.",
                ),
                writer_for("profile", "accountObjectives"),
            ),
            Question(
                "step5.investments.fixedValues.marketIncome",
                _fixed_values_validator("marketIncome"),
                writer_for("investments", "fixedValues", "marketIncome"),
            ),
            Question(
                "step5.investments.fixedValues.alternativesInsurance",
                _fixed_values_validator("alternativesInsurance"),
                writer_for("investments", "fixedValues", "alternativesInsurance"),
            ),
            Question(
                "step5.investments.hasOther",
                lambda answer, context: validate_single_choice(answer, YES_NO_KEYS, "step5.investments.hasOther"),
                writer_for("investments", "hasOther"),
            ),
            Question(
                "step5.investments.otherEntries",
                validate_other_entries,
                writer_for("investments", "otherEntries"),
            ),
            Question("step5.horizonAndLiquidity", validate_horizon_and_liquidity, writer_for("horizonAndLiquidity")),
        ]

    def default_fields(self) -> dict:
        return self.normalize(None)

    def normalize(self, raw: Any, context: StepContext | None = None) -> dict:
        root = to_record(raw)
        profile = to_record(root.get("profile"))
        investments = to_record(root.get("investments"))
        fixed_values = to_record(investments.get("fixedValues"))
        horizon_and_liquidity = to_record(root.get("horizonAndLiquidity"))
        horizon = to_record(horizon_and_liquidity.get("timeHorizon"))
        fields = {
            "profile": {
                "riskExposure": create_boolean_map(RISK_EXPOSURE_KEYS, profile.get("riskExposure")),
                "accountObjectives": create_boolean_map(ACCOUNT_OBJECTIVE_KEYS, profile.get("accountObjectives")),
            },
            "investments": {
                "fixedValues": {
                    group: _normalize_fixed_values(group, fixed_values.get(group)) for group in FIXED_VALUE_GROUPS
                },
                "hasOther": create_boolean_map(YES_NO_KEYS, investments.get("hasOther")),
                "otherEntries": {
                    "entries": normalize_other_entries(to_record(investments.get("otherEntries")).get("entries"))
                },
            },
            "horizonAndLiquidity": {
                "timeHorizon": {
                    "fromYear": _horizon_year(horizon.get("fromYear")),
                    "toYear": _horizon_year(horizon.get("toYear")),
                },
                "liquidityNeeds": create_boolean_map(
                    LIQUIDITY_NEEDS_KEYS, horizon_and_liquidity.get("liquidityNeeds")
                ),
            },
        }
        return self.sanitize(fields)

    def sanitize(self, fields: dict) -> dict:
        result = copy.deepcopy(fields)
        investments = result["investments"]
        if self._has_other(result):
            investments["otherEntries"]["entries"] = normalize_other_entries(investments["otherEntries"]["entries"])
        else:
            investments["otherEntries"]["entries"] = []
        return result

    @staticmethod
    def _has_other(fields: dict) -> bool:
        return single_selection(fields["investments"]["hasOther"], YES_NO_KEYS) == "yes"

    def visible_question_ids(self, fields: dict) -> list[str]:
        visible = [
            "step5.profile.riskExposure",
            "step5.profile.accountObjectives",
            "step5.investments.fixedValues.marketIncome",
            "step5.investments.fixedValues.alternativesInsurance",
            "step5.investments.hasOther",
        ]
        if self._has_other(fields):
            visible.append("step5.investments.otherEntries")
        visible.append("step5.horizonAndLiquidity")
        return visible

    def response_extras(self, fields: dict, context: StepContext) -> dict:
        if "requiresStep4" in context.related:
            return {"requiresStep4": bool(context.related["requiresStep4"])}
        return {}

    def validate_completion(self, fields: dict, context: StepContext | None = None) -> FieldErrors:
        fields = self.sanitize(fields)
        errors: FieldErrors = {}
        if count_true_flags(fields["profile"]["riskExposure"]) != 1:
            errors["step5.profile.riskExposure"] = "Select exactly one risk exposure option."
        if count_true_flags(fields["profile"]["accountObjectives"]) == 0:
            errors["step5.profile.accountObjectives"] = "Select at least one account investment objective."
        for group in FIXED_VALUE_GROUPS:
            collect(errors, _fixed_values_validator(group)(fields["investments"]["fixedValues"][group]))

        has_other = single_selection(fields["investments"]["hasOther"], YES_NO_KEYS)
        if has_other is None:
            errors["step5.investments.hasOther"] = "Select whether to add other investment categories."
        elif has_other == "yes":
            collect(errors, validate_other_entries(fields["investments"]["otherEntries"]))
        collect(errors, validate_horizon_and_liquidity(fields["horizonAndLiquidity"]))
        return errors


__all__ = [
    "ACCOUNT_OBJECTIVE_KEYS",
    "FIXED_VALUE_GROUPS",
    "LIQUIDITY_NEEDS_KEYS",
    "ObjectivesStep",
    "RISK_EXPOSURE_KEYS",
    "normalize_other_entries",
    "validate_horizon_and_liquidity",
    "validate_other_entries",
]
