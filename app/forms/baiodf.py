"""Brokerage Alternative Investment Order and Disclosure Form.

Three steps: customer/account details with order basics, the order itself
with concentration figures, then disclosures and signatures. Net worth
prefills from the Statement of Financial Condition totals; signatures from
the SFC, falling back to the Investor Profile.
"""

from __future__ import annotations

import copy
from typing import Any

from app.forms.base import FormDefinition
from app.forms.investor_profile import InvestorProfileForm
from app.forms.shared import (
    AMOUNT_MESSAGE,
    AcknowledgementSignatureStep,
    account_registration_errors,
    normalize_account_registration,
    prefill_account_registration,
    resolve_signature_block,
    validate_account_registration,
)
from app.forms.statement_of_financial_condition import StatementOfFinancialConditionForm, registration_prefill
from app.logic.boolean_maps import count_true_flags, create_boolean_map, single_selection, validate_single_choice
from app.logic.field_normalizer import (
    has_invalid_amount_input,
    normalize_amount,
    normalize_nullable_string,
    normalize_required_string,
    to_record,
)
from app.logic.leaf_validators import is_valid_date
from app.logic.step_engine import Question, StepContext, StepDefinition, writer_for
from app.logic.validation import FieldErrors, ValidationResult, collect, from_errors
from app.models.onboarding import ClientSnapshot

BAIODF_CODE = "BAIODF"

YES_NO_KEYS = ("yes", "no")
ORDER_CHOICES = ("qualifiedAccount", "solicitedTrade", "taxAdvantagePurchase")
CUSTODIAN_KEYS = ("firstClearing", "direct", "mainStar", "cnb", "kingdomTrust", "other")
ALT_POSITION_KEYS = (
    "existingIlliquidAltPositions",
    "existingSemiLiquidAltPositions",
    "existingTaxAdvantageAltPositions",
)
DISCLOSURE_KEYS = (
    "illiquidLongTerm",
    "reviewedProspectusOrPpm",
    "understandFeesAndExpenses",
    "noPublicMarket",
    "limitedRedemptionAndSaleRisk",
    "speculativeMayLoseInvestment",
    "distributionsMayVaryOrStop",
    "meetsSuitabilityStandards",
    "featuresRisksDiscussed",
    "meetsFinancialGoalsAndAccurate",
)

_CERTIFICATION_MESSAGE = "Certification is required when Qualified Account is Yes."
_DATE_FORMAT_MESSAGE = "Enter a valid date in YYYY-MM-DD format."


# -- step 1 -------------------------------------------------------------------


def _normalize_order_basics(source: Any) -> dict:
    record = to_record(source)
    basics: dict[str, Any] = {"proposedPrincipalAmount": normalize_amount(record.get("proposedPrincipalAmount"))}
    for choice in ORDER_CHOICES:
        basics[choice] = create_boolean_map(YES_NO_KEYS, record.get(choice))
    basics["qualifiedAccountRmdCertification"] = (
        record.get("qualifiedAccountRmdCertification") is True and basics["qualifiedAccount"]["yes"]
    )
    return basics


def validate_order_basics(answer: Any, context: StepContext | None = None) -> ValidationResult:
    record = to_record(answer)
    errors: FieldErrors = {}
    if has_invalid_amount_input(record.get("proposedPrincipalAmount")):
        errors["step1.orderBasics.proposedPrincipalAmount"] = AMOUNT_MESSAGE
    for choice in ORDER_CHOICES:
        collect(errors, validate_single_choice(record.get(choice), YES_NO_KEYS, f"step1.orderBasics.{choice}"))
    basics = _normalize_order_basics(record)
    qualified = single_selection(basics["qualifiedAccount"], YES_NO_KEYS)
    if qualified == "yes" and record.get("qualifiedAccountRmdCertification") is not True:
        errors["step1.orderBasics.qualifiedAccountRmdCertification"] = _CERTIFICATION_MESSAGE
    return from_errors(errors, basics)


class CustomerAccountStep(StepDefinition):
    number = 1
    key = "STEP_1_CUSTOMER_ACCOUNT_INFORMATION"
    label = "STEP 1. CUSTOMER / ACCOUNT INFORMATION"

    def build_questions(self) -> list[Question]:
        return [
            Question(
                "step1.accountRegistration",
                lambda answer, context: validate_account_registration(answer, "step1.accountRegistration"),
                writer_for("accountRegistration"),
            ),
            Question("step1.orderBasics", validate_order_basics, writer_for("orderBasics")),
        ]

    def default_fields(self) -> dict:
        return self.normalize(None)

    def normalize(self, raw: Any, context: StepContext | None = None) -> dict:
        root = to_record(raw)
        return {
            "accountRegistration": normalize_account_registration(root.get("accountRegistration")),
            "orderBasics": _normalize_order_basics(root.get("orderBasics")),
        }

    def sanitize(self, fields: dict) -> dict:
        result = copy.deepcopy(fields)
        basics = result["orderBasics"]
        if not basics["qualifiedAccount"].get("yes"):
            basics["qualifiedAccountRmdCertification"] = False
        return result

    def apply_prefill(self, fields: dict, context: StepContext) -> dict:
        next_fields = copy.deepcopy(fields)
        next_fields["accountRegistration"] = prefill_account_registration(
            next_fields["accountRegistration"], context.prefill
        )
        return next_fields

    def validate_completion(self, fields: dict, context: StepContext | None = None) -> FieldErrors:
        basics = fields["orderBasics"]
        errors = account_registration_errors(fields["accountRegistration"], "step1.accountRegistration")
        amount = basics["proposedPrincipalAmount"]
        if not isinstance(amount, (int, float)) or amount < 0:
            errors["step1.orderBasics.proposedPrincipalAmount"] = AMOUNT_MESSAGE
        for choice in ORDER_CHOICES:
            if count_true_flags(basics[choice]) != 1:
                errors[f"step1.orderBasics.{choice}"] = "Select exactly one option."
        if basics["qualifiedAccount"]["yes"] and not basics["qualifiedAccountRmdCertification"]:
            errors["step1.orderBasics.qualifiedAccountRmdCertification"] = _CERTIFICATION_MESSAGE
        return errors


# -- step 2 -------------------------------------------------------------------


def _normalize_custodian_and_product(source: Any) -> dict:
    record = to_record(source)
    custodian = create_boolean_map(CUSTODIAN_KEYS, record.get("custodian"))
    return {
        "custodian": custodian,
        "custodianOther": normalize_nullable_string(record.get("custodianOther")) if custodian["other"] else None,
        "nameOfProduct": normalize_required_string(record.get("nameOfProduct")),
        "sponsorIssuer": normalize_required_string(record.get("sponsorIssuer")),
        "dateOfPpm": normalize_nullable_string(record.get("dateOfPpm")),
        "datePpmSent": normalize_nullable_string(record.get("datePpmSent")),
    }


def _custodian_and_product_errors(product: dict) -> FieldErrors:
    prefix = "step2.custodianAndProduct"
    errors: FieldErrors = {}
    if count_true_flags(product["custodian"]) != 1:
        errors[f"{prefix}.custodian"] = "Select exactly one custodian option."
    if product["custodian"]["other"] and not product["custodianOther"]:
        errors[f"{prefix}.custodianOther"] = "Specify the custodian when Other is selected."
    if not product["nameOfProduct"]:
        errors[f"{prefix}.nameOfProduct"] = "Product name is required."
    if not product["sponsorIssuer"]:
        errors[f"{prefix}.sponsorIssuer"] = "Sponsor / Issuer is required."
    for leaf, label in (("dateOfPpm", "Date of PPM"), ("datePpmSent", "Date PPM Sent")):
        if not product[leaf]:
            errors[f"{prefix}.{leaf}"] = f"{label} is required."
        elif not is_valid_date(product[leaf]):
            errors[f"{prefix}.{leaf}"] = _DATE_FORMAT_MESSAGE
    return errors


def validate_custodian_and_product(answer: Any, context: StepContext | None = None) -> ValidationResult:
    product = _normalize_custodian_and_product(answer)
    return from_errors(_custodian_and_product_errors(product), product)


def validate_existing_alt_positions(answer: Any, context: StepContext | None = None) -> ValidationResult:
    record = to_record(answer)
    errors = {
        f"step2.existingAltPositions.{key}": AMOUNT_MESSAGE
        for key in ALT_POSITION_KEYS
        if has_invalid_amount_input(record.get(key))
    }
    return from_errors(errors, {key: normalize_amount(record.get(key)) for key in ALT_POSITION_KEYS})


def _net_worth_errors(net_worth: dict) -> FieldErrors:
    errors: FieldErrors = {}
    if net_worth["totalNetWorth"] <= 0:
        errors["step2.netWorthAndConcentration.totalNetWorth"] = "Total Net Worth must be greater than 0."
    if net_worth["liquidNetWorth"] < 0:
        errors["step2.netWorthAndConcentration.liquidNetWorth"] = AMOUNT_MESSAGE
    return errors


def validate_net_worth(answer: Any, context: StepContext | None = None) -> ValidationResult:
    record = to_record(answer)
    errors: FieldErrors = {}
    net_worth = {
        "totalNetWorth": normalize_amount(record.get("totalNetWorth")),
        "liquidNetWorth": normalize_amount(record.get("liquidNetWorth")),
    }
    for key in net_worth:
        if has_invalid_amount_input(record.get(key)):
            errors[f"step2.netWorthAndConcentration.{key}"] = AMOUNT_MESSAGE
    if "step2.netWorthAndConcentration.totalNetWorth" not in errors:
        errors.update(_net_worth_errors(net_worth))
    return from_errors(errors, net_worth)


def concentration_percent(numerator: int | float, denominator: int | float) -> float:
    if denominator <= 0:
        return 0
    return round(numerator / denominator * 100, 2)


def compute_concentrations(fields: dict, proposed_principal_amount: Any) -> dict[str, float]:
    positions = fields["existingAltPositions"]
    total_net_worth = fields["netWorthAndConcentration"]["totalNetWorth"]
    illiquid = positions["existingIlliquidAltPositions"]
    semi_liquid = positions["existingSemiLiquidAltPositions"]
    return {
        "existingIlliquidAltConcentrationPercent": concentration_percent(illiquid, total_net_worth),
        "existingSemiLiquidAltConcentrationPercent": concentration_percent(semi_liquid, total_net_worth),
        "existingTaxAdvantageAltConcentrationPercent": concentration_percent(
            positions["existingTaxAdvantageAltPositions"], total_net_worth
        ),
        "totalConcentrationPercent": concentration_percent(
            normalize_amount(proposed_principal_amount) + illiquid + semi_liquid, total_net_worth
        ),
    }


class OrderInformationStep(StepDefinition):
    number = 2
    key = "STEP_2_CUSTOMER_ORDER_INFORMATION"
    label = "STEP 2. CUSTOMER ORDER INFORMATION"

    def build_questions(self) -> list[Question]:
        return [
            Question("step2.custodianAndProduct", validate_custodian_and_product, writer_for("custodianAndProduct")),
            Question("step2.existingAltPositions", validate_existing_alt_positions, writer_for("existingAltPositions")),
            Question("step2.netWorthAndConcentration", validate_net_worth, writer_for("netWorthAndConcentration")),
        ]

    def default_fields(self) -> dict:
        return self.normalize(None)

    def normalize(self, raw: Any, context: StepContext | None = None) -> dict:
        root = to_record(raw)
        positions = to_record(root.get("existingAltPositions"))
        net_worth = to_record(root.get("netWorthAndConcentration"))
        return {
            "custodianAndProduct": _normalize_custodian_and_product(root.get("custodianAndProduct")),
            "existingAltPositions": {key: normalize_amount(positions.get(key)) for key in ALT_POSITION_KEYS},
            "netWorthAndConcentration": {
                "totalNetWorth": normalize_amount(net_worth.get("totalNetWorth")),
                "liquidNetWorth": normalize_amount(net_worth.get("liquidNetWorth")),
            },
        }

    def sanitize(self, fields: dict) -> dict:
        result = copy.deepcopy(fields)
        product = result["custodianAndProduct"]
        if not product["custodian"].get("other"):
            product["custodianOther"] = None
        return result

    def apply_prefill(self, fields: dict, context: StepContext) -> dict:
        """Net worth figures from the financial statement when not yet entered."""
        next_fields = copy.deepcopy(fields)
        net_worth = next_fields["netWorthAndConcentration"]
        total = context.prefill.get("totalNetWorth")
        liquid = context.prefill.get("liquidNetWorth")
        if net_worth["totalNetWorth"] <= 0 and isinstance(total, (int, float)) and total > 0:
            net_worth["totalNetWorth"] = total
        if net_worth["liquidNetWorth"] <= 0 and isinstance(liquid, (int, float)) and liquid >= 0:
            net_worth["liquidNetWorth"] = liquid
        return next_fields

    def response_extras(self, fields: dict, context: StepContext) -> dict:
        return {"concentrations": compute_concentrations(fields, context.related.get("proposedPrincipalAmount"))}

    def validate_completion(self, fields: dict, context: StepContext | None = None) -> FieldErrors:
        errors = _custodian_and_product_errors(fields["custodianAndProduct"])
        for key in ALT_POSITION_KEYS:
            if fields["existingAltPositions"][key] < 0:
                errors[f"step2.existingAltPositions.{key}"] = AMOUNT_MESSAGE
        errors.update(_net_worth_errors(fields["netWorthAndConcentration"]))
        return errors


# -- step 3 -------------------------------------------------------------------


class DisclosuresStep(AcknowledgementSignatureStep):
    acknowledgement_keys = DISCLOSURE_KEYS
    acknowledgement_message = "All required disclosures must be acknowledged."

    def __init__(self) -> None:
        super().__init__(3, "STEP_3_DISCLOSURES_AND_SIGNATURES", "STEP 3. DISCLOSURES + SIGNATURES")


# -- form ---------------------------------------------------------------------


class BaiodfForm(FormDefinition):
    code = BAIODF_CODE
    title = "Brokerage Alternative Investment Order and Disclosure Form"
    slug = "brokerage-alternative-investment-order-disclosure"

    def __init__(self, investor_profile: InvestorProfileForm, sfc: StatementOfFinancialConditionForm) -> None:
        super().__init__([CustomerAccountStep(), OrderInformationStep(), DisclosuresStep()])
        self.investor_profile = investor_profile
        self.sfc = sfc

    def step_context(self, number: int, snapshot: ClientSnapshot) -> StepContext:
        context = StepContext(
            advisor_name=snapshot.advisor_name,
            requires_joint_owner_signature=self.investor_profile.requires_joint_owner_signature(snapshot),
        )
        if number == 1:
            context.prefill.update(registration_prefill(self.investor_profile, snapshot))
        elif number == 2:
            totals = self.sfc.totals(snapshot)
            context.prefill.update(
                {"totalNetWorth": totals["totalNetWorth"], "liquidNetWorth": totals["totalPotentialLiquidity"]}
            )
            step1 = self.load_fields(1, snapshot)
            context.related["proposedPrincipalAmount"] = step1["orderBasics"]["proposedPrincipalAmount"]
        else:
            context.prefill.update(
                signature_prefill(
                    [self.sfc.signatures(snapshot), self.investor_profile.signatures(snapshot)],
                    snapshot.advisor_name,
                )
            )
        return context

    def signatures(self, snapshot: ClientSnapshot) -> dict:
        return self.load_fields(3, snapshot)["signatures"]


def signature_prefill(sources: list[dict], advisor_name: str | None) -> dict[str, dict]:
    """Per signer, the first filled leaf across ``sources`` in order.

    The financial professional's printed name falls back to the advisor.
    """
    prefill = {
        name: resolve_signature_block(*(source.get(name) for source in sources))
        for name in ("accountOwner", "jointAccountOwner", "financialProfessional")
    }
    if not prefill["financialProfessional"]["printedName"] and advisor_name:
        prefill["financialProfessional"]["printedName"] = advisor_name
    return prefill


__all__ = [
    "BAIODF_CODE",
    "BaiodfForm",
    "CustomerAccountStep",
    "DisclosuresStep",
    "OrderInformationStep",
    "compute_concentrations",
    "concentration_percent",
    "signature_prefill",
]
