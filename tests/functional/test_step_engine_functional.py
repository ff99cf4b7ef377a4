"""Functional tests for the questionnaire step engine.

These exercise normalization, boolean maps, leaf validators, visibility and
the answer cycle directly, without HTTP or a database.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from app.forms.baiodf import validate_order_basics
from app.forms.investor_profile.holder import primary_holder_step
from app.forms.investor_profile.step1_account_registration import AccountRegistrationStep, validate_custodial_gifts
from app.forms.investor_profile.step5_objectives import ObjectivesStep
from app.forms.investor_profile.step6_trusted_contact import TrustedContactStep
from app.forms.shared import prefill_account_registration, validate_signature_group
from app.forms.statement_of_financial_condition import FinancialsStep, compute_totals
from app.logic.boolean_maps import (
    SELECT_EXACTLY_ONE,
    count_true_flags,
    create_boolean_map,
    validate_multi_choice,
    validate_single_choice,
)
from app.logic.field_normalizer import (
    FieldSource,
    has_invalid_amount_input,
    normalize_amount,
    normalize_country_list,
    normalize_optional_amount,
    normalize_upper_code,
    resolve_fallback_chain,
)
from app.logic.leaf_validators import (
    create_signature_block,
    is_past_or_today,
    is_valid_country_code,
    is_valid_date,
    is_valid_email,
    is_valid_phone,
    utc_today,
    validate_optional_signature_block,
    validate_required_signature_block,
)
from app.logic.step_engine import StepContext, submit_answer
from app.logic.validation import INACTIVE_QUESTION_MESSAGE, UNSUPPORTED_QUESTION_MESSAGE
from app.logic.visibility_rules import clamp_question_index, next_question_index


# --------------------------------------------------------------------------
# Boolean maps
# --------------------------------------------------------------------------


def test_boolean_map_only_takes_literal_booleans():
    mapping = create_boolean_map(("yes", "no"), {"yes": "true", "no": True, "maybe": True})
    assert mapping == {"yes": False, "no": True}
    assert create_boolean_map(("a", "b"), None) == {"a": False, "b": False}
    assert create_boolean_map(("a",), ["a"]) == {"a": False}


@pytest.mark.parametrize(
    "answer, expected",
    [
        ({"yes": True, "no": False}, True),
        ({"yes": True, "no": True}, False),
        ({"yes": False, "no": False}, False),
        ({}, False),
        ("yes", False),
    ],
)
def test_single_choice_succeeds_iff_exactly_one_flag(answer, expected):
    result = validate_single_choice(answer, ("yes", "no"), "q")
    assert result.success is expected
    assert (count_true_flags(create_boolean_map(("yes", "no"), answer)) == 1) is expected
    if not expected:
        assert result.field_errors == {"q": SELECT_EXACTLY_ONE}


def test_multi_choice_requires_at_least_one():
    assert validate_multi_choice({"a": True, "b": True}, ("a", "b"), "q").success
    failed = validate_multi_choice({"a": False}, ("a", "b"), "q")
    assert failed.field_errors == {"q": "Select at least one option."}


# --------------------------------------------------------------------------
# Leaf validators
# --------------------------------------------------------------------------


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2024-02-29", True),
        ("2023-02-30", False),
        ("2023-02-28", True),
        ("2023-2-28", False),
        ("2023-13-01", False),
        ("20230228", False),
        ("0000-01-01", False),
        (20230228, False),
        (None, False),
    ],
)
def test_date_must_be_a_real_calendar_day(value, expected):
    assert is_valid_date(value) is expected


def test_today_is_not_in_the_future():
    today = utc_today()
    assert is_past_or_today(today.isoformat())
    assert not is_past_or_today((today + timedelta(days=1)).isoformat())


@pytest.mark.parametrize("value", [None, "", "0", 0, 12.5, "12.5", "-5", -5, "abc", [], {}, "  ", "1e3"])
def test_amount_normalization_is_idempotent(value):
    once = normalize_amount(value)
    assert normalize_amount(once) == once
    assert once >= 0


def test_amount_normalization_and_validation_diverge():
    for silent_zero in ("-5", "abc", -1, {"x": 1}):
        assert normalize_amount(silent_zero) == 0
        assert has_invalid_amount_input(silent_zero)
    for empty in (None, "", "   "):
        assert normalize_amount(empty) == 0
        assert not has_invalid_amount_input(empty)
    assert normalize_amount(" 42 ") == 42
    assert not has_invalid_amount_input("42")


@pytest.mark.parametrize(
    "text, expected",
    [("0x10", 16), ("0B11", 3), ("0o7", 7), ("-0x10", 0), ("0xZZ", 0), ("٣", 0), ("²", 0)],
)
def test_amount_parsing_follows_ascii_number_literals(text, expected):
    assert normalize_amount(text) == expected
    assert has_invalid_amount_input(text) is (expected == 0)


def test_optional_amount_rejects_non_ascii_digits():
    assert normalize_optional_amount("$1,200") == 1200
    assert normalize_optional_amount("$١,٢٠٠") is None


@pytest.mark.parametrize(
    "value, expected",
    [
        ("jordan@example.com", True),
        ("a@b.co", True),
        ("a@b", False),
        ("a b@example.com", False),
        ("a@@example.com", False),
        ("", False),
        (None, False),
    ],
)
def test_email_pattern(value, expected):
    assert is_valid_email(value) is expected


@pytest.mark.parametrize(
    "value, expected",
    [
        ("555-1234", True),
        ("+1 (555) 123.4567", True),
        ("1234567", True),
        ("123456", False),
        ("1" * 20, True),
        ("1" * 21, False),
        ("555-CALL", False),
        (5551234, False),
    ],
)
def test_phone_pattern_and_length(value, expected):
    assert is_valid_phone(value) is expected


def test_country_codes_are_upper_cased_before_checking():
    assert not is_valid_country_code("us")
    assert is_valid_country_code(normalize_upper_code(" us "))
    assert not is_valid_country_code("USA")
    assert normalize_upper_code("   ") is None
    assert normalize_country_list(["us", "US", "usa", " ca ", 7]) == ["US", "CA"]


def test_signature_block_in_the_future_is_rejected():
    block = create_signature_block({"typedSignature": "A", "printedName": "A", "date": "2099-01-01"})
    errors = validate_required_signature_block(block, "sig", "Account Owner")
    assert "future" in errors["sig.date"]


def test_optional_signature_block_is_all_or_nothing():
    assert validate_optional_signature_block(create_signature_block({}), "sig", "Joint Account Owner") == {}
    partial = create_signature_block({"typedSignature": "J"})
    errors = validate_optional_signature_block(partial, "sig", "Joint Account Owner")
    assert set(errors) == {"sig.printedName", "sig.date"}


def test_joint_signature_becomes_required_with_the_account_type():
    specs_optional = [("accountOwner", "Account Owner", True), ("jointAccountOwner", "Joint Account Owner", False)]
    specs_required = [("accountOwner", "Account Owner", True), ("jointAccountOwner", "Joint Account Owner", True)]
    answer = {"accountOwner": {"typedSignature": "A", "printedName": "A", "date": "2024-01-02"}}
    assert validate_signature_group(answer, "p", specs_optional).success
    result = validate_signature_group(answer, "p", specs_required)
    assert "p.jointAccountOwner.typedSignature" in result.field_errors


# --------------------------------------------------------------------------
# Cursor
# --------------------------------------------------------------------------


def test_question_index_clamps_into_range():
    visible = ["a", "b", "c"]
    assert clamp_question_index(5, visible) == 2
    assert clamp_question_index(-1, visible) == 0
    assert clamp_question_index("1", visible) == 0
    assert clamp_question_index(float("nan"), visible) == 0
    assert clamp_question_index(True, visible) == 0
    assert clamp_question_index(1, []) == 0
    assert clamp_question_index(1.0, visible) == 1


def test_next_index_stops_at_last_question():
    assert next_question_index("a", ["a", "b"]) == 1
    assert next_question_index("b", ["a", "b"]) == 1


# --------------------------------------------------------------------------
# Normalization, prefill and legacy fallbacks
# --------------------------------------------------------------------------


def test_normalize_never_fails_on_malformed_input():
    step = AccountRegistrationStep()
    for raw in (None, "junk", 5, [], {"accountRegistration": "x", "typeOfAccount": []}):
        fields = step.normalize(raw)
        assert fields["accountRegistration"]["rrName"] == ""
        assert count_true_flags(fields["typeOfAccount"]["primaryType"]) == 0


def test_fallback_chain_first_non_empty_source_wins():
    sources = [
        FieldSource(origin="nested", value="  "),
        FieldSource(origin="root", value="Root Value"),
        FieldSource(origin="column", value="Column Value"),
    ]
    assert resolve_fallback_chain(sources) == "Root Value"
    assert resolve_fallback_chain([FieldSource(origin="nested", value=None)], default=None) is None


def test_step1_registration_reads_legacy_locations_in_order():
    step = AccountRegistrationStep()
    raw = {"accountRegistration": {"rrName": "Nested"}, "rrName": "Root", "rrNo": "R-1"}
    context = StepContext(
        legacy={
            "step1_rr_name": "Column",
            "step1_rr_no": "C-1",
            "step1_customer_names": "Column Customer",
            "step1_account_type": {"retail": True, "retirement": False},
        }
    )
    registration = step.normalize(raw, context)["accountRegistration"]
    assert registration["rrName"] == "Nested"
    assert registration["rrNo"] == "R-1"
    assert registration["customerNames"] == "Column Customer"
    assert registration["retailRetirement"] == {"retail": True, "retirement": False}


def test_prefill_never_overwrites_entered_values():
    entered = {"rrName": "Mine", "rrNo": "", "customerNames": ""}
    merged = prefill_account_registration(entered, {"rrName": "Other", "rrNo": "77", "customerNames": None})
    assert merged == {"rrName": "Mine", "rrNo": "77", "customerNames": ""}


# --------------------------------------------------------------------------
# Answer cycle and branch clearing
# --------------------------------------------------------------------------


def _answer(step, fields, question_id, answer):
    result = submit_answer(step, fields, question_id, answer)
    assert result.success, result.field_errors
    return result.value


def test_switching_primary_type_clears_previous_branch():
    step = AccountRegistrationStep()
    state = _answer(step, step.default_fields(), "typeOfAccount.primaryType", {"trust": True})
    assert "typeOfAccount.trust.establishmentDate" in state.visible_question_ids
    state = _answer(step, state.fields, "typeOfAccount.trust.establishmentDate", "2010-05-01")
    assert state.fields["typeOfAccount"]["trust"]["establishmentDate"] == "2010-05-01"

    state = _answer(step, state.fields, "typeOfAccount.primaryType", {"individual": True})
    assert state.fields["typeOfAccount"]["trust"]["establishmentDate"] is None
    assert "typeOfAccount.trust.establishmentDate" not in state.visible_question_ids


def test_switching_has_other_to_no_empties_entries():
    step = ObjectivesStep()
    fields = step.default_fields()
    state = _answer(step, fields, "step5.investments.hasOther", {"yes": True, "no": False})
    state = _answer(
        step, state.fields, "step5.investments.otherEntries", {"entries": [{"label": "Art", "value": "1,500"}]}
    )
    assert state.fields["investments"]["otherEntries"]["entries"] == [{"label": "Art", "value": 1500}]

    state = _answer(step, state.fields, "step5.investments.hasOther", {"yes": False, "no": True})
    assert state.fields["investments"]["otherEntries"]["entries"] == []
    assert "step5.investments.otherEntries" not in state.visible_question_ids


def test_custodial_gifts_drop_blank_rows_before_indexing():
    result = validate_custodial_gifts(
        [{"state": " ", "dateGiftWasGiven": ""}, {"state": "CA", "dateGiftWasGiven": "2023-02-30"}],
        StepContext(),
    )
    assert not result.success
    assert result.field_errors == {"typeOfAccount.custodial.gifts.0.dateGiftWasGiven": "Use YYYY-MM-DD format."}

    blank_only = validate_custodial_gifts([{"state": "", "dateGiftWasGiven": ""}], StepContext())
    assert blank_only.field_errors == {"typeOfAccount.custodial.gifts": "Add at least one custodial gift entry."}

    kept = validate_custodial_gifts([{}, {"state": " NY ", "dateGiftWasGiven": "2023-02-28"}], StepContext())
    assert kept.success
    assert kept.value == [{"state": "NY", "dateGiftWasGiven": "2023-02-28"}]


def test_answering_no_clears_affiliation_details():
    step = primary_holder_step()
    question_id = "step3.disclosure.relatedAdvisorFirmEmployee"
    state = _answer(
        step,
        step.default_fields(),
        question_id,
        {
            "selection": {"yes": True, "no": False},
            "advisorEmployeeName": "Pat Doe",
            "advisorEmployeeRelationship": "Sibling",
        },
    )
    affiliations = state.fields["affiliations"]
    assert affiliations["advisorEmployeeName"] == "Pat Doe"
    assert affiliations["advisorEmployeeRelationship"] == "Sibling"

    state = _answer(
        step,
        state.fields,
        question_id,
        {
            "selection": {"yes": False, "no": True},
            "advisorEmployeeName": "Pat Doe",
            "advisorEmployeeRelationship": "Sibling",
        },
    )
    affiliations = state.fields["affiliations"]
    assert affiliations["relatedAdvisorFirmEmployee"] == {"yes": False, "no": True}
    assert affiliations["advisorEmployeeName"] is None
    assert affiliations["advisorEmployeeRelationship"] is None


def test_affiliation_details_required_when_answering_yes():
    step = primary_holder_step()
    result = submit_answer(
        step,
        step.default_fields(),
        "step3.disclosure.relatedAdvisorFirmEmployee",
        {"selection": {"yes": True, "no": False}, "advisorEmployeeName": "  "},
    )
    assert result.field_errors == {
        "step3.disclosure.relatedAdvisorFirmEmployee.advisorEmployeeName": "Employee name is required.",
        "step3.disclosure.relatedAdvisorFirmEmployee.advisorEmployeeRelationship": "Relationship is required.",
    }


def test_unknown_and_hidden_questions_are_rejected():
    step = AccountRegistrationStep()
    fields = step.default_fields()
    unknown = submit_answer(step, fields, "nope", "x")
    assert unknown.field_errors == {"questionId": UNSUPPORTED_QUESTION_MESSAGE}
    hidden = submit_answer(step, fields, "typeOfAccount.trust.trustType", {"living": True})
    assert hidden.field_errors == {"questionId": INACTIVE_QUESTION_MESSAGE}


def test_cursor_advances_past_answered_question():
    step = AccountRegistrationStep()
    state = _answer(step, step.default_fields(), "rrName", "  Jordan Rep  ")
    assert state.fields["accountRegistration"]["rrName"] == "Jordan Rep"
    assert state.current_question_index == 1
    assert state.current_question_id == "rrNo"


def test_empty_trusted_contact_decline_is_rejected():
    step = TrustedContactStep()
    result = step.validate_answer("step6.trustedContact.decline", {"yes": False, "no": False})
    assert not result.success
    assert result.field_errors == {"step6.trustedContact.decline": "Select exactly one option."}


# --------------------------------------------------------------------------
# Form-specific scenarios
# --------------------------------------------------------------------------


def test_order_basics_rejects_two_qualified_account_answers():
    result = validate_order_basics(
        {
            "proposedPrincipalAmount": 1000,
            "qualifiedAccount": {"yes": True, "no": True},
            "solicitedTrade": {"yes": False, "no": True},
            "taxAdvantagePurchase": {"yes": False, "no": True},
        }
    )
    assert not result.success
    assert "exactly one" in result.field_errors["step1.orderBasics.qualifiedAccount"]


def test_order_basics_requires_certification_for_qualified_accounts():
    result = validate_order_basics(
        {
            "proposedPrincipalAmount": 1000,
            "qualifiedAccount": {"yes": True, "no": False},
            "qualifiedAccountRmdCertification": False,
            "solicitedTrade": {"yes": False, "no": True},
            "taxAdvantagePurchase": {"yes": False, "no": True},
        }
    )
    assert not result.success
    assert "required" in result.field_errors["step1.orderBasics.qualifiedAccountRmdCertification"]


def test_financial_statement_totals():
    step = FinancialsStep()
    fields = step.normalize(
        {
            "liquidNonQualifiedAssets": {"cashMoneyMarketsCds": 100, "brokerageNonManaged": 200},
            "liabilities": {"creditCards": 50},
            "illiquidNonQualifiedAssets": {"primaryResidence": 500, "investmentRealEstate": 300, "privateBusiness": 200},
        }
    )
    totals = compute_totals(fields)
    assert totals["totalLiquidAssets"] == 300
    assert totals["totalLiabilities"] == 50
    assert totals["totalAssetsLessPrimaryResidence"] == 800
    assert totals["totalNetWorth"] == 1250
