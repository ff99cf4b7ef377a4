"""Functional tests for the follow-on forms, cross-form prefill and review."""

from __future__ import annotations

import pytest
from sqlalchemy import text as sql_text

from app.db.base import get_engine
from app.forms.registry import INVESTOR_PROFILE
from app.http.problem import ApiError
from app.logic.onboarding_flow import CONFLICT_MESSAGE, submit_step_answer
from app.logic.repository_clients import load_snapshot
from app.logic.repository_onboardings import StaleOnboardingError, save_step
from app.models.onboarding import OnboardingStatus

SFC = "statement-of-financial-condition"
BAIODF = "brokerage-alternative-investment-order-disclosure"
BAIV = "brokerage-accredited-investor-verification"

SIGNED = {"typedSignature": "Casey Client", "printedName": "Casey Client", "date": "2024-03-01"}
ADVISOR_SIGNED = {"typedSignature": "Avery Advisor", "printedName": "Avery Advisor", "date": "2024-03-01"}


def _url(client_id: str, slug: str, number: int, review: bool = False) -> str:
    middle = "review/" if review else ""
    return f"/api/clients/{client_id}/{slug}/{middle}step-{number}"


def _answer(client, client_id: str, slug: str, number: int, question_id: str, answer):
    res = client.post(_url(client_id, slug, number), json={"questionId": question_id, "answer": answer})
    assert res.status_code == 200, res.text
    return res.json()["onboarding"]


def _register_rep(client, client_id: str) -> None:
    _answer(client, client_id, "investor-profile", 1, "rrName", "Jordan Rep")
    _answer(client, client_id, "investor-profile", 1, "rrNo", "R-100")


def _enter_balance_sheet(client, client_id: str) -> dict:
    _answer(
        client,
        client_id,
        SFC,
        1,
        "step1.liquidNonQualifiedAssets",
        {"cashMoneyMarketsCds": 100, "brokerageNonManaged": "200"},
    )
    _answer(client, client_id, SFC, 1, "step1.liabilities", {"creditCards": 50})
    return _answer(
        client,
        client_id,
        SFC,
        1,
        "step1.illiquidNonQualifiedAssets",
        {"primaryResidence": 500, "investmentRealEstate": 300, "privateBusiness": 200},
    )


def test_sfc_registration_is_prefilled_from_investor_profile(client, all_forms_client):
    cid = all_forms_client["id"]
    _register_rep(client, cid)
    registration = client.get(_url(cid, SFC, 1)).json()["onboarding"]["step"]["fields"]["accountRegistration"]
    assert registration == {"rrName": "Jordan Rep", "rrNo": "R-100", "customerNames": all_forms_client["name"]}


def test_sfc_reports_totals(client, all_forms_client):
    onboarding = _enter_balance_sheet(client, all_forms_client["id"])
    totals = onboarding["step"]["totals"]
    assert totals["totalLiquidAssets"] == 300
    assert totals["totalLiabilities"] == 50
    assert totals["totalAssetsLessPrimaryResidence"] == 800
    assert totals["totalNetWorth"] == 1250


def test_sfc_rejects_negative_amounts(client, all_forms_client):
    res = client.post(
        _url(all_forms_client["id"], SFC, 1),
        json={"questionId": "step1.liabilities", "answer": {"creditCards": "-5"}},
    )
    assert res.status_code == 400
    assert res.json()["fieldErrors"] == {"step1.liabilities.creditCards": "Enter a valid non-negative amount."}


def test_completing_sfc_routes_to_next_selected_form(client, all_forms_client):
    cid = all_forms_client["id"]
    _register_rep(client, cid)
    _enter_balance_sheet(client, cid)
    _answer(
        client,
        cid,
        SFC,
        2,
        "step2.acknowledgements",
        {
            "attestDataAccurateComplete": True,
            "agreeReportMaterialChanges": True,
            "understandMayNeedRecertification": True,
            "understandMayNeedSupportingDocumentation": True,
            "understandInfoUsedForBestInterestRecommendations": True,
        },
    )
    _answer(client, cid, SFC, 2, "step2.signatures.accountOwners", {"accountOwner": SIGNED})
    done = _answer(client, cid, SFC, 2, "step2.signatures.firm", {"financialProfessional": ADVISOR_SIGNED})
    assert done["status"] == "COMPLETED"
    assert done["step"]["nextRouteAfterCompletion"] == f"/clients/{cid}/{BAIODF}/step-1"

    workspace = client.get(f"/api/clients/{cid}/forms/workspace").json()["workspace"]
    statuses = {f["code"]: f["onboardingStatus"] for f in workspace["forms"]}
    assert statuses["SFC"] == "COMPLETED"
    assert statuses["BAIODF"] == "NOT_STARTED"


def test_baiodf_net_worth_comes_from_financial_statement(client, all_forms_client):
    cid = all_forms_client["id"]
    _enter_balance_sheet(client, cid)
    _answer(
        client,
        cid,
        BAIODF,
        1,
        "step1.orderBasics",
        {
            "proposedPrincipalAmount": 125,
            "qualifiedAccount": {"yes": False, "no": True},
            "solicitedTrade": {"yes": False, "no": True},
            "taxAdvantagePurchase": {"yes": False, "no": True},
        },
    )
    step = client.get(_url(cid, BAIODF, 2)).json()["onboarding"]["step"]
    assert step["fields"]["netWorthAndConcentration"] == {"totalNetWorth": 1250, "liquidNetWorth": 300}
    assert step["concentrations"]["totalConcentrationPercent"] == 10.0


def test_baiodf_order_basics_errors(client, all_forms_client):
    res = client.post(
        _url(all_forms_client["id"], BAIODF, 1),
        json={
            "questionId": "step1.orderBasics",
            "answer": {
                "proposedPrincipalAmount": 1000,
                "qualifiedAccount": {"yes": True, "no": False},
                "qualifiedAccountRmdCertification": False,
                "solicitedTrade": {"yes": True, "no": False},
                "taxAdvantagePurchase": {"yes": False, "no": True},
            },
        },
    )
    assert res.status_code == 400
    assert res.json()["fieldErrors"] == {
        "step1.orderBasics.qualifiedAccountRmdCertification": "Certification is required when Qualified Account is Yes."
    }


def _complete_baiv(client, cid: str) -> dict:
    _register_rep(client, cid)
    _answer(
        client,
        cid,
        BAIV,
        2,
        "step2.acknowledgements",
        {
            "rule506cGuidelineAcknowledged": True,
            "secRuleReviewedAndUnderstood": True,
            "incomeOrNetWorthVerified": True,
            "documentationReviewed": True,
        },
    )
    _answer(client, cid, BAIV, 2, "step2.signatures.accountOwners", {"accountOwner": SIGNED})
    return _answer(
        client, cid, BAIV, 2, "step2.signatures.financialProfessional", {"financialProfessional": ADVISOR_SIGNED}
    )


def test_baiv_completes_and_can_regress(client, new_client):
    cid = new_client(forms=["INVESTOR_PROFILE", "BAIV_506C"])["id"]
    done = _complete_baiv(client, cid)
    assert done["status"] == "COMPLETED"
    assert done["step"]["nextRouteAfterCompletion"] is None
    assert done["step"]["requiresJointOwnerSignature"] is False

    # A joint account now needs the joint owner's signature on every form
    _answer(client, cid, "investor-profile", 1, "typeOfAccount.primaryType", {"jointTenant": True})
    rejected = client.post(
        _url(cid, BAIV, 2),
        json={"questionId": "step2.signatures.accountOwners", "answer": {"accountOwner": SIGNED}},
    )
    assert rejected.status_code == 400
    assert "step2.signatures.accountOwners.jointAccountOwner.typedSignature" in rejected.json()["fieldErrors"]

    regressed = _answer(
        client,
        cid,
        BAIV,
        2,
        "step2.acknowledgements",
        {
            "rule506cGuidelineAcknowledged": True,
            "secRuleReviewedAndUnderstood": True,
            "incomeOrNetWorthVerified": True,
            "documentationReviewed": True,
        },
    )
    assert regressed["status"] == "IN_PROGRESS"


def test_review_step_replaces_step_and_mirrors_legacy_columns(client, investor_client):
    cid = investor_client["id"]
    url = _url(cid, "investor-profile", 1, review=True)

    incomplete = client.post(url, json={"fields": {"accountRegistration": {"rrName": "A"}}})
    assert incomplete.status_code == 400
    assert "accountNo" in incomplete.json()["fieldErrors"]

    fields = {
        "accountRegistration": {
            "rrName": "Review Rep",
            "rrNo": "77",
            "customerNames": "Casey Client",
            "accountNo": "ACC-1",
            "retailRetirement": {"retail": True, "retirement": False},
        },
        "typeOfAccount": {"primaryType": {"individual": True}},
    }
    res = client.post(url, json={"fields": fields})
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["review"] == {"stepNumber": 1, "totalSteps": 7}
    assert body["onboarding"]["step"]["fields"]["accountRegistration"]["rrName"] == "Review Rep"

    with get_engine().connect() as conn:
        row = conn.execute(
            sql_text(
                "SELECT step1_rr_name, step1_account_no, step1_account_type FROM onboardings "
                "WHERE client_id = :cid AND form_code = 'INVESTOR_PROFILE'"
            ),
            {"cid": cid},
        ).mappings().first()
    assert row["step1_rr_name"] == "Review Rep"
    assert row["step1_account_no"] == "ACC-1"
    assert '"retail": true' in row["step1_account_type"]


def test_review_step_bounds(client, investor_client):
    cid = investor_client["id"]
    for number in (0, 8):
        res = client.get(_url(cid, "investor-profile", number, review=True))
        assert res.status_code == 400
        assert res.json() == {"message": "Invalid review step request."}
    optional = client.post(_url(cid, "investor-profile", 4, review=True), json={"fields": {}})
    assert optional.status_code == 200


def test_stale_snapshot_write_conflicts(client, investor_client, signed_in):
    cid = investor_client["id"]
    stale = load_snapshot(signed_in, cid)
    _answer(client, cid, "investor-profile", 1, "rrName", "First Writer")

    with pytest.raises(ApiError) as excinfo:
        submit_step_answer(INVESTOR_PROFILE, 1, stale, "rrNo", "R-1")
    assert excinfo.value.status_code == 409
    assert excinfo.value.message == CONFLICT_MESSAGE

    registration = client.get(_url(cid, "investor-profile", 1)).json()["onboarding"]["step"]["fields"][
        "accountRegistration"
    ]
    assert registration["rrName"] == "First Writer"
    assert registration["rrNo"] == ""


def test_save_step_checks_version(investor_client):
    with pytest.raises(StaleOnboardingError):
        save_step(
            investor_client["id"],
            "INVESTOR_PROFILE",
            1,
            {},
            status=OnboardingStatus.IN_PROGRESS,
            expected_version=99,
        )
