"""Functional tests for the Investor Profile step endpoints."""

from __future__ import annotations

from app.logic.events import ONBOARDING_STATUS_CHANGED, get_buffered_events


def _step_url(client_id: str, number: int) -> str:
    return f"/api/clients/{client_id}/investor-profile/step-{number}"


def _answer(client, client_id: str, number: int, question_id: str, answer):
    return client.post(_step_url(client_id, number), json={"questionId": question_id, "answer": answer})


def test_step1_starts_empty_at_first_question(client, investor_client):
    res = client.get(_step_url(investor_client["id"], 1))
    assert res.status_code == 200
    onboarding = res.json()["onboarding"]
    assert onboarding["clientId"] == investor_client["id"]
    assert onboarding["status"] == "NOT_STARTED"
    step = onboarding["step"]
    assert step["key"] == "STEP_1_ACCOUNT_REGISTRATION"
    assert step["currentQuestionId"] == "rrName"
    assert step["currentQuestionIndex"] == 0
    assert step["visibleQuestionIds"][:6] == [
        "rrName",
        "rrNo",
        "customerNames",
        "accountNo",
        "accountRegistration.retailRetirement",
        "typeOfAccount.primaryType",
    ]
    assert step["fields"]["accountRegistration"]["rrName"] == ""


def test_answer_advances_cursor_and_starts_onboarding(client, investor_client):
    get_buffered_events(clear=True)
    res = _answer(client, investor_client["id"], 1, "rrName", "  Jordan Rep ")
    assert res.status_code == 200, res.text
    onboarding = res.json()["onboarding"]
    assert onboarding["status"] == "IN_PROGRESS"
    assert onboarding["step"]["currentQuestionId"] == "rrNo"
    assert onboarding["step"]["fields"]["accountRegistration"]["rrName"] == "Jordan Rep"

    reread = client.get(_step_url(investor_client["id"], 1)).json()["onboarding"]
    assert reread["step"]["currentQuestionIndex"] == 1
    assert reread["step"]["fields"]["accountRegistration"]["rrName"] == "Jordan Rep"

    changes = [e for e in get_buffered_events() if e["type"] == ONBOARDING_STATUS_CHANGED]
    assert changes and changes[-1]["payload"]["to"] == "IN_PROGRESS"

    listed = client.get("/api/clients").json()["clients"]
    dto = next(c for c in listed if c["id"] == investor_client["id"])
    assert dto["investorProfileOnboardingStatus"] == "IN_PROGRESS"


def test_invalid_answer_returns_field_errors(client, investor_client):
    res = _answer(client, investor_client["id"], 1, "rrNo", "   ")
    assert res.status_code == 400
    assert res.json() == {"message": "Please correct the highlighted fields.", "fieldErrors": {"rrNo": "RR No. is required."}}


def test_unknown_question_is_rejected(client, investor_client):
    res = _answer(client, investor_client["id"], 1, "step9.nothing", "x")
    assert res.status_code == 400
    assert res.json()["fieldErrors"] == {"questionId": "Unsupported onboarding question."}


def test_branch_question_requires_matching_account_type(client, investor_client):
    cid = investor_client["id"]
    hidden = _answer(client, cid, 1, "typeOfAccount.trust.trustType", {"living": True})
    assert hidden.status_code == 400
    assert hidden.json()["fieldErrors"] == {
        "questionId": "This question is not active for the selected account path."
    }

    assert _answer(client, cid, 1, "typeOfAccount.primaryType", {"trust": True}).status_code == 200
    res = _answer(client, cid, 1, "typeOfAccount.trust.trustType", {"living": True})
    assert res.status_code == 200
    assert res.json()["onboarding"]["step"]["fields"]["typeOfAccount"]["trust"]["trustType"]["living"] is True

    switched = _answer(client, cid, 1, "typeOfAccount.primaryType", {"individual": True}).json()["onboarding"]
    assert switched["step"]["fields"]["typeOfAccount"]["trust"]["trustType"]["living"] is False
    assert "typeOfAccount.trust.trustType" not in switched["step"]["visibleQuestionIds"]


def test_step4_only_for_multi_party_accounts(client, investor_client):
    cid = investor_client["id"]
    for method in ("get", "post"):
        kwargs = {"json": {"questionId": "step4.holder.kind", "answer": {"person": True}}} if method == "post" else {}
        res = getattr(client, method)(_step_url(cid, 4), **kwargs)
        assert res.status_code == 400
        assert res.json() == {"message": "Step 4 is not required for the selected account type."}

    _answer(client, cid, 1, "typeOfAccount.primaryType", {"jointTenant": True})
    res = client.get(_step_url(cid, 4))
    assert res.status_code == 200
    assert res.json()["onboarding"]["step"]["key"] == "STEP_4_SECONDARY_ACCOUNT_HOLDER"

    step7 = client.get(_step_url(cid, 7)).json()["onboarding"]["step"]
    assert step7["requiresJointOwnerSignature"] is True


def test_holder_kind_defaults_from_account_type(client, investor_client):
    cid = investor_client["id"]
    _answer(client, cid, 1, "typeOfAccount.primaryType", {"corporation": True})
    step = client.get(_step_url(cid, 3)).json()["onboarding"]["step"]
    assert step["fields"]["holder"]["kind"] == {"person": False, "entity": True}
    assert "step3.holder.taxId.ssn" not in step["visibleQuestionIds"]


def test_trusted_contact_decline_needs_one_choice(client, investor_client):
    res = _answer(client, investor_client["id"], 6, "step6.trustedContact.decline", {"yes": False, "no": False})
    assert res.status_code == 400
    assert res.json()["fieldErrors"] == {"step6.trustedContact.decline": "Select exactly one option."}


def test_signature_prefill_uses_advisor_name(client, investor_client, signed_in):
    step = client.get(_step_url(investor_client["id"], 7)).json()["onboarding"]["step"]
    assert step["fields"]["signatures"]["financialProfessional"]["printedName"] == signed_in["name"]
    assert step["requiresJointOwnerSignature"] is False
    assert step["nextRouteAfterCompletion"] is None


def test_future_signature_date_is_rejected(client, investor_client):
    res = _answer(
        client,
        investor_client["id"],
        7,
        "step7.signatures.accountOwners",
        {"accountOwner": {"typedSignature": "Casey", "printedName": "Casey Client", "date": "2099-01-01"}},
    )
    assert res.status_code == 400
    assert res.json()["fieldErrors"] == {
        "step7.signatures.accountOwners.accountOwner.date": "Signature date cannot be in the future."
    }


def test_routing_errors(client, investor_client):
    cid = investor_client["id"]
    assert client.get(_step_url(cid, 8)).json() == {"message": "Endpoint not found."}
    assert client.get(f"/api/clients/{cid}/not-a-form/step-1").status_code == 404
    missing = client.get(_step_url("no-such-client", 1))
    assert missing.status_code == 404
    assert missing.json() == {"message": "Client not found."}
    body = client.post(_step_url(cid, 1), json={"answer": "x"})
    assert body.status_code == 400
    assert body.json()["fieldErrors"] == {"questionId": "Question id is required."}


def test_unselected_form_is_rejected(client, investor_client):
    res = client.get(f"/api/clients/{investor_client['id']}/statement-of-financial-condition/step-1")
    assert res.status_code == 400
    assert res.json() == {"message": "Statement of Financial Condition is not selected for this client."}


def test_non_ascii_step_numbers_are_not_routes(client, investor_client):
    cid = investor_client["id"]
    step = client.get(f"/api/clients/{cid}/investor-profile/step-²")
    assert step.status_code == 404
    assert step.json() == {"message": "Endpoint not found."}
    posted = client.post(f"/api/clients/{cid}/investor-profile/step-١", json={"questionId": "rrName", "answer": "x"})
    assert posted.status_code == 404
    review = client.get(f"/api/clients/{cid}/investor-profile/review/step-²")
    assert review.status_code == 400
    assert review.json() == {"message": "Invalid review step request."}
