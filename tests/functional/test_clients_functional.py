"""Functional tests for clients, the form catalogue and the forms workspace."""

from __future__ import annotations

import uuid


def _email() -> str:
    return f"client-{uuid.uuid4().hex[:12]}@example.com"


def test_clients_require_a_session(client):
    res = client.get("/api/clients")
    assert res.status_code == 401
    assert res.json() == {"message": "Authentication required."}


def test_form_catalogue_lists_active_forms(client, signed_in):
    res = client.get("/api/forms")
    assert res.status_code == 200
    codes = {form["code"] for form in res.json()["forms"]}
    assert {"INVESTOR_PROFILE", "SFC", "BAIODF", "BAIV_506C", "INVESTOR_PROFILE_ADDITIONAL_HOLDER"} <= codes


def test_create_client_defaults_to_investor_profile(client, signed_in):
    res = client.post(
        "/api/clients",
        json={
            "clientName": "  Riley Client ",
            "clientEmail": _email().upper(),
            "clientPhone": "+1 (555) 010-2000",
            "additionalBrokers": [
                {"name": "Second Broker", "email": "second@example.com"},
                {"name": "Myself Again", "email": signed_in["email"]},
            ],
        },
    )
    assert res.status_code == 201, res.text
    dto = res.json()["client"]
    assert dto["name"] == "Riley Client"
    assert dto["email"] == dto["email"].lower()
    assert dto["primaryBroker"]["email"] == signed_in["email"]
    assert [b["email"] for b in dto["additionalBrokers"]] == ["second@example.com"]
    assert [f["code"] for f in dto["selectedForms"]] == ["INVESTOR_PROFILE"]
    assert dto["hasInvestorProfile"] is True
    assert dto["investorProfileOnboardingStatus"] == "NOT_STARTED"
    assert dto["investorProfileResumeStepRoute"] == f"/clients/{dto['id']}/investor-profile/step-1"
    assert dto["hasStatementOfFinancialCondition"] is False
    assert dto["statementOfFinancialConditionResumeStepRoute"] is None


def test_create_client_validation(client, signed_in):
    res = client.post("/api/clients", json={"clientName": "", "clientEmail": "nope", "clientPhone": "abc"})
    assert res.status_code == 400
    assert res.json()["fieldErrors"] == {
        "clientName": "Client name is required.",
        "clientEmail": "Enter a valid client email.",
        "clientPhone": "Enter a valid phone number.",
    }


def test_create_client_requires_investor_profile(client, signed_in):
    res = client.post("/api/clients", json={"clientName": "X", "clientEmail": _email(), "selectedFormCodes": ["SFC"]})
    assert res.status_code == 400
    assert res.json()["fieldErrors"] == {"selectedFormCodes": "Investor Profile is required."}


def test_create_client_rejects_unsupported_codes(client, signed_in):
    res = client.post(
        "/api/clients",
        json={"clientName": "X", "clientEmail": _email(), "selectedFormCodes": ["investor_profile", "W9"]},
    )
    assert res.status_code == 400
    assert res.json()["message"] == "Unsupported form selection."
    assert "W9" in res.json()["fieldErrors"]["selectedFormCodes"]


def test_duplicate_client_email_conflicts(client, signed_in):
    email = _email()
    assert client.post("/api/clients", json={"clientName": "A", "clientEmail": email}).status_code == 201
    res = client.post("/api/clients", json={"clientName": "B", "clientEmail": email})
    assert res.status_code == 409
    assert res.json()["fieldErrors"] == {"clientEmail": "Client email already exists."}


def test_clients_are_listed_newest_first_and_scoped_to_owner(client, new_client):
    first = new_client(name="First")
    second = new_client(name="Second")
    listed = [c["id"] for c in client.get("/api/clients").json()["clients"]]
    assert listed.index(second["id"]) < listed.index(first["id"])

    client.post("/api/auth/signup", json={"name": "Other", "email": _email(), "password": "other-password-1"})
    assert client.get("/api/clients").json()["clients"] == []
    res = client.get(f"/api/clients/{first['id']}/forms/workspace")
    assert res.status_code == 404
    assert res.json() == {"message": "Client not found."}


def test_workspace_lists_catalogue_in_onboarding_order(client, investor_client):
    res = client.get(f"/api/clients/{investor_client['id']}/forms/workspace")
    assert res.status_code == 200
    workspace = res.json()["workspace"]
    assert workspace["clientId"] == investor_client["id"]
    assert workspace["clientName"] == investor_client["name"]
    codes = [form["code"] for form in workspace["forms"]]
    assert codes[:4] == ["INVESTOR_PROFILE", "SFC", "BAIODF", "BAIV_506C"]

    by_code = {form["code"]: form for form in workspace["forms"]}
    profile = by_code["INVESTOR_PROFILE"]
    assert profile["selected"] is True
    assert profile["onboardingStatus"] == "NOT_STARTED"
    assert profile["totalSteps"] == 7
    assert profile["viewRoute"] == f"/clients/{investor_client['id']}/forms/INVESTOR_PROFILE/view/step/1"
    assert by_code["SFC"]["selected"] is False
    assert by_code["SFC"]["onboardingStatus"] is None
    assert by_code["SFC"]["totalSteps"] == 2
    assert by_code["INVESTOR_PROFILE_ADDITIONAL_HOLDER"]["totalSteps"] is None


def test_select_forms_adds_in_sequence_and_is_idempotent(client, investor_client):
    url = f"/api/clients/{investor_client['id']}/forms/select"
    res = client.post(url, json={"formCodes": ["baiv_506c", " SFC ", "INVESTOR_PROFILE"]})
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["addedFormCodes"] == ["SFC", "BAIV_506C"]
    assert body["nextOnboardingRoute"] == f"/clients/{investor_client['id']}/investor-profile/step-1"
    selected = {f["code"] for f in body["workspace"]["forms"] if f["selected"]}
    assert selected == {"INVESTOR_PROFILE", "SFC", "BAIV_506C"}

    again = client.post(url, json={"formCodes": ["SFC"]})
    assert again.json()["addedFormCodes"] == []


def test_select_forms_validation(client, investor_client):
    url = f"/api/clients/{investor_client['id']}/forms/select"
    empty = client.post(url, json={"formCodes": []})
    assert empty.status_code == 400
    assert empty.json()["fieldErrors"] == {"formCodes": "Select at least one form."}

    unsupported = client.post(url, json={"formCodes": ["INVESTOR_PROFILE_ADDITIONAL_HOLDER"]})
    assert unsupported.status_code == 400
    assert unsupported.json()["message"] == "Unsupported form selection."

    missing = client.post("/api/clients/no-such-client/forms/select", json={"formCodes": ["SFC"]})
    assert missing.status_code == 404
