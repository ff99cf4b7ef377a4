"""Step definitions for onboarding wizard integration scenarios.

Paths and JSON bodies may reference captured values as ``{name}``; the
signed-in broker's client id is captured as ``{client_id}``.
"""

from __future__ import annotations

import json
import re
import uuid
from typing import Any, Dict, List

from behave import given, then, when


PASSWORD = "integration-passphrase"


def _interpolate(context, value: str) -> str:
    vars_map: Dict[str, Any] = getattr(context, "vars", {}) or {}

    def repl(m: re.Match[str]) -> str:
        return str(vars_map.get(m.group(1), m.group(0)))

    return re.sub(r"\{([A-Za-z0-9_]+)\}", repl, value)


def _json_text(context) -> Any:
    raw = _interpolate(context, context.text or "")
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise AssertionError(f"Step body is not valid JSON: {exc}\n{raw}")


def _body(context) -> Any:
    assert context.response is not None, "No request has been sent in this scenario"
    try:
        return context.response.json()
    except ValueError:
        raise AssertionError(f"Response is not JSON: {context.response.text[:512]}")


def _jsonpath(data: Any, path: str) -> Any:
    """Resolve ``$.a.b[0].c`` against ``data``; keys may not contain dots."""
    assert path.startswith("$"), f"Unsupported path: {path}"
    cur = data
    tokens: List[str] = [t for t in path[1:].split(".") if t]
    for tok in tokens:
        name, _, index = tok.partition("[")
        if name:
            if not isinstance(cur, dict) or name not in cur:
                raise AssertionError(f"path not found: {path} (at {name!r})")
            cur = cur[name]
        if index:
            if not isinstance(cur, list):
                raise AssertionError(f"path not found: {path} ({name!r} is not a list)")
            idx = int(index.rstrip("]"))
            if idx >= len(cur):
                raise AssertionError(f"path not found: {path} (index {idx})")
            cur = cur[idx]
    return cur


def _send(context, method: str, path: str, payload: Any = None) -> None:
    url = _interpolate(context, path)
    if payload is None:
        context.response = context.http.request(method, url)
    else:
        context.response = context.http.request(method, url, json=payload)


# ------------------
# Setup
# ------------------


@given('a signed-in broker "{name}"')
def step_signed_in_broker(context, name: str) -> None:
    email = f"broker-{uuid.uuid4().hex[:12]}@example.com"
    _send(context, "POST", "/api/auth/signup", {"name": name, "email": email, "password": PASSWORD})
    assert context.response.status_code == 201, context.response.text
    context.vars["broker_email"] = email
    context.vars["broker_name"] = name


@given('a client "{name}" with forms "{codes}"')
def step_client_with_forms(context, name: str, codes: str) -> None:
    payload = {
        "clientName": name,
        "clientEmail": f"client-{uuid.uuid4().hex[:12]}@example.com",
        "selectedFormCodes": [c.strip() for c in codes.split(",") if c.strip()],
    }
    _send(context, "POST", "/api/clients", payload)
    assert context.response.status_code == 201, context.response.text
    context.vars["client_id"] = _body(context)["client"]["id"]


@given('I answered "{question_id}" on "{slug}" step {number:d} with')
def step_given_answered(context, question_id: str, slug: str, number: int) -> None:
    step_answer(context, question_id, slug, number)
    assert context.response.status_code == 200, context.response.text


# ------------------
# Requests
# ------------------


@when('I GET "{path}"')
def step_get(context, path: str) -> None:
    _send(context, "GET", path)


@when('I POST "{path}" with')
def step_post_json(context, path: str) -> None:
    _send(context, "POST", path, _json_text(context))


@when('I answer "{question_id}" on "{slug}" step {number:d} with')
def step_answer(context, question_id: str, slug: str, number: int) -> None:
    _send(
        context,
        "POST",
        f"/api/clients/{{client_id}}/{slug}/step-{number}",
        {"questionId": question_id, "answer": _json_text(context)},
    )


# ------------------
# Assertions
# ------------------


@then("the response status is {code:d}")
def step_status(context, code: int) -> None:
    assert context.response.status_code == code, (
        f"expected {code}, got {context.response.status_code}: {context.response.text[:512]}"
    )


@then("the response has an X-Request-Id header")
def step_request_id(context) -> None:
    assert context.response.headers.get("X-Request-Id"), "X-Request-Id header missing"


@then('the response JSON at "{json_path}" equals "{expected}"')
def step_json_equals_string(context, json_path: str, expected: str) -> None:
    actual = _jsonpath(_body(context), json_path)
    assert actual == _interpolate(context, expected), f"{json_path}: expected {expected!r}, got {actual!r}"


@then('the response JSON at "{json_path}" equals {expected}')
def step_json_equals_literal(context, json_path: str, expected: str) -> None:
    actual = _jsonpath(_body(context), json_path)
    wanted = json.loads(expected)
    assert actual == wanted, f"{json_path}: expected {wanted!r}, got {actual!r}"


@then('the response JSON at "{json_path}" contains "{item}"')
def step_json_contains(context, json_path: str, item: str) -> None:
    actual = _jsonpath(_body(context), json_path)
    assert isinstance(actual, list), f"{json_path} is not a list: {actual!r}"
    assert item in actual, f"{item!r} not in {actual!r}"


@then('the field error for "{field}" is "{message}"')
def step_field_error(context, field: str, message: str) -> None:
    errors = _body(context).get("fieldErrors") or {}
    assert errors.get(field) == message, f"fieldErrors[{field!r}] = {errors.get(field)!r}; all: {errors}"
