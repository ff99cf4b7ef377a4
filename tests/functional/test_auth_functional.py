"""Functional tests for broker accounts and sessions."""

from __future__ import annotations

from datetime import timedelta
import uuid

from fastapi.testclient import TestClient

import app.main as main_module
from app.auth.passwords import hash_password, verify_password
from app.auth.sessions import SESSION_COOKIE_NAME, create_session_token, verify_session_token
from app.config import AppConfig, parse_duration

PASSWORD = "another-strong-passphrase"


def unique_email() -> str:
    return f"auth-{uuid.uuid4().hex[:12]}@example.com"


def test_health_is_public(client):
    res = client.get("/api/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}
    assert res.headers.get("X-Request-Id")


def test_startup_applies_migrations_only_when_enabled(config, monkeypatch):
    calls = []
    monkeypatch.setattr(main_module, "apply_migrations", lambda engine: calls.append(engine) or [])

    with TestClient(main_module.create_app(config)) as disabled:
        assert disabled.get("/api/health").status_code == 200
    assert calls == []

    enabled = config.model_copy(update={"auto_apply_migrations": True})
    with TestClient(main_module.create_app(enabled)) as started:
        assert started.get("/api/health").status_code == 200
    assert len(calls) == 1


def test_request_id_is_echoed(client):
    res = client.get("/api/health", headers={"X-Request-Id": "req-123"})
    assert res.headers["X-Request-Id"] == "req-123"


def test_unknown_route_returns_not_found_message(client):
    res = client.get("/api/does-not-exist")
    assert res.status_code == 404
    assert res.json() == {"message": "Endpoint not found."}


def test_signup_sets_session_cookie_and_me_returns_user(client):
    email = unique_email()
    res = client.post("/api/auth/signup", json={"name": " Dana Broker ", "email": email.upper(), "password": PASSWORD})
    assert res.status_code == 201
    user = res.json()["user"]
    assert user["name"] == "Dana Broker"
    assert user["email"] == email
    set_cookie = res.headers["set-cookie"]
    assert SESSION_COOKIE_NAME in set_cookie
    assert "httponly" in set_cookie.lower()

    me = client.get("/api/auth/me")
    assert me.status_code == 200
    assert me.json()["user"] == user


def test_signup_rejects_duplicate_email(client):
    email = unique_email()
    assert client.post("/api/auth/signup", json={"name": "A", "email": email, "password": PASSWORD}).status_code == 201
    res = client.post("/api/auth/signup", json={"name": "B", "email": email, "password": PASSWORD})
    assert res.status_code == 409
    assert res.json() == {
        "message": "An account with this email already exists.",
        "fieldErrors": {"email": "Email is already in use."},
    }


def test_signup_validation_errors_are_keyed_by_field(client):
    res = client.post("/api/auth/signup", json={"name": "", "email": "not-an-email", "password": "short"})
    assert res.status_code == 400
    body = res.json()
    assert body["message"] == "Please correct the highlighted fields."
    assert body["fieldErrors"] == {
        "name": "Name is required.",
        "email": "Enter a valid email.",
        "password": "Password must be at least 8 characters.",
    }


def test_signin_and_signout(client):
    email = unique_email()
    client.post("/api/auth/signup", json={"name": "Sam", "email": email, "password": PASSWORD})
    client.post("/api/auth/signout")
    assert client.get("/api/auth/me").status_code == 401

    bad = client.post("/api/auth/signin", json={"email": email, "password": "wrong-password"})
    assert bad.status_code == 401
    assert bad.json()["fieldErrors"] == {"email": "Invalid email or password."}

    ok = client.post("/api/auth/signin", json={"email": email, "password": PASSWORD})
    assert ok.status_code == 200
    assert ok.json()["user"]["email"] == email
    assert client.get("/api/auth/me").status_code == 200

    out = client.post("/api/auth/signout")
    assert out.json() == {"message": "Signed out successfully."}


def test_guard_messages(client, config):
    assert client.get("/api/auth/me").json() == {"message": "Authentication required."}

    client.cookies.set(SESSION_COOKIE_NAME, "garbage")
    assert client.get("/api/auth/me").json() == {"message": "Session expired. Please sign in again."}

    client.cookies.set(SESSION_COOKIE_NAME, create_session_token("no-such-user", config))
    res = client.get("/api/auth/me")
    assert res.status_code == 401
    assert res.json() == {"message": "User not found for this session."}


def test_session_token_round_trip_and_expiry(config):
    token = create_session_token("user-1", config)
    assert verify_session_token(token, config) == "user-1"
    other = AppConfig(app_env="test", jwt_secret="x" * 40)
    assert verify_session_token(token, other) is None
    expired = config.model_copy(update={"jwt_expires_in": "0s"})
    assert verify_session_token(create_session_token("user-1", expired), expired) is None


def test_password_hashing():
    hashed = hash_password(PASSWORD)
    assert verify_password(PASSWORD, hashed)
    assert not verify_password("something-else", hashed)
    assert not verify_password(PASSWORD, "not-a-bcrypt-hash")


def test_config_rules():
    assert parse_duration("7d") == timedelta(days=7)
    assert parse_duration("90") == timedelta(seconds=90)
    cfg = AppConfig(jwt_secret="s" * 32, frontend_url="https://app.example.com/")
    assert cfg.frontend_url == "https://app.example.com"
    assert cfg.session_lifetime == timedelta(days=7)
