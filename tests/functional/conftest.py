"""Functional test bootstrap.

Tests drive the FastAPI app in-process through TestClient against an
in-memory SQLite database shared across the process. Migrations are applied
once at session start so the schema exists before any client is created.
"""

from __future__ import annotations

import os
import uuid

import pytest

# Point the engine at in-memory SQLite before anything imports app.db
os.environ["TEST_DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_URL"] = os.environ["TEST_DATABASE_URL"]
# Startup migrations are applied explicitly below
os.environ["AUTO_APPLY_MIGRATIONS"] = "0"
# Fast hashes for tests
os.environ["BCRYPT_ROUNDS"] = "4"

TEST_JWT_SECRET = "functional-tests-secret-0123456789abcdef"
PASSWORD = "correct-horse-battery"
ALL_FORMS = ["INVESTOR_PROFILE", "SFC", "BAIODF", "BAIV_506C"]


@pytest.fixture(scope="session", autouse=True)
def functional_sqlite_bootstrap():
    """Session-level bootstrap: apply migrations once for the shared DB."""
    from app.db.base import get_engine
    from app.db.migrations_runner import apply_migrations

    apply_migrations(get_engine(os.environ["TEST_DATABASE_URL"]))
    yield


@pytest.fixture()
def config():
    from app.config import AppConfig

    return AppConfig(app_env="test", jwt_secret=TEST_JWT_SECRET, auto_apply_migrations=False)


@pytest.fixture()
def client(config):
    from fastapi.testclient import TestClient
    from app.main import create_app

    with TestClient(create_app(config)) as test_client:
        yield test_client


def unique_email(prefix: str = "broker") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}@example.com"


@pytest.fixture()
def signed_in(client):
    """A freshly registered broker whose session cookie is on ``client``."""
    res = client.post(
        "/api/auth/signup",
        json={"name": "Avery Advisor", "email": unique_email(), "password": PASSWORD},
    )
    assert res.status_code == 201, res.text
    return res.json()["user"]


@pytest.fixture()
def new_client(client, signed_in):
    """Factory creating a client for the signed-in broker."""

    def _create(forms=None, name: str = "Casey Client") -> dict:
        body = {"clientName": name, "clientEmail": unique_email("client")}
        if forms is not None:
            body["selectedFormCodes"] = forms
        res = client.post("/api/clients", json=body)
        assert res.status_code == 201, res.text
        return res.json()["client"]

    return _create


@pytest.fixture()
def investor_client(new_client):
    return new_client()


@pytest.fixture()
def all_forms_client(new_client):
    return new_client(forms=ALL_FORMS)
