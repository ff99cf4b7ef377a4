"""Behave environment hooks for onboarding wizard integration tests.

Scenarios run against a live API when ``TEST_BASE_URL`` is set (the service
must already be listening and have its migrations applied). Without it, the
app is built in-process on an in-memory SQLite database and driven through
FastAPI's TestClient, so the suite needs no external services.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx


logger = logging.getLogger(__name__)

DEFAULT_JWT_SECRET = "integration-tests-secret-0123456789abcdef"


def _load_env_fallback() -> None:
    """Load KEY=VALUE lines from a local .env.test without overriding the environment."""
    for path in (".env.test", os.path.join("tests", "integration", ".env.test")):
        if not os.path.isfile(path):
            continue
        with open(path, "r", encoding="utf-8") as fh:
            for raw in fh:
                line = raw.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, value = line.split("=", 1)
                key = key.strip()
                if key and key not in os.environ:
                    os.environ[key] = value.strip().strip('"').strip("'")


def _live_client(base_url: str) -> httpx.Client:
    client = httpx.Client(base_url=base_url, timeout=10.0)
    try:
        client.get("/api/health")
    except httpx.HTTPError as exc:
        client.close()
        raise AssertionError(f"API not reachable at TEST_BASE_URL={base_url}: {exc}")
    return client


def _in_process_client() -> Any:
    os.environ.setdefault("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")
    os.environ.setdefault("BCRYPT_ROUNDS", "4")

    from fastapi.testclient import TestClient

    from app.config import AppConfig
    from app.main import create_app

    config = AppConfig(
        app_env="test",
        jwt_secret=os.getenv("JWT_SECRET") or DEFAULT_JWT_SECRET,
        auto_apply_migrations=True,
    )
    client = TestClient(create_app(config))
    # Entering the client runs startup handlers, which apply migrations
    client.__enter__()
    return client


def before_all(context: Any) -> None:  # pragma: no cover - executed by Behave
    _load_env_fallback()
    base_url = os.getenv("TEST_BASE_URL", "").strip().rstrip("/")
    if base_url:
        context.http = _live_client(base_url)
        context.live_mode = True
    else:
        context.http = _in_process_client()
        context.live_mode = False
    logger.info("integration_env live=%s", context.live_mode)


def before_scenario(context: Any, scenario: Any) -> None:  # pragma: no cover - executed by Behave
    context.http.cookies.clear()
    context.vars = {}
    context.response = None


def after_all(context: Any) -> None:  # pragma: no cover - executed by Behave
    http = getattr(context, "http", None)
    if http is None:
        return
    if context.live_mode:
        http.close()
    else:
        http.__exit__(None, None, None)
