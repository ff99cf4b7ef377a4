from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import AppConfig, load_config
from app.db.base import get_engine
from app.db.migrations_runner import apply_migrations
from app.http.problem import (
    ApiError,
    handle_api_error,
    handle_http_exception,
    handle_request_validation_error,
    handle_unexpected_error,
)
from app.http.request_id import RequestIdMiddleware
from app.logging_setup import configure_logging
from app.middleware.cors import apply_cors
from app.routes import api_router

logger = logging.getLogger(__name__)


def _apply_migrations(config: AppConfig) -> None:
    if not config.auto_apply_migrations:
        logger.info("AUTO_APPLY_MIGRATIONS disabled; skipping migrations at startup")
        return
    try:
        applied = apply_migrations(get_engine())
    except Exception:
        logger.error("Failed to apply migrations at startup", exc_info=True)
        raise
    logger.info("startup_migrations applied=%s", applied)


def create_app(config: AppConfig | None = None) -> FastAPI:
    """Build the API application.

    ``config`` defaults to the environment; tests pass one explicitly.
    """
    configure_logging()
    config = config or load_config()

    @asynccontextmanager
    async def _lifespan(_app: FastAPI):
        _apply_migrations(config)
        yield

    app = FastAPI(title="Onboarding Wizard API", version="1.0.0", lifespan=_lifespan)
    app.state.config = config

    app.add_exception_handler(ApiError, handle_api_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(HTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    apply_cors(app, origins=[config.frontend_url])
    app.add_middleware(RequestIdMiddleware)

    app.include_router(api_router, prefix="/api")
    logger.info("app_created env=%s frontend=%s", config.app_env, config.frontend_url)
    return app


# Intentionally do not instantiate the app at import time to prevent side effects.
