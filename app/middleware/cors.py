"""CORS configuration helpers.

The frontend runs on its own origin and sends the session cookie, so only
that origin is allowed and credentials are enabled.
"""

from __future__ import annotations

from typing import Iterable
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware


EXPOSE_HEADERS: list[str] = ["X-Request-Id"]


def apply_cors(app: FastAPI, *, origins: Iterable[str]) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-Id"],
        expose_headers=EXPOSE_HEADERS,
    )


__all__ = ["apply_cors", "EXPOSE_HEADERS"]
