"""Liveness endpoint."""

from __future__ import annotations

from fastapi import APIRouter

router = APIRouter()


@router.get("/health", summary="Liveness probe", operation_id="getHealth")
def health() -> dict:
    return {"status": "ok"}
