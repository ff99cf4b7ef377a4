"""APIRouter registration for the onboarding service."""

from __future__ import annotations

from fastapi import APIRouter

from app.routes.auth import router as auth_router
from app.routes.clients import router as clients_router
from app.routes.forms import router as forms_router
from app.routes.health import router as health_router
from app.routes.onboarding import router as onboarding_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["Health"])
api_router.include_router(auth_router, tags=["Auth"])
api_router.include_router(forms_router, tags=["Forms"])
api_router.include_router(clients_router, tags=["Clients"])
api_router.include_router(onboarding_router, tags=["Onboarding"])

__all__ = ["api_router"]
