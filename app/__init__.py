"""FastAPI application package for the onboarding wizard service.

Exposes the application factory. Form definitions and the step engine live
in `app/forms/` and `app/logic/`; route handlers in `app/routes/`.
"""

from __future__ import annotations

from app.main import create_app

__all__ = ["create_app"]
