"""Form catalogue endpoint."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from app.auth.guard import require_user
from app.logic.repository_forms import list_active_forms

router = APIRouter()


@router.get("/forms", summary="List active forms", operation_id="listForms")
def list_forms(user: Dict[str, Any] = Depends(require_user)):
    return {"forms": list_active_forms()}
