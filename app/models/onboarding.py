"""Onboarding records as loaded for one client.

Form definitions read a ``ClientSnapshot`` to normalize steps, resolve
cross-form prefill and compute status; repositories build it from rows and
write back the step a request touched.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class OnboardingStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class StepRecord(BaseModel):
    current_question_index: int = 0
    data: Any = None


class OnboardingRecord(BaseModel):
    """One form's onboarding row plus its stored steps.

    ``version`` increments on every write and guards concurrent edits.
    ``legacy`` holds flat columns kept for older investor-profile rows.
    """

    form_code: str
    status: OnboardingStatus = OnboardingStatus.NOT_STARTED
    version: int = 0
    steps: Dict[int, StepRecord] = Field(default_factory=dict)
    legacy: Dict[str, Any] = Field(default_factory=dict)

    def step(self, number: int) -> StepRecord:
        return self.steps.get(number) or StepRecord()


class ClientSnapshot(BaseModel):
    client_id: str
    client_name: str
    advisor_name: str
    selected_codes: List[str] = Field(default_factory=list)
    onboardings: Dict[str, OnboardingRecord] = Field(default_factory=dict)

    def is_selected(self, code: str) -> bool:
        return code in self.selected_codes

    def onboarding(self, code: str) -> Optional[OnboardingRecord]:
        return self.onboardings.get(code)

    def step_data(self, code: str, number: int) -> Any:
        record = self.onboardings.get(code)
        return record.step(number).data if record else None

    def legacy(self, code: str) -> Dict[str, Any]:
        record = self.onboardings.get(code)
        return dict(record.legacy) if record else {}

    def with_step_data(self, code: str, number: int, data: Any, index: int | None = None) -> "ClientSnapshot":
        """Copy of the snapshot with one step's stored data replaced."""
        updated = self.model_copy(deep=True)
        record = updated.onboardings.get(code) or OnboardingRecord(form_code=code)
        current = record.step(number)
        record.steps[number] = StepRecord(
            current_question_index=current.current_question_index if index is None else index,
            data=data,
        )
        updated.onboardings[code] = record
        return updated


__all__ = ["ClientSnapshot", "OnboardingRecord", "OnboardingStatus", "StepRecord"]
