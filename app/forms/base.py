"""Form definitions: an ordered list of steps plus cross-step rules.

A ``FormDefinition`` knows how to build each step's context from a client
snapshot (prefill from other forms, joint-signature requirement, legacy
columns), which steps are required, and therefore the form's status and
the route a broker should resume at.
"""

from __future__ import annotations

from typing import Any, Sequence
import logging

from app.logic.step_engine import StepContext, StepDefinition
from app.logic.validation import FieldErrors
from app.models.onboarding import ClientSnapshot, OnboardingStatus

logger = logging.getLogger(__name__)

_MISSING = object()


class FormDefinition:
    code: str = ""
    title: str = ""
    slug: str = ""

    def __init__(self, steps: Sequence[StepDefinition]) -> None:
        self.steps: tuple[StepDefinition, ...] = tuple(steps)
        self._by_number = {step.number: step for step in self.steps}

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    @property
    def not_selected_message(self) -> str:
        return f"{self.title} is not selected for this client."

    def step(self, number: int) -> StepDefinition | None:
        return self._by_number.get(number)

    def step_route(self, client_id: str, number: int) -> str:
        return f"/clients/{client_id}/{self.slug}/step-{number}"

    # -- per-step context -------------------------------------------------

    def step_context(self, number: int, snapshot: ClientSnapshot) -> StepContext:
        return StepContext(advisor_name=snapshot.advisor_name)

    def is_step_required(self, number: int, snapshot: ClientSnapshot) -> bool:
        return True

    def unavailable_step_message(self, number: int, snapshot: ClientSnapshot) -> str | None:
        """Message for a step that cannot be opened on the current path."""
        return None

    def load_fields(
        self,
        number: int,
        snapshot: ClientSnapshot,
        raw: Any = _MISSING,
        context: StepContext | None = None,
    ) -> dict:
        """Normalize stored (or supplied) step data and apply prefill."""
        step = self._by_number[number]
        context = context or self.step_context(number, snapshot)
        source = snapshot.step_data(self.code, number) if raw is _MISSING else raw
        return step.apply_prefill(step.normalize(source, context), context)

    def serialize(self, number: int, fields: dict) -> dict:
        return self._by_number[number].serialize(fields)

    def legacy_columns(self, number: int, fields: dict) -> dict[str, Any]:
        """Flat columns mirrored from a step write; none by default."""
        return {}

    def response_extras(self, number: int, fields: dict, snapshot: ClientSnapshot) -> dict:
        step = self._by_number[number]
        return step.response_extras(fields, self.step_context(number, snapshot))

    # -- completion -------------------------------------------------------

    def step_errors(self, number: int, snapshot: ClientSnapshot) -> FieldErrors:
        """Completion errors for one step; optional steps never fail."""
        if not self.is_step_required(number, snapshot):
            return {}
        context = self.step_context(number, snapshot)
        fields = self.load_fields(number, snapshot, context=context)
        return self._by_number[number].validate_completion(fields, context)

    def first_incomplete_step(self, snapshot: ClientSnapshot) -> int | None:
        for step in self.steps:
            if self.step_errors(step.number, snapshot):
                return step.number
        return None

    def compute_status(self, snapshot: ClientSnapshot) -> OnboardingStatus:
        """COMPLETED only while every required step validates."""
        if self.first_incomplete_step(snapshot) is None:
            return OnboardingStatus.COMPLETED
        return OnboardingStatus.IN_PROGRESS

    def pending_route(self, snapshot: ClientSnapshot) -> str | None:
        """Route of the first failing step; step 1 when nothing is stored."""
        if snapshot.onboarding(self.code) is None:
            return self.step_route(snapshot.client_id, 1)
        number = self.first_incomplete_step(snapshot)
        return self.step_route(snapshot.client_id, number) if number is not None else None

    def resume_route(self, snapshot: ClientSnapshot) -> str | None:
        """Where a broker continues this form; the last step once complete."""
        if not snapshot.is_selected(self.code):
            return None
        return self.pending_route(snapshot) or self.step_route(snapshot.client_id, self.total_steps)


__all__ = ["FormDefinition"]
