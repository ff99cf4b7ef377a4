"""Domain events for the account, client and onboarding flows.

Events are logged and kept in a bounded in-memory buffer; there is no
broker. Tests read the buffer to assert which transitions happened.
"""

from __future__ import annotations

from collections import deque
from typing import Any, Deque, Dict, List
import logging

logger = logging.getLogger(__name__)

USER_REGISTERED = "user.registered"
CLIENT_CREATED = "client.created"
FORMS_SELECTED = "client.forms_selected"
ONBOARDING_STEP_SAVED = "onboarding.step_saved"
ONBOARDING_STATUS_CHANGED = "onboarding.status_changed"

BUFFER_LIMIT = 1000

_buffer: Deque[Dict[str, Any]] = deque(maxlen=BUFFER_LIMIT)


def publish(event_type: str, payload: Dict[str, Any]) -> None:
    logger.info("event_publish type=%s keys=%s", event_type, sorted(payload))
    _buffer.append({"type": event_type, "payload": dict(payload)})


def get_buffered_events(clear: bool = True) -> List[Dict[str, Any]]:
    """Buffered events, oldest first; the buffer is emptied unless ``clear`` is False."""
    events = list(_buffer)
    if clear:
        _buffer.clear()
    return events


__all__ = [
    "BUFFER_LIMIT",
    "CLIENT_CREATED",
    "FORMS_SELECTED",
    "ONBOARDING_STATUS_CHANGED",
    "ONBOARDING_STEP_SAVED",
    "USER_REGISTERED",
    "get_buffered_events",
    "publish",
]
