"""Question cursor helpers over a visible question list.

Visible lists are derived from field state on every read; these helpers
only keep a stored cursor inside whatever list is current.
"""

from __future__ import annotations

import math
from typing import Any, Sequence
import logging

logger = logging.getLogger(__name__)


def clamp_question_index(index: Any, visible_question_ids: Sequence[str]) -> int:
    """Clamp a stored cursor into ``[0, len - 1]``.

    - Empty lists, non-integers, NaN and negative indexes degrade to 0.
    - Indexes past the end land on the last visible question.
    """
    if not visible_question_ids:
        return 0
    if isinstance(index, bool) or not isinstance(index, (int, float)):
        return 0
    if isinstance(index, float) and (math.isnan(index) or not index.is_integer()):
        return 0
    if index < 0:
        return 0
    if index >= len(visible_question_ids):
        return len(visible_question_ids) - 1
    return int(index)


def next_question_index(question_id: str, visible_after: Sequence[str]) -> int:
    """Cursor after answering ``question_id``: one past it, capped at the end."""
    try:
        answered = list(visible_after).index(question_id)
    except ValueError:
        answered = 0
    return min(answered + 1, max(len(visible_after) - 1, 0))


def current_question_id(visible_question_ids: Sequence[str], index: int, fallback: str) -> str:
    if 0 <= index < len(visible_question_ids):
        return visible_question_ids[index]
    if visible_question_ids:
        return visible_question_ids[0]
    return fallback


__all__ = ["clamp_question_index", "current_question_id", "next_question_index"]
