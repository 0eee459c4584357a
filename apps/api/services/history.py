"""Projection of stored chat turns into model-ready context."""

from __future__ import annotations

from typing import List, NamedTuple, Sequence, Tuple

from services.conversations import ROLE_USER, TurnRecord


MODEL_ROLES = {
    "user": "user",
    "assistant": "model",
}


class HistoryEntry(NamedTuple):
    role: str  # "user" or "model"
    text: str


def project_history(turns: Sequence[TurnRecord]) -> Tuple[List[HistoryEntry], str]:
    """Split turns into ``(history, current_prompt)``.

    The newest turn must be the user turn just appended; it becomes the
    current prompt and is left out of the history so the completion request
    carries it exactly once.
    """
    if not turns or turns[-1].role != ROLE_USER:
        raise ValueError("The newest turn must be a user turn")

    history = [HistoryEntry(MODEL_ROLES[turn.role], turn.content) for turn in turns[:-1]]
    return history, turns[-1].content
