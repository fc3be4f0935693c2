"""Barge-in detection while the agent is speaking."""

from __future__ import annotations

from calls.models import ConversationState


class InterruptionController:
    """Decides whether caller speech should cut off the agent.

    Short transcripts are treated as line noise or recognition artifacts.
    """

    def __init__(self, min_chars: int = 3) -> None:
        self.min_chars = min_chars

    def is_barge_in(self, text: str, state: ConversationState) -> bool:
        if state is not ConversationState.SPEAKING:
            return False
        return len(text.strip()) > self.min_chars
