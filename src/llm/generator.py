"""Reply generation on top of a chat-capable LLM client."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from calls.models import ConversationTurn
from llm.base import BaseLLMClient

LOGGER = logging.getLogger(__name__)

DEFAULT_FALLBACK_REPLY = "I apologize, I'm having trouble processing that right now."


def build_chat_messages(system_prompt: str, history: Sequence[ConversationTurn]) -> list[dict[str, str]]:
    messages: list[dict[str, str]] = [{"role": "system", "content": system_prompt}]
    for turn in history:
        messages.append(
            {
                "role": "assistant" if turn.role == "agent" else "user",
                "content": turn.text,
            }
        )
    return messages


class ResponseGenerator:
    """Produces exactly one reply per request; failures become the fallback reply."""

    def __init__(
        self,
        llm: BaseLLMClient | None,
        *,
        fallback_reply: str = DEFAULT_FALLBACK_REPLY,
        temperature: float = 0.7,
    ) -> None:
        self._llm = llm
        self.fallback_reply = fallback_reply
        self._temperature = temperature

    async def generate(self, history: Sequence[ConversationTurn], system_prompt: str) -> str:
        if self._llm is None:
            LOGGER.error("No LLM client configured; using fallback reply")
            return self.fallback_reply

        try:
            reply = await self._llm.chat(
                build_chat_messages(system_prompt, history),
                temperature=self._temperature,
            )
        except Exception:
            LOGGER.exception("LLM request failed; using fallback reply")
            return self.fallback_reply

        reply = (reply or "").strip()
        if not reply:
            LOGGER.warning("LLM returned an empty reply; using fallback reply")
            return self.fallback_reply
        return reply
