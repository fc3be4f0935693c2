"""In-memory data carried by a call session."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal

Role = Literal["caller", "agent"]


class ConversationState(str, Enum):
    AWAITING_START = "awaiting_start"
    LISTENING = "listening"
    GENERATING = "generating"
    SPEAKING = "speaking"
    INTERRUPTED = "interrupted"
    ENDED = "ended"


@dataclass(frozen=True, slots=True)
class ConversationTurn:
    role: Role
    text: str


@dataclass(frozen=True, slots=True)
class VoiceConfig:
    prompt_text: str
    voice_id: str


@dataclass(slots=True)
class TransportState:
    stream_id: str | None = None
    ready: bool = False
