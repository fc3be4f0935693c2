"""Streaming speech-to-text abstractions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True, slots=True)
class TranscriptEvent:
    """One recognition result; interim results may still be revised."""

    text: str
    is_final: bool


TranscriptSink = Callable[[TranscriptEvent], None]


@dataclass(slots=True)
class RecognizerConfig:
    encoding: Literal["mulaw", "linear16"] = "mulaw"
    sample_rate: int = 8000
    model: str = "nova-2-phonecall"
    language: str = "en-US"
    interim_results: bool = True
    utterance_end_ms: int = 1000
    endpointing_ms: int = 300
    smart_format: bool = True
    punctuate: bool = True


class RecognitionStream(ABC):
    """Handle for one open recognizer stream."""

    @abstractmethod
    async def send(self, audio: bytes) -> None:
        """Forward audio bytes; transient failures are logged, never raised."""

    @abstractmethod
    async def close(self) -> None:
        """Release the stream. Safe to call more than once."""


class BaseRecognizer(ABC):
    """Interface for all streaming speech recognizers."""

    @abstractmethod
    async def open(self, config: RecognizerConfig, on_transcript: TranscriptSink) -> RecognitionStream:
        """Open a stream; ``on_transcript`` receives events in arrival order."""
