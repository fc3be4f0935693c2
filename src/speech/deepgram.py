"""Deepgram live streaming recognizer over a raw WebSocket."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any
from urllib.parse import urlencode

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from calls.errors import RecognizerError
from config.settings import get_settings
from speech.recognizer import (
    BaseRecognizer,
    RecognitionStream,
    RecognizerConfig,
    TranscriptEvent,
    TranscriptSink,
)

LOGGER = logging.getLogger(__name__)


def recognizer_config_from_settings() -> RecognizerConfig:
    settings = get_settings()
    return RecognizerConfig(
        encoding=settings.stt_encoding,
        sample_rate=settings.stt_sample_rate,
        model=settings.deepgram_model,
        language=settings.stt_language,
        interim_results=settings.stt_interim_results,
        utterance_end_ms=settings.stt_utterance_end_ms,
        endpointing_ms=settings.stt_endpointing_ms,
        smart_format=settings.stt_smart_format,
        punctuate=settings.stt_punctuate,
    )


def build_listen_url(base_url: str, config: RecognizerConfig) -> str:
    def flag(value: bool) -> str:
        return "true" if value else "false"

    params: dict[str, Any] = {
        "encoding": config.encoding,
        "sample_rate": config.sample_rate,
        "channels": 1,
        "model": config.model,
        "language": config.language,
        "interim_results": flag(config.interim_results),
        "endpointing": config.endpointing_ms,
        "smart_format": flag(config.smart_format),
        "punctuate": flag(config.punctuate),
    }
    # Deepgram only accepts utterance_end_ms together with interim results.
    if config.interim_results and config.utterance_end_ms:
        params["utterance_end_ms"] = config.utterance_end_ms
    return f"{base_url}?{urlencode(params)}"


def parse_transcript_message(message: dict[str, Any]) -> TranscriptEvent | None:
    """Map a Deepgram ``Results`` message to a transcript event.

    Other message types (Metadata, SpeechStarted, UtteranceEnd) and empty
    transcripts yield ``None``.
    """

    if message.get("type") != "Results":
        return None

    alternatives = (message.get("channel") or {}).get("alternatives") or []
    if not alternatives:
        return None

    text = str(alternatives[0].get("transcript") or "").strip()
    if not text:
        return None

    return TranscriptEvent(text=text, is_final=bool(message.get("is_final")))


class DeepgramStream(RecognitionStream):
    def __init__(self, ws: ClientConnection, on_transcript: TranscriptSink) -> None:
        self._ws = ws
        self._on_transcript = on_transcript
        self._closed = False
        self._reader = asyncio.create_task(self._read_loop())

    async def _read_loop(self) -> None:
        try:
            async for raw in self._ws:
                try:
                    message = json.loads(raw)
                except (json.JSONDecodeError, TypeError):
                    continue

                event = parse_transcript_message(message)
                if event is not None:
                    self._on_transcript(event)
        except ConnectionClosed as exc:
            if not self._closed:
                LOGGER.warning("Deepgram stream closed unexpectedly: %s", exc)
        except Exception:
            LOGGER.exception("Deepgram reader failed; no further transcripts for this stream")

    async def send(self, audio: bytes) -> None:
        if self._closed or not audio:
            return
        try:
            await self._ws.send(audio)
        except ConnectionClosed:
            LOGGER.debug("Dropping audio; Deepgram connection is closed")
        except WebSocketException as exc:
            LOGGER.warning("Failed to forward audio to Deepgram: %s", exc)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        try:
            await self._ws.send(json.dumps({"type": "CloseStream"}))
        except WebSocketException:
            LOGGER.debug("Could not send CloseStream to Deepgram")

        try:
            await self._ws.close()
        except WebSocketException:
            LOGGER.debug("Deepgram socket already closed")

        self._reader.cancel()
        await asyncio.gather(self._reader, return_exceptions=True)


class DeepgramRecognizer(BaseRecognizer):
    """Streaming transcription through the Deepgram live API."""

    def __init__(self) -> None:
        settings = get_settings()
        self._api_key = settings.deepgram_api_key
        self._base_url = settings.deepgram_url

    async def open(self, config: RecognizerConfig, on_transcript: TranscriptSink) -> RecognitionStream:
        if not self._api_key:
            raise RecognizerError("Deepgram API key must be configured.")

        url = build_listen_url(self._base_url, config)
        try:
            ws = await connect(
                url,
                additional_headers={"Authorization": f"Token {self._api_key}"},
                open_timeout=10,
            )
        except (OSError, WebSocketException, asyncio.TimeoutError) as exc:
            raise RecognizerError(f"Could not connect to Deepgram: {exc}") from exc

        LOGGER.info("Deepgram stream opened (model=%s, encoding=%s)", config.model, config.encoding)
        return DeepgramStream(ws, on_transcript)


def build_recognizer() -> BaseRecognizer:
    """Factory returning the configured recognizer."""

    return DeepgramRecognizer()
