"""Text-to-speech synthesis into telephony-ready audio clips."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import httpx

from calls.errors import SynthesisError
from config.settings import get_settings
from telephony.transcoder import AudioTranscoder

LOGGER = logging.getLogger(__name__)


class BaseSynthesizer(ABC):
    """Interface for all text-to-speech synthesizers."""

    @abstractmethod
    async def synthesize(self, text: str, voice_id: str) -> bytes | None:
        """Return an 8kHz mu-law clip for ``text``, or ``None`` when no audio is available."""


class ElevenLabsSynthesizer(BaseSynthesizer):
    """Wrapper around the ElevenLabs text-to-speech REST API."""

    def __init__(self, *, client: httpx.AsyncClient | None = None) -> None:
        settings = get_settings()
        self._api_key = settings.elevenlabs_api_key
        self._base_url = settings.elevenlabs_base_url.rstrip("/")
        self._model_id = settings.elevenlabs_model_id
        self._output_format = settings.elevenlabs_output_format
        self._voice_settings = {
            "stability": settings.elevenlabs_stability,
            "similarity_boost": settings.elevenlabs_similarity_boost,
            "style": settings.elevenlabs_style,
            "use_speaker_boost": settings.elevenlabs_use_speaker_boost,
        }
        self._client = client

    async def synthesize(self, text: str, voice_id: str) -> bytes | None:
        if not text.strip():
            return None

        try:
            audio = await self._request(text, voice_id)
        except SynthesisError as exc:
            LOGGER.error("TTS failed for voice %s: %s", voice_id, exc.detail)
            return None

        if self._output_format == "pcm_16000":
            audio = AudioTranscoder.clip_from_pcm16(audio, 16000)

        LOGGER.info("TTS generated %d bytes (mu-law 8kHz) for voice %s", len(audio), voice_id)
        return audio

    async def _request(self, text: str, voice_id: str) -> bytes:
        if not self._api_key:
            raise SynthesisError("ElevenLabs API key must be configured.")

        accept = "audio/basic" if self._output_format == "ulaw_8000" else "audio/pcm"
        payload = {
            "text": text,
            "model_id": self._model_id,
            "voice_settings": self._voice_settings,
        }

        try:
            if self._client is not None:
                response = await self._post(self._client, voice_id, payload, accept)
            else:
                async with httpx.AsyncClient(timeout=30) as client:
                    response = await self._post(client, voice_id, payload, accept)
        except httpx.HTTPError as exc:
            raise SynthesisError(f"ElevenLabs request failed: {exc}") from exc

        if response.is_error:
            raise SynthesisError(
                f"ElevenLabs API error: {response.status_code} - {response.text[:200]}"
            )
        if not response.content:
            raise SynthesisError("ElevenLabs returned an empty clip.")
        return response.content

    async def _post(
        self, client: httpx.AsyncClient, voice_id: str, payload: dict, accept: str
    ) -> httpx.Response:
        return await client.post(
            f"{self._base_url}/v1/text-to-speech/{voice_id}",
            params={"output_format": self._output_format},
            json=payload,
            headers={
                "Accept": accept,
                "Content-Type": "application/json",
                "xi-api-key": self._api_key or "",
            },
        )


def build_synthesizer() -> BaseSynthesizer:
    """Factory returning the configured synthesizer."""

    settings = get_settings()
    if settings.tts_provider == "elevenlabs":
        return ElevenLabsSynthesizer()
    raise ValueError(f"Unsupported TTS provider: {settings.tts_provider}")
