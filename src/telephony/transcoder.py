"""Conversion between Twilio wire audio and the speech engines' byte streams.

Twilio Media Streams carry base64-encoded G.711 mu-law at 8kHz mono. The
recognizer either consumes that mu-law directly or PCM16 at its configured
sample rate; synthesizers produce either a ready mu-law clip or PCM16.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Literal

import numpy as np

from telephony.g711 import pcm16_resample, ulaw_decode, ulaw_encode

LOGGER = logging.getLogger(__name__)

WIRE_SAMPLE_RATE = 8000
DEFAULT_FRAME_CHARS = 214


class AudioTranscoder:
    """Stateless helper between the telephony wire format and raw audio bytes."""

    def __init__(
        self,
        *,
        recognizer_encoding: Literal["mulaw", "linear16"] = "mulaw",
        recognizer_sample_rate: int = WIRE_SAMPLE_RATE,
    ) -> None:
        self.recognizer_encoding = recognizer_encoding
        self.recognizer_sample_rate = recognizer_sample_rate

    @staticmethod
    def decode_inbound(payload_b64: str) -> bytes:
        """Return the raw mu-law bytes of one inbound media frame.

        Malformed payloads are dropped and yield ``b""``.
        """

        try:
            return base64.b64decode(payload_b64, validate=True)
        except (binascii.Error, ValueError):
            LOGGER.debug("Dropping undecodable media payload (%d chars)", len(payload_b64))
            return b""

    def to_recognizer(self, ulaw: bytes) -> bytes:
        if not ulaw or self.recognizer_encoding == "mulaw":
            return ulaw

        pcm8k = ulaw_decode(ulaw)
        pcm = pcm16_resample(pcm8k, WIRE_SAMPLE_RATE, self.recognizer_sample_rate)
        return pcm.astype("<i2").tobytes()

    @staticmethod
    def clip_from_pcm16(pcm_bytes: bytes, sample_rate: int) -> bytes:
        """Convert little-endian PCM16 audio into an 8kHz mu-law clip."""

        usable = len(pcm_bytes) - (len(pcm_bytes) % 2)
        pcm = np.frombuffer(pcm_bytes[:usable], dtype="<i2").astype(np.int16)
        pcm8k = pcm16_resample(pcm, sample_rate, WIRE_SAMPLE_RATE)
        return ulaw_encode(pcm8k)

    @staticmethod
    def encode_frames(clip: bytes, frame_chars: int = DEFAULT_FRAME_CHARS) -> list[str]:
        """Base64-encode a clip and split it into consecutive transport frames."""

        if frame_chars <= 0:
            raise ValueError("frame_chars must be positive")

        encoded = base64.b64encode(clip).decode("ascii")
        return [encoded[i : i + frame_chars] for i in range(0, len(encoded), frame_chars)]

    @staticmethod
    def clip_duration_seconds(clip: bytes) -> float:
        return len(clip) / WIRE_SAMPLE_RATE
