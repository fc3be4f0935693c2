"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # Twilio Media Streams transport
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL for Twilio webhooks (e.g. https://<ngrok>.ngrok-free.app).",
    )
    twilio_say_language: str = Field(default="en-US")
    twilio_connect_message: str = Field(default="Please wait while I connect you to an agent.")
    outbound_frame_chars: int = Field(
        default=214,
        gt=0,
        description="Maximum base64 characters per outbound media frame.",
    )
    outbound_frame_pacing_seconds: float = Field(
        default=0.0,
        ge=0.0,
        description="Delay between outbound frames. Twilio buffers and paces playback itself.",
    )
    playback_ack_grace_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="Added to a clip's duration while waiting for its completion mark.",
    )

    # Conversation behaviour
    greeting_delay_seconds: float = Field(default=0.5, ge=0.0)
    interruption_min_chars: int = Field(
        default=3,
        ge=0,
        description="Caller transcripts must be longer than this to count as barge-in.",
    )
    fallback_reply: str = Field(
        default="I apologize, I'm having trouble processing that right now."
    )
    default_agent_prompt: str = Field(default="You are a helpful AI assistant.")
    default_voice_id: str = Field(default="21m00Tcm4TlvDq8ikWAM")
    default_greeting: str = Field(default="Hello! How can I help you today?")

    # Agent configuration lookup
    agent_config_url: str | None = Field(
        default=None,
        description="Optional base URL; agents are fetched from {agent_config_url}/{agent_id}.",
    )
    agent_config_api_key: str | None = Field(default=None)

    # Speech recognition (Deepgram live streaming)
    deepgram_api_key: str | None = Field(default=None)
    deepgram_url: str = Field(default="wss://api.deepgram.com/v1/listen")
    deepgram_model: str = Field(default="nova-2-phonecall")
    stt_language: str = Field(default="en-US")
    stt_encoding: Literal["mulaw", "linear16"] = Field(default="mulaw")
    stt_sample_rate: int = Field(default=8000, gt=0)
    stt_interim_results: bool = Field(default=True)
    stt_utterance_end_ms: int = Field(default=1000, ge=0)
    stt_endpointing_ms: int = Field(default=300, ge=0)
    stt_smart_format: bool = Field(default=True)
    stt_punctuate: bool = Field(default=True)

    # LLM connectivity
    llm_provider: Literal["gemini", "openai", "self_hosted_vllm"] = Field(default="gemini")
    llm_endpoint: str | None = Field(
        default=None, description="HTTP endpoint for the self-hosted inference server."
    )
    llm_api_key: str | None = Field(default=None)
    llm_model: str = Field(
        default="gemini-1.5-flash",
        description="Model identifier for the selected provider.",
    )
    llm_temperature: float = Field(default=0.7, ge=0.0, le=2.0)

    # Text to speech
    tts_provider: Literal["elevenlabs"] = Field(default="elevenlabs")
    elevenlabs_api_key: str | None = Field(default=None)
    elevenlabs_base_url: str = Field(default="https://api.elevenlabs.io")
    elevenlabs_model_id: str = Field(default="eleven_turbo_v2_5")
    elevenlabs_output_format: Literal["ulaw_8000", "pcm_16000"] = Field(default="ulaw_8000")
    elevenlabs_stability: float = Field(default=0.5, ge=0.0, le=1.0)
    elevenlabs_similarity_boost: float = Field(default=0.75, ge=0.0, le=1.0)
    elevenlabs_style: float = Field(default=0.0, ge=0.0, le=1.0)
    elevenlabs_use_speaker_boost: bool = Field(default=True)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
