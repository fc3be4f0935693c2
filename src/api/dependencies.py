"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import TYPE_CHECKING

from calls.registry import SessionRegistry
from config.settings import get_settings

if TYPE_CHECKING:  # pragma: no cover
    from calls.agent_config import AgentConfigProvider
    from calls.session import CallPorts, SessionOptions

LOGGER = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_registry() -> SessionRegistry:
    return SessionRegistry()


@lru_cache(maxsize=1)
def _ports_factory() -> CallPorts:
    # Lazy import to avoid pulling engine SDKs in at module import time.
    from calls.session import CallPorts
    from llm.factory import build_llm_client
    from llm.generator import ResponseGenerator
    from speech.deepgram import build_recognizer, recognizer_config_from_settings
    from speech.tts import build_synthesizer
    from telephony.transcoder import AudioTranscoder

    settings = get_settings()
    try:
        llm = build_llm_client()
    except ValueError as exc:
        LOGGER.error("LLM client unavailable: %s", exc)
        llm = None

    return CallPorts(
        recognizer=build_recognizer(),
        generator=ResponseGenerator(
            llm,
            fallback_reply=settings.fallback_reply,
            temperature=settings.llm_temperature,
        ),
        synthesizer=build_synthesizer(),
        transcoder=AudioTranscoder(
            recognizer_encoding=settings.stt_encoding,
            recognizer_sample_rate=settings.stt_sample_rate,
        ),
        recognizer_config=recognizer_config_from_settings(),
    )


def get_call_ports() -> CallPorts:
    return _ports_factory()


@lru_cache(maxsize=1)
def _agent_config_factory() -> AgentConfigProvider:
    from calls.agent_config import build_agent_config_provider

    return build_agent_config_provider()


def get_agent_config_provider() -> AgentConfigProvider:
    return _agent_config_factory()


def get_session_options() -> SessionOptions:
    from calls.session import SessionOptions

    return SessionOptions.from_settings(get_settings())
