"""Lookup of per-agent prompt, voice and greeting used when a call starts."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx
from pydantic import BaseModel, Field

from config.settings import get_settings

LOGGER = logging.getLogger(__name__)


class AgentConfig(BaseModel):
    prompt_text: str = Field(min_length=1)
    voice_id: str = Field(min_length=1)
    greeting_text: str = ""


def default_agent_config() -> AgentConfig:
    settings = get_settings()
    return AgentConfig(
        prompt_text=settings.default_agent_prompt,
        voice_id=settings.default_voice_id,
        greeting_text=settings.default_greeting,
    )


class AgentConfigProvider(ABC):
    @abstractmethod
    async def get(self, agent_ref: str | None) -> AgentConfig:
        """Return the configuration for ``agent_ref``; never raises."""


class StaticAgentConfigProvider(AgentConfigProvider):
    """Serves the same configuration for every call."""

    def __init__(self, config: AgentConfig | None = None) -> None:
        self._config = config or default_agent_config()

    async def get(self, agent_ref: str | None) -> AgentConfig:
        return self._config


class HttpAgentConfigProvider(AgentConfigProvider):
    """Fetches agents from ``{base_url}/{agent_ref}``; falls back to defaults on any failure."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._client = client

    async def get(self, agent_ref: str | None) -> AgentConfig:
        defaults = default_agent_config()
        if not agent_ref:
            return defaults

        try:
            data = await self._fetch(agent_ref)
            config = merge_agent_payload(defaults, data)
        except (httpx.HTTPError, ValueError) as exc:
            LOGGER.error("Error loading agent %s: %s", agent_ref, exc)
            return defaults

        LOGGER.info("Loaded agent %s", data.get("name") or agent_ref)
        return config

    async def _fetch(self, agent_ref: str) -> dict[str, Any]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        url = f"{self._base_url}/{agent_ref}"

        if self._client is not None:
            response = await self._client.get(url, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=5) as client:
                response = await client.get(url, headers=headers)

        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError("Agent payload must be a JSON object.")
        return data


def merge_agent_payload(defaults: AgentConfig, data: dict[str, Any]) -> AgentConfig:
    """Overlay an agent record on the defaults, accepting both naming styles."""

    agent_settings = data.get("settings")
    if not isinstance(agent_settings, dict):
        agent_settings = {}
    prompt = data.get("prompt_text") or data.get("identity") or defaults.prompt_text
    voice = data.get("voice_id") or data.get("voiceId") or defaults.voice_id
    greeting = (
        data.get("greeting_text")
        or agent_settings.get("greetingLine")
        or defaults.greeting_text
    )
    return AgentConfig(prompt_text=prompt, voice_id=voice, greeting_text=greeting)


def build_agent_config_provider() -> AgentConfigProvider:
    settings = get_settings()
    if settings.agent_config_url:
        return HttpAgentConfigProvider(
            settings.agent_config_url,
            api_key=settings.agent_config_api_key,
        )
    return StaticAgentConfigProvider()
