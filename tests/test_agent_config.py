from __future__ import annotations

import asyncio

import httpx

from calls.agent_config import (
    AgentConfig,
    HttpAgentConfigProvider,
    StaticAgentConfigProvider,
    build_agent_config_provider,
    default_agent_config,
    merge_agent_payload,
)

DEFAULTS = AgentConfig(prompt_text="Default prompt", voice_id="default-voice", greeting_text="Hi!")


def test_merge_accepts_both_naming_styles():
    snake = merge_agent_payload(
        DEFAULTS, {"prompt_text": "Sell shoes", "voice_id": "v1", "greeting_text": "Shoe shop!"}
    )
    camel = merge_agent_payload(
        DEFAULTS,
        {"identity": "Book rooms", "voiceId": "v2", "settings": {"greetingLine": "Hotel desk."}},
    )

    assert snake == AgentConfig(prompt_text="Sell shoes", voice_id="v1", greeting_text="Shoe shop!")
    assert camel == AgentConfig(prompt_text="Book rooms", voice_id="v2", greeting_text="Hotel desk.")


def test_merge_keeps_defaults_for_missing_fields():
    merged = merge_agent_payload(DEFAULTS, {"name": "Bare", "settings": "not-a-dict"})

    assert merged == DEFAULTS


def _provider(handler) -> tuple[HttpAgentConfigProvider, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpAgentConfigProvider("https://agents.example.com/api/agents/", api_key="secret", client=client), client


def test_http_provider_fetches_agent(fresh_settings):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"name": "Front desk", "identity": "Be a receptionist.", "voiceId": "v9"})

    async def scenario():
        provider, client = _provider(handler)
        async with client:
            return await provider.get("agent-7")

    config = asyncio.run(scenario())

    assert str(seen[0].url) == "https://agents.example.com/api/agents/agent-7"
    assert seen[0].headers["Authorization"] == "Bearer secret"
    assert config.prompt_text == "Be a receptionist."
    assert config.voice_id == "v9"
    assert config.greeting_text == default_agent_config().greeting_text


def test_http_provider_falls_back_on_failures(fresh_settings):
    def not_found(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": "no such agent"})

    def not_an_object(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=["unexpected"])

    async def scenario():
        results = []
        for handler in (not_found, not_an_object):
            provider, client = _provider(handler)
            async with client:
                results.append(await provider.get("agent-7"))
                results.append(await provider.get(None))
        return results

    results = asyncio.run(scenario())

    assert results == [default_agent_config()] * 4


def test_build_provider_uses_url_when_configured(fresh_settings):
    fresh_settings.delenv("AGENT_CONFIG_URL", raising=False)
    assert isinstance(build_agent_config_provider(), StaticAgentConfigProvider)

    from config.settings import get_settings

    fresh_settings.setenv("AGENT_CONFIG_URL", "https://agents.example.com/api/agents")
    get_settings.cache_clear()
    assert isinstance(build_agent_config_provider(), HttpAgentConfigProvider)
