"""Google Gemini client over the public generateContent REST API."""

from __future__ import annotations

import logging
from typing import Any, Iterable

import httpx

from calls.errors import GenerationError
from config.settings import get_settings
from llm.base import BaseLLMClient

LOGGER = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


def to_gemini_request(messages: Iterable[dict[str, str]], temperature: float) -> dict[str, Any]:
    """Translate OpenAI-style messages into a Gemini request body.

    System messages become ``systemInstruction``; assistant turns use the ``model`` role.
    """

    system_parts: list[dict[str, str]] = []
    contents: list[dict[str, Any]] = []
    for message in messages:
        role = message.get("role", "user")
        text = message.get("content", "")
        if role == "system":
            system_parts.append({"text": text})
            continue
        contents.append(
            {
                "role": "model" if role == "assistant" else "user",
                "parts": [{"text": text}],
            }
        )

    body: dict[str, Any] = {
        "contents": contents,
        "generationConfig": {"temperature": temperature, "maxOutputTokens": 256},
    }
    if system_parts:
        body["systemInstruction"] = {"parts": system_parts}
    return body


class GeminiClient(BaseLLMClient):
    """Minimal Gemini chat client."""

    def __init__(self, *, client: httpx.AsyncClient | None = None) -> None:
        settings = get_settings()
        if not settings.llm_api_key:
            raise ValueError("LLM API key must be configured for Gemini client.")

        self._api_key = settings.llm_api_key
        self._model = settings.llm_model
        self._base_url = (settings.llm_endpoint or GEMINI_BASE_URL).rstrip("/")
        self._client = client

    async def chat(
        self,
        messages: Iterable[dict[str, str]],
        *,
        temperature: float = 0.7,
    ) -> str:
        body = to_gemini_request(messages, temperature)
        url = f"{self._base_url}/models/{self._model}:generateContent"
        headers = {"Content-Type": "application/json", "x-goog-api-key": self._api_key}

        if self._client is not None:
            response = await self._client.post(url, json=body, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=30) as client:
                response = await client.post(url, json=body, headers=headers)

        response.raise_for_status()
        data = response.json()
        candidates: list[dict] = data.get("candidates", [])
        if not candidates:
            raise GenerationError("Gemini response contains no candidates.")

        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(str(part.get("text", "")) for part in parts)
