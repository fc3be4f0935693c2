from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from calls.agent_config import AgentConfig, StaticAgentConfigProvider  # noqa: E402
from calls.errors import RecognizerError  # noqa: E402
from calls.registry import SessionRegistry  # noqa: E402
from calls.session import CallPorts, CallSession, SessionOptions  # noqa: E402
from llm.base import BaseLLMClient  # noqa: E402
from llm.generator import ResponseGenerator  # noqa: E402
from speech.recognizer import BaseRecognizer, RecognitionStream, TranscriptEvent  # noqa: E402
from speech.tts import BaseSynthesizer  # noqa: E402

FALLBACK = "I apologize, I'm having trouble processing that right now."


class FakeRecognitionStream(RecognitionStream):
    def __init__(self, on_transcript, scripted: list[TranscriptEvent]) -> None:
        self.on_transcript = on_transcript
        self.scripted = list(scripted)
        self.sent: list[bytes] = []
        self.close_calls = 0

    async def send(self, audio: bytes) -> None:
        self.sent.append(audio)
        # Emit scripted transcripts once caller audio starts flowing.
        while self.scripted:
            self.on_transcript(self.scripted.pop(0))

    async def close(self) -> None:
        self.close_calls += 1


class FakeRecognizer(BaseRecognizer):
    def __init__(self, scripted: list[TranscriptEvent] | None = None, *, fail: bool = False) -> None:
        self.scripted = scripted or []
        self.fail = fail
        self.streams: list[FakeRecognitionStream] = []

    async def open(self, config, on_transcript) -> RecognitionStream:
        if self.fail:
            raise RecognizerError("no api key")
        stream = FakeRecognitionStream(on_transcript, self.scripted)
        self.streams.append(stream)
        return stream


class FakeLLM(BaseLLMClient):
    def __init__(self, replies: list[str] | None = None, *, error: Exception | None = None) -> None:
        self.replies = list(replies or [])
        self.error = error
        self.calls: list[list[dict[str, str]]] = []

    async def chat(self, messages, *, temperature: float = 0.7) -> str:
        self.calls.append(list(messages))
        if self.error is not None:
            raise self.error
        if self.replies:
            return self.replies.pop(0)
        return "Okay."


class FakeSynthesizer(BaseSynthesizer):
    def __init__(self, clip: bytes | None = b"\xff" * 320) -> None:
        self.clip = clip
        self.requests: list[tuple[str, str]] = []

    async def synthesize(self, text: str, voice_id: str) -> bytes | None:
        self.requests.append((text, voice_id))
        return self.clip


class FakeChannel:
    """Records outbound transport operations; optionally acknowledges marks."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str, str]] = []
        self.on_mark = None
        self.on_media = None

    async def send_media(self, stream_id: str, payload: str) -> None:
        self.messages.append(("media", stream_id, payload))
        if self.on_media is not None:
            self.on_media(len(self.media()))

    async def send_mark(self, stream_id: str, name: str) -> None:
        self.messages.append(("mark", stream_id, name))
        if self.on_mark is not None:
            self.on_mark(name)

    async def send_clear(self, stream_id: str) -> None:
        self.messages.append(("clear", stream_id, ""))

    def media(self) -> list[str]:
        return [payload for kind, _, payload in self.messages if kind == "media"]

    def kinds(self) -> list[str]:
        return [kind for kind, _, _ in self.messages]


def make_ports(
    *,
    recognizer: BaseRecognizer | None = None,
    llm: BaseLLMClient | None = None,
    synthesizer: BaseSynthesizer | None = None,
) -> CallPorts:
    return CallPorts(
        recognizer=recognizer if recognizer is not None else FakeRecognizer(),
        generator=ResponseGenerator(llm if llm is not None else FakeLLM(), fallback_reply=FALLBACK),
        synthesizer=synthesizer if synthesizer is not None else FakeSynthesizer(),
    )


AGENT = AgentConfig(
    prompt_text="You are a concise phone assistant.",
    voice_id="voice-123",
    greeting_text="Hello! How can I help you today?",
)


@pytest.fixture()
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture()
def session_factory(channel: FakeChannel):
    """Build sessions wired to fakes; greeting disabled unless a delay is given."""

    def factory(
        *,
        call_id: str = "CA100",
        recognizer: BaseRecognizer | None = None,
        llm: BaseLLMClient | None = None,
        synthesizer: BaseSynthesizer | None = None,
        auto_ack: bool = True,
        greeting_delay_seconds: float | None = None,
        playback_ack_grace_seconds: float = 5.0,
    ) -> CallSession:
        session = CallSession(
            call_id,
            AGENT,
            make_ports(recognizer=recognizer, llm=llm, synthesizer=synthesizer),
            channel,
            SessionOptions(
                greeting_delay_seconds=greeting_delay_seconds,
                playback_ack_grace_seconds=playback_ack_grace_seconds,
            ),
        )
        if auto_ack:
            channel.on_mark = session.acknowledge_mark
        return session

    return factory


@pytest.fixture()
def fresh_settings(monkeypatch: pytest.MonkeyPatch):
    """Re-read settings from the (monkeypatched) environment for one test."""

    from config.settings import get_settings

    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


@pytest.fixture(scope="session")
def app():
    os.environ["PUBLIC_BASE_URL"] = "https://bridge.example.com"

    import importlib

    from config.settings import get_settings

    get_settings.cache_clear()
    # Ensure a clean import with the test settings.
    for module_name in ["api.twilio_routes", "api.routes", "main"]:
        sys.modules.pop(module_name, None)

    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture()
def client(app, registry):
    # Override engine dependencies so tests never reach Deepgram, an LLM or ElevenLabs.
    import api.dependencies as deps

    app.dependency_overrides[deps.get_registry] = lambda: registry
    app.dependency_overrides[deps.get_call_ports] = lambda: make_ports(
        recognizer=FakeRecognizer([TranscriptEvent("What's the weather?", is_final=True)]),
        llm=FakeLLM(["Sure thing."]),
        synthesizer=FakeSynthesizer(b"\x7f" * 500),
    )
    app.dependency_overrides[deps.get_agent_config_provider] = lambda: StaticAgentConfigProvider(AGENT)
    app.dependency_overrides[deps.get_session_options] = lambda: SessionOptions(greeting_delay_seconds=None)

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
