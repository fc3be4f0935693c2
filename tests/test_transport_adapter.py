from __future__ import annotations

import asyncio
import base64
import json

from calls.agent_config import AgentConfigProvider
from calls.errors import TransportClosedError
from calls.models import ConversationState
from calls.registry import SessionRegistry
from calls.session import SessionOptions
from calls.transport import TwilioTransportAdapter, WebSocketChannel
from conftest import AGENT, FakeRecognizer, make_ports


class RecordingAgentConfigs(AgentConfigProvider):
    def __init__(self) -> None:
        self.refs: list[str | None] = []

    async def get(self, agent_ref):
        self.refs.append(agent_ref)
        return AGENT


class FakeWebSocket:
    """Minimal stand-in for a Starlette WebSocket."""

    def __init__(self, incoming: list[dict] | None = None) -> None:
        self.incoming = list(incoming or [])
        self.sent: list[dict] = []
        self.closed = False

    async def receive(self) -> dict:
        if self.incoming:
            return self.incoming.pop(0)
        return {"type": "websocket.disconnect", "code": 1000}

    async def send_text(self, data: str) -> None:
        if self.closed:
            raise RuntimeError("Cannot call send once a close message has been sent.")
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000) -> None:
        self.closed = True


def _start(call_id: str | None = "call-1", agent_id: str | None = "agent-1") -> str:
    params = {}
    if call_id:
        params["callId"] = call_id
    if agent_id:
        params["agentId"] = agent_id
    return json.dumps({"event": "start", "start": {"streamSid": "MZ1", "customParameters": params}})


def _text(raw: str) -> dict:
    return {"type": "websocket.receive", "text": raw}


def _adapter(ws: FakeWebSocket, registry: SessionRegistry, recognizer=None, configs=None):
    return TwilioTransportAdapter(
        registry,
        make_ports(recognizer=recognizer),
        configs or RecordingAgentConfigs(),
        WebSocketChannel(ws),
        SessionOptions(greeting_delay_seconds=None),
    )


def test_start_creates_session_with_agent_lookup():
    configs = RecordingAgentConfigs()

    async def scenario():
        registry = SessionRegistry()
        adapter = _adapter(FakeWebSocket(), registry, configs=configs)
        keep_open = await adapter.handle_frame(_start())
        session = adapter.session
        state = session.state
        await adapter.close()
        return registry, session, keep_open, state

    registry, session, keep_open, state = asyncio.run(scenario())

    assert keep_open is True
    assert configs.refs == ["agent-1"]
    assert session.call_id == "call-1"
    assert session.transport.stream_id == "MZ1"
    assert state is ConversationState.LISTENING
    assert session.ended
    assert len(registry) == 0


def test_start_without_call_id_requests_close():
    async def scenario():
        registry = SessionRegistry()
        adapter = _adapter(FakeWebSocket(), registry)
        return await adapter.handle_frame(_start(call_id=None)), adapter, registry

    keep_open, adapter, registry = asyncio.run(scenario())

    assert keep_open is False
    assert adapter.session is None
    assert len(registry) == 0


def test_unknown_and_malformed_frames_are_ignored():
    async def scenario():
        adapter = _adapter(FakeWebSocket(), SessionRegistry())
        results = [
            await adapter.handle_frame("not json"),
            await adapter.handle_frame(json.dumps({"event": "dtmf", "dtmf": {"digit": "1"}})),
            await adapter.handle_frame(json.dumps({"event": "media", "media": {"payload": "//8="}})),
            await adapter.handle_frame(json.dumps({"event": "mark", "mark": {"name": "audio_complete"}})),
            await adapter.handle_frame(json.dumps({"event": "stop"})),
        ]
        return results, adapter

    results, adapter = asyncio.run(scenario())

    assert results == [True] * 5
    assert adapter.session is None


def test_media_frames_reach_recognizer_and_stop_ends_session():
    recognizer = FakeRecognizer()
    audio = base64.b64encode(b"\xff" * 160).decode("ascii")

    async def scenario():
        registry = SessionRegistry()
        adapter = _adapter(FakeWebSocket(), registry, recognizer=recognizer)
        await adapter.handle_frame(_start())
        await adapter.handle_frame(json.dumps({"event": "media", "media": {"track": "inbound", "payload": audio}}))
        await adapter.handle_frame(json.dumps({"event": "media", "media": {"track": "outbound", "payload": audio}}))
        await adapter.handle_frame(json.dumps({"event": "stop"}))
        await adapter.handle_frame(json.dumps({"event": "stop"}))
        return registry, adapter.session

    registry, session = asyncio.run(scenario())

    assert recognizer.streams[0].sent == [b"\xff" * 160]
    assert recognizer.streams[0].close_calls == 1
    assert session.state is ConversationState.ENDED
    assert len(registry) == 0


def test_run_ends_session_when_socket_disconnects():
    recognizer = FakeRecognizer()
    ws = FakeWebSocket(
        [
            _text(json.dumps({"event": "connected", "protocol": "Call", "version": "1.0.0"})),
            {"type": "websocket.receive", "bytes": _start().encode("utf-8")},
        ]
    )

    async def scenario():
        registry = SessionRegistry()
        adapter = _adapter(ws, registry, recognizer=recognizer)
        await adapter.run(ws)
        return registry, adapter.session

    registry, session = asyncio.run(scenario())

    assert session is not None
    assert session.ended
    assert recognizer.streams[0].close_calls == 1
    assert len(registry) == 0
    assert ws.closed is False


def test_run_closes_socket_on_start_without_call_id():
    ws = FakeWebSocket([_text(_start(call_id=None, agent_id=None))])

    async def scenario():
        adapter = _adapter(ws, SessionRegistry())
        await adapter.run(ws)

    asyncio.run(scenario())

    assert ws.closed is True


def test_channel_reports_closed_transport():
    ws = FakeWebSocket()

    async def scenario():
        channel = WebSocketChannel(ws)
        await channel.send_media("MZ1", "abc")
        await ws.close()
        try:
            await channel.send_clear("MZ1")
        except TransportClosedError:
            raised = True
        else:
            raised = False
        return channel, raised

    channel, raised = asyncio.run(scenario())

    assert raised
    assert channel.closed
    assert ws.sent == [{"event": "media", "streamSid": "MZ1", "media": {"payload": "abc"}}]
