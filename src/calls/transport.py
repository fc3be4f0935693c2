"""Twilio Media Streams adapter: wire events in, session operations out."""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

from calls.agent_config import AgentConfigProvider
from calls.errors import TransportClosedError
from calls.registry import SessionRegistry
from calls.session import CallPorts, CallSession, SessionOptions
from integrations.twilio_streaming import (
    clear_message,
    inbound_media_payload,
    mark_message,
    mark_name,
    media_message,
    parse_start,
    parse_twilio_ws_message,
)

LOGGER = logging.getLogger(__name__)


class WebSocketChannel:
    """Outbound side of a Twilio media stream."""

    def __init__(self, websocket: WebSocket) -> None:
        self._ws = websocket
        self.closed = False

    async def send_media(self, stream_id: str, payload: str) -> None:
        await self._send(media_message(stream_id, payload))

    async def send_mark(self, stream_id: str, name: str) -> None:
        await self._send(mark_message(stream_id, name))

    async def send_clear(self, stream_id: str) -> None:
        await self._send(clear_message(stream_id))

    async def _send(self, message: dict[str, Any]) -> None:
        if self.closed:
            raise TransportClosedError()
        try:
            await self._ws.send_text(json.dumps(message))
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            self.closed = True
            raise TransportClosedError(f"Send failed: {exc}") from exc


class TwilioTransportAdapter:
    """Translates Twilio stream events into calls on one CallSession."""

    def __init__(
        self,
        registry: SessionRegistry,
        ports: CallPorts,
        agent_configs: AgentConfigProvider,
        channel: WebSocketChannel,
        options: SessionOptions | None = None,
    ) -> None:
        self._registry = registry
        self._ports = ports
        self._agent_configs = agent_configs
        self._channel = channel
        self._options = options or SessionOptions()
        self.session: CallSession | None = None

    async def run(self, websocket: WebSocket) -> None:
        """Pump frames until the socket closes; the session never outlives it."""

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break

                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes")
                if raw is None:
                    continue

                if not await self.handle_frame(raw):
                    await websocket.close()
                    break
        except WebSocketDisconnect:
            LOGGER.info("Twilio WebSocket disconnected")
        finally:
            self._channel.closed = True
            await self.close()

    async def handle_frame(self, raw: str | bytes) -> bool:
        """Process one inbound frame. Returns False when the connection must be closed."""

        message = parse_twilio_ws_message(raw)
        if message is None:
            LOGGER.debug("Ignoring non-JSON frame")
            return True

        event = str(message.get("event") or "")
        if event == "connected":
            LOGGER.info(
                "Twilio connected: protocol=%s version=%s",
                message.get("protocol"),
                message.get("version"),
            )
        elif event == "start":
            return await self._on_start(message)
        elif event == "media":
            payload = inbound_media_payload(message)
            if payload and self.session is not None:
                await self.session.feed_audio(payload)
        elif event == "mark":
            if self.session is not None:
                self.session.acknowledge_mark(mark_name(message))
        elif event == "stop":
            LOGGER.info("Twilio stream stopped")
            await self.close()
        else:
            LOGGER.debug("Ignoring Twilio event %r", event)
        return True

    async def _on_start(self, message: dict[str, Any]) -> bool:
        signal = parse_start(message)
        if not signal.call_id:
            LOGGER.error("No callId in start event; closing stream")
            return False
        if self.session is not None and not self.session.ended:
            LOGGER.warning("call=%s duplicate start event ignored", signal.call_id)
            return True

        LOGGER.info(
            "Media stream start: call=%s stream=%s agent=%s",
            signal.call_id,
            signal.stream_id,
            signal.agent_ref,
        )
        agent = await self._agent_configs.get(signal.agent_ref)
        call_id = signal.call_id
        self.session = await self._registry.create(
            call_id,
            lambda: CallSession(call_id, agent, self._ports, self._channel, self._options),
        )
        await self.session.start(signal.stream_id)
        return True

    async def close(self) -> None:
        """End this connection's session; safe to call repeatedly."""

        if self.session is not None:
            await self._registry.discard(self.session)
