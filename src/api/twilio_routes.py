"""Twilio Voice integration.

This module provides:
- Voice webhook (TwiML) that connects an answered call to the media stream.
- Media Streams WebSocket endpoint bridging the call to the voice agent.
"""

from __future__ import annotations

import logging
from xml.sax.saxutils import escape, quoteattr

from fastapi import APIRouter, Depends, Request, Response, WebSocket

from api.dependencies import (
    get_agent_config_provider,
    get_call_ports,
    get_registry,
    get_session_options,
)
from calls.agent_config import AgentConfigProvider
from calls.registry import SessionRegistry
from calls.session import CallPorts, SessionOptions
from calls.transport import TwilioTransportAdapter, WebSocketChannel
from config.settings import get_settings

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/twilio", tags=["twilio"])


def _twiml_response(xml: str) -> Response:
    # Twilio expects application/xml
    return Response(content=xml, media_type="application/xml")


def _to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


def _stream_url(request: Request) -> str:
    settings = get_settings()
    if settings.public_base_url:
        return _to_ws_url(f"{settings.public_base_url.rstrip('/')}/api/twilio/stream")
    # Fallback to request host. This may not work behind proxies; prefer PUBLIC_BASE_URL.
    return _to_ws_url(str(request.base_url).rstrip("/") + "/api/twilio/stream")


def _twiml_connect_stream(
    *,
    stream_url: str,
    stream_name: str,
    parameters: dict[str, str],
    say_text: str,
    language: str,
) -> str:
    params = "".join(
        f"<Parameter name={quoteattr(name)} value={quoteattr(value)} />"
        for name, value in parameters.items()
    )
    say = (
        f"<Say language={quoteattr(language)}>{escape(say_text)}</Say><Pause length=\"1\" />"
        if say_text
        else ""
    )
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        f"{say}"
        "<Connect>"
        f"<Stream url={quoteattr(stream_url)} name={quoteattr(stream_name)}>"
        f"{params}"
        "</Stream>"
        "</Connect>"
        "</Response>"
    )


@router.post("/voice")
async def twilio_voice_webhook(request: Request) -> Response:
    settings = get_settings()
    form = await request.form()

    call_sid = str(form.get("CallSid") or "").strip()
    agent_id = (request.query_params.get("agentId") or "").strip()
    call_id = (request.query_params.get("callId") or "").strip() or call_sid or "unknown"

    if not agent_id:
        LOGGER.warning("call=%s voice webhook without agentId; using default agent", call_id)

    parameters = {"callId": call_id}
    if agent_id:
        parameters["agentId"] = agent_id

    LOGGER.info("call=%s connecting media stream", call_id)
    return _twiml_response(
        _twiml_connect_stream(
            stream_url=_stream_url(request),
            stream_name=f"stream_{call_id}",
            parameters=parameters,
            say_text=settings.twilio_connect_message,
            language=settings.twilio_say_language,
        )
    )


@router.websocket("/stream")
async def twilio_media_stream(
    websocket: WebSocket,
    registry: SessionRegistry = Depends(get_registry),
    ports: CallPorts = Depends(get_call_ports),
    agent_configs: AgentConfigProvider = Depends(get_agent_config_provider),
    options: SessionOptions = Depends(get_session_options),
) -> None:
    await websocket.accept()
    adapter = TwilioTransportAdapter(
        registry,
        ports,
        agent_configs,
        WebSocketChannel(websocket),
        options,
    )
    await adapter.run(websocket)
