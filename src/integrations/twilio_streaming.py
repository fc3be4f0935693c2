"""Twilio Media Streams message framing.

Protocol reference:
  https://www.twilio.com/docs/voice/media-streams/websocket-messages

  <- {"event":"connected", "protocol":"Call", "version":"1.0.0"}
  <- {"event":"start", "start":{"streamSid":"...","callSid":"...","customParameters":{...}}}
  <- {"event":"media", "media":{"track":"inbound","payload":"<base64 mulaw>"}}
  <- {"event":"mark",  "mark":{"name":"..."}}
  <- {"event":"stop"}

  -> {"event":"media", "streamSid":"...", "media":{"payload":"<base64 mulaw>"}}
  -> {"event":"mark",  "streamSid":"...", "mark":{"name":"..."}}
  -> {"event":"clear", "streamSid":"..."}
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class StartSignal:
    stream_id: str
    call_id: str | None
    agent_ref: str | None
    call_sid: str | None


def parse_twilio_ws_message(raw: str | bytes) -> dict[str, Any] | None:
    """Decode one WebSocket frame; anything that is not a JSON object yields None."""

    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
    try:
        message = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    return message if isinstance(message, dict) else None


def parse_start(message: dict[str, Any]) -> StartSignal:
    start = message.get("start") or {}
    params = start.get("customParameters") or {}
    call_sid = _optional_str(start.get("callSid"))
    return StartSignal(
        stream_id=str(start.get("streamSid") or message.get("streamSid") or ""),
        call_id=_optional_str(params.get("callId")) or call_sid,
        agent_ref=_optional_str(params.get("agentId")),
        call_sid=call_sid,
    )


def inbound_media_payload(message: dict[str, Any]) -> str | None:
    media = message.get("media") or {}
    if media.get("track") and media.get("track") != "inbound":
        return None
    payload = media.get("payload")
    if isinstance(payload, str) and payload:
        return payload
    return None


def mark_name(message: dict[str, Any]) -> str:
    return str((message.get("mark") or {}).get("name") or "")


def media_message(stream_id: str, payload: str) -> dict[str, Any]:
    return {"event": "media", "streamSid": stream_id, "media": {"payload": payload}}


def mark_message(stream_id: str, name: str) -> dict[str, Any]:
    return {"event": "mark", "streamSid": stream_id, "mark": {"name": name}}


def clear_message(stream_id: str) -> dict[str, Any]:
    return {"event": "clear", "streamSid": stream_id}


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
