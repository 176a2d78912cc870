"""
Relay wire messages.

Client -> Server:
    binary frame                     raw PCM16 audio (forwarded as-is)
    {"media": {"data", "mimeType"}}  realtime audio input (base64)
    {"control": <action>}            upstream control signal
    {<instruction keys>...}          generic instruction, forwarded verbatim

Server -> Client:
    {"type": "status"|"error", "message": ..., ...}
    or a forwarded upstream event object

Every client message is decoded into one of a closed set of variants
before it reaches the upstream session. Anything else raises a
RelayProtocolError and is dropped by the caller.

Usage example:

    try:
        msg = decode_text_message(text)
    except RelayProtocolError as e:
        log_event({"event_type": "RELAY_MESSAGE_DROPPED", "error": str(e)})
        return

    if isinstance(msg, RealtimeAudioInput):
        await session.send_realtime_audio(msg.data, mime_type=msg.mime_type)
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any, Union

from constants import (
    CONTROL_ACTIONS,
    ERROR_MESSAGE_TYPE,
    GENERIC_INSTRUCTION_KEYS,
    RELAY_AUDIO_MIME_TYPE,
    STATUS_MESSAGE_TYPE,
)


# -------------------------
# Exceptions
# -------------------------

class RelayProtocolError(Exception):
    """Base class for relay message errors."""


class MalformedMessage(RelayProtocolError):
    """
    Raised when a text frame is not valid JSON or a media payload is not
    valid base64.
    """


class UnsupportedMessage(RelayProtocolError):
    """
    Raised when a well-formed JSON value matches none of the accepted
    variants (wrong type, unknown keys, unknown control action).
    """


# -------------------------
# Variants
# -------------------------

@dataclass(frozen=True)
class RealtimeAudioInput:
    """Audio for the upstream realtime input stream."""
    data: bytes
    mime_type: str = RELAY_AUDIO_MIME_TYPE


@dataclass(frozen=True)
class GenericInstruction:
    """A passthrough object for the upstream session's generic send."""
    payload: dict[str, Any]


@dataclass(frozen=True)
class ControlMessage:
    """An upstream control signal (see CONTROL_ACTIONS)."""
    action: str


ClientMessage = Union[RealtimeAudioInput, GenericInstruction, ControlMessage]


# -------------------------
# Decoding
# -------------------------

def decode_binary_message(payload: bytes) -> RealtimeAudioInput:
    """Binary frames are PCM16 audio; no length validation."""
    return RealtimeAudioInput(data=bytes(payload), mime_type=RELAY_AUDIO_MIME_TYPE)


def decode_text_message(text: str) -> ClientMessage:
    """
    Decode a client text frame into a tagged variant.

    Raises:
        MalformedMessage: invalid JSON or invalid base64 media data
        UnsupportedMessage: valid JSON matching no variant
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedMessage(f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise UnsupportedMessage(f"expected object, got {type(data).__name__}")

    media = data.get("media")
    if isinstance(media, dict) and "data" in media and "mimeType" in media:
        return _decode_media(media)

    if "control" in data:
        action = data["control"]
        if action not in CONTROL_ACTIONS:
            raise UnsupportedMessage(f"unknown control action: {action!r}")
        return ControlMessage(action=action)

    if any(key in data for key in GENERIC_INSTRUCTION_KEYS):
        return GenericInstruction(payload=data)

    raise UnsupportedMessage(f"unrecognised keys: {sorted(data)[:5]}")


def _decode_media(media: dict[str, Any]) -> RealtimeAudioInput:
    raw = media["data"]
    mime_type = media["mimeType"]
    if not isinstance(raw, str) or not isinstance(mime_type, str):
        raise MalformedMessage("media.data and media.mimeType must be strings")
    try:
        audio = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedMessage(f"invalid base64 media data: {e}") from e
    return RealtimeAudioInput(data=audio, mime_type=mime_type)


# -------------------------
# Encoding (client side)
# -------------------------

def encode_media_message(pcm_bytes: bytes, *, mime_type: str = RELAY_AUDIO_MIME_TYPE) -> str:
    """Encode PCM audio as a `{"media": ...}` text frame."""
    return json.dumps({
        "media": {
            "data": base64.b64encode(pcm_bytes).decode("ascii"),
            "mimeType": mime_type,
        }
    })


# -------------------------
# Server -> Client helpers
# -------------------------

def status_message(message: str, **extra: Any) -> dict[str, Any]:
    return {"type": STATUS_MESSAGE_TYPE, "message": message, **extra}


def error_message(message: str, **extra: Any) -> dict[str, Any]:
    return {"type": ERROR_MESSAGE_TYPE, "message": message, **extra}


@dataclass(frozen=True)
class InlineAudio:
    """Audio located inside a forwarded upstream event."""
    data: bytes
    mime_type: str


def extract_inline_audio(event: Any, *, default_mime: str) -> InlineAudio | None:
    """
    Locate inline audio in a forwarded upstream event.

    Looks in candidates[0].content.parts[0] (audioData or inlineData) first,
    then in serverContent.modelTurn.parts[*]. Returns None when no audio is
    present or the payload is not valid base64.
    """
    if not isinstance(event, dict):
        return None

    part = _first_candidate_part(event)
    found = _audio_blob(part) if part is not None else None

    if found is None:
        for p in _model_turn_parts(event):
            found = _audio_blob(p)
            if found is not None:
                break

    if found is None:
        return None

    b64, mime = found
    try:
        data = base64.b64decode(b64, validate=True)
    except (binascii.Error, ValueError):
        return None
    return InlineAudio(data=data, mime_type=mime or default_mime)


def _first_candidate_part(event: dict[str, Any]) -> dict[str, Any] | None:
    candidates = event.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return None
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    if not isinstance(content, dict):
        return None
    parts = content.get("parts")
    if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
        return None
    return parts[0]


def _model_turn_parts(event: dict[str, Any]) -> list[dict[str, Any]]:
    server_content = event.get("serverContent")
    if not isinstance(server_content, dict):
        return []
    model_turn = server_content.get("modelTurn")
    if not isinstance(model_turn, dict):
        return []
    parts = model_turn.get("parts")
    if not isinstance(parts, list):
        return []
    return [p for p in parts if isinstance(p, dict)]


def _audio_blob(part: dict[str, Any]) -> tuple[str, str | None] | None:
    for key in ("audioData", "inlineData"):
        blob = part.get(key)
        if isinstance(blob, dict) and isinstance(blob.get("data"), str) and blob["data"]:
            mime = blob.get("mimeType")
            return blob["data"], mime if isinstance(mime, str) else None
    return None
