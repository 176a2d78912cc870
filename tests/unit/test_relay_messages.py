# pylint: disable=missing-module-docstring,missing-function-docstring

import base64
import json

import pytest

from constants import RELAY_AUDIO_MIME_TYPE
from protocol.messages import (
    ControlMessage,
    GenericInstruction,
    InlineAudio,
    MalformedMessage,
    RealtimeAudioInput,
    UnsupportedMessage,
    decode_binary_message,
    decode_text_message,
    encode_media_message,
    error_message,
    extract_inline_audio,
    status_message,
)


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


# -------------------------
# Client -> Server
# -------------------------

def test_binary_frame_is_realtime_audio() -> None:
    msg = decode_binary_message(b"\x01\x02\x03")

    assert msg == RealtimeAudioInput(data=b"\x01\x02\x03", mime_type=RELAY_AUDIO_MIME_TYPE)


def test_media_frame_decodes_base64_audio() -> None:
    text = json.dumps({"media": {"data": _b64(b"\x00\x01"), "mimeType": "audio/pcm;rate=16000"}})

    msg = decode_text_message(text)

    assert msg == RealtimeAudioInput(data=b"\x00\x01", mime_type="audio/pcm;rate=16000")


def test_encode_media_message_matches_decoder() -> None:
    text = encode_media_message(b"\x10\x20\x30\x40")

    assert json.loads(text) == {"media": {"data": _b64(b"\x10\x20\x30\x40"), "mimeType": RELAY_AUDIO_MIME_TYPE}}
    assert decode_text_message(text) == RealtimeAudioInput(data=b"\x10\x20\x30\x40")


def test_media_with_invalid_base64_is_malformed() -> None:
    with pytest.raises(MalformedMessage):
        decode_text_message(json.dumps({"media": {"data": "@@not base64@@", "mimeType": "audio/pcm"}}))


def test_media_with_non_string_fields_is_malformed() -> None:
    with pytest.raises(MalformedMessage):
        decode_text_message(json.dumps({"media": {"data": 12, "mimeType": "audio/pcm"}}))


@pytest.mark.parametrize("action", ["audio_stream_end", "activity_start", "activity_end"])
def test_control_actions(action: str) -> None:
    assert decode_text_message(json.dumps({"control": action})) == ControlMessage(action=action)


def test_unknown_control_action_is_unsupported() -> None:
    with pytest.raises(UnsupportedMessage):
        decode_text_message(json.dumps({"control": "reboot"}))


@pytest.mark.parametrize(
    "payload",
    [
        {"generationConfig": {}},
        {"contents": {"role": "user", "parts": [{"text": "hi"}]}},
        {"clientContent": {"turns": [], "turnComplete": True}},
        {"toolResponse": {"functionResponses": []}},
        {"text": "hello"},
    ],
)
def test_generic_instructions_pass_through_unchanged(payload: dict) -> None:
    msg = decode_text_message(json.dumps(payload))

    assert isinstance(msg, GenericInstruction)
    assert msg.payload == payload


def test_media_without_mime_type_falls_through_to_unsupported() -> None:
    with pytest.raises(UnsupportedMessage):
        decode_text_message(json.dumps({"media": {"data": _b64(b"\x00")}}))


@pytest.mark.parametrize("text", ["{not valid", "", "{\"a\": }"])
def test_invalid_json_is_malformed(text: str) -> None:
    with pytest.raises(MalformedMessage):
        decode_text_message(text)


@pytest.mark.parametrize("text", ["[1, 2]", "42", "\"str\"", "null", "{}", "{\"foo\": 1}"])
def test_json_matching_no_variant_is_unsupported(text: str) -> None:
    with pytest.raises(UnsupportedMessage):
        decode_text_message(text)


# -------------------------
# Server -> Client
# -------------------------

def test_status_and_error_frames() -> None:
    assert status_message("ready") == {"type": "status", "message": "ready"}
    assert error_message("Failed to open live session", detail="boom") == {
        "type": "error",
        "message": "Failed to open live session",
        "detail": "boom",
    }


def test_extract_audio_from_candidates_audio_data() -> None:
    event = {"candidates": [{"content": {"parts": [{"audioData": {"data": _b64(b"abc"), "mimeType": "audio/wav"}}]}}]}

    assert extract_inline_audio(event, default_mime="audio/mp3") == InlineAudio(data=b"abc", mime_type="audio/wav")


def test_extract_audio_defaults_mime_type() -> None:
    event = {"candidates": [{"content": {"parts": [{"inlineData": {"data": _b64(b"xyz")}}]}}]}

    assert extract_inline_audio(event, default_mime="audio/mp3") == InlineAudio(data=b"xyz", mime_type="audio/mp3")


def test_extract_audio_from_live_model_turn() -> None:
    event = {
        "serverContent": {
            "modelTurn": {
                "parts": [
                    {"text": "thinking"},
                    {"inlineData": {"data": _b64(b"\x00\x01"), "mimeType": "audio/pcm;rate=24000"}},
                ]
            }
        }
    }

    audio = extract_inline_audio(event, default_mime="audio/mp3")

    assert audio == InlineAudio(data=b"\x00\x01", mime_type="audio/pcm;rate=24000")


@pytest.mark.parametrize(
    "event",
    [
        {"type": "status", "message": "ready"},
        {"candidates": []},
        {"candidates": [{"content": {"parts": [{"text": "no audio"}]}}]},
        {"serverContent": {"turnComplete": True}},
        {"serverContent": {"modelTurn": {"parts": [{"inlineData": {"data": "!!"}}]}}},
        ["not", "a", "dict"],
    ],
)
def test_extract_audio_returns_none_without_audio(event: object) -> None:
    assert extract_inline_audio(event, default_mime="audio/mp3") is None
