# pylint: disable=missing-module-docstring,missing-function-docstring

import base64
import json
from typing import Any

import pytest
from fastapi.testclient import TestClient

import server.app as app_mod
from adapters.live.base import LiveCallbacks, LiveProvider, LiveSession
from config import AppConfig
from constants import RELAY_WS_PATH
from server.app import create_app


class EchoSession(LiveSession):
    """Answers every audio chunk with one upstream event."""

    def __init__(self, callbacks: LiveCallbacks) -> None:
        self._callbacks = callbacks

    async def send_realtime_audio(self, data: bytes, *, mime_type: str) -> None:
        await self._callbacks.on_message({"echo": {"bytes": len(data), "mimeType": mime_type}})

    async def send(self, payload: dict[str, Any]) -> None:
        await self._callbacks.on_message({"echo": payload})

    async def send_control(self, action: str) -> None:
        await self._callbacks.on_message({"echo": {"control": action}})

    async def close(self) -> None:
        return None


class EchoProvider(LiveProvider):
    def __init__(self) -> None:
        self.open_calls = 0

    async def open_session(self, *, callbacks: LiveCallbacks) -> LiveSession:
        self.open_calls += 1
        await callbacks.on_open()
        return EchoSession(callbacks)


@pytest.fixture(autouse=True)
def _quiet_logs(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("observability.logger._print", lambda line: None)


def test_health_endpoints() -> None:
    client = TestClient(create_app(AppConfig(), live_provider=EchoProvider()))

    assert client.get("/health").json() == {"status": "ok"}

    root = client.get("/").json()
    assert root["status"] == "running"

    health = client.get("/api/health").json()
    assert health["status"] == "healthy"
    assert health["uptime"] >= 0
    assert health["voice_relay"] == {"enabled": True, "configured": True}

    assert client.get("/api/health/ready").json()["ready"] is True
    assert client.get("/api/health/live").json()["alive"] is True


def test_security_headers_are_set() -> None:
    client = TestClient(create_app(AppConfig(), live_provider=EchoProvider()))

    response = client.get("/health")

    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"


def test_unknown_route_returns_json_404() -> None:
    client = TestClient(create_app(AppConfig(), live_provider=EchoProvider()))

    response = client.get("/api/nope")

    assert response.status_code == 404
    body = response.json()
    assert body["error"] == "Endpoint not found"
    assert body["path"] == "/api/nope"
    assert body["method"] == "GET"


def test_missing_key_reports_error_over_socket() -> None:
    client = TestClient(create_app(AppConfig(gemini_api_key=None)))

    assert client.get("/api/health").json()["voice_relay"] == {"enabled": True, "configured": False}

    with client.websocket_connect(RELAY_WS_PATH) as ws:
        assert ws.receive_json() == {"type": "error", "message": "Missing GEMINI_API_KEY"}


def test_socket_relays_audio_and_instructions() -> None:
    provider = EchoProvider()
    client = TestClient(create_app(AppConfig(), live_provider=provider))

    with client.websocket_connect(RELAY_WS_PATH) as ws:
        assert ws.receive_json() == {"type": "status", "message": "ready"}

        ws.send_bytes(b"\x00\x00\x01\x00")
        assert ws.receive_json() == {"type": "status", "message": "upstream_open"}
        assert ws.receive_json() == {"echo": {"bytes": 4, "mimeType": "audio/pcm;rate=16000"}}

        ws.send_text("{not valid")
        ws.send_text(json.dumps({"media": {"data": base64.b64encode(b"\x01\x02").decode(), "mimeType": "audio/pcm;rate=16000"}}))
        assert ws.receive_json() == {"echo": {"bytes": 2, "mimeType": "audio/pcm;rate=16000"}}

        ws.send_text(json.dumps({"control": "audio_stream_end"}))
        assert ws.receive_json() == {"echo": {"control": "audio_stream_end"}}

    assert provider.open_calls == 1


def test_disabled_relay_skips_socket_route() -> None:
    client = TestClient(create_app(AppConfig(enable_voice_relay=False)))

    assert client.get("/api/health").json()["voice_relay"] == {"enabled": False, "configured": False}
    assert not any(getattr(r, "path", None) == RELAY_WS_PATH for r in client.app.routes)


def test_provider_construction_failure_disables_relay(monkeypatch: pytest.MonkeyPatch) -> None:
    def broken(config: AppConfig) -> LiveProvider:
        raise OSError("address already in use")

    monkeypatch.setattr(app_mod, "build_live_provider", broken)

    app = create_app(AppConfig(gemini_api_key="k"))

    assert app.state.relay_enabled is False
    assert TestClient(app).get("/health").json() == {"status": "ok"}
