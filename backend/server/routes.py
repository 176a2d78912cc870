"""
Route registration for the voice relay API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire VoiceRelay to the WebSocket lifecycle
- Pull dependencies from app.state
"""

from __future__ import annotations

import json
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from constants import RELAY_WS_PATH
from observability.logger import log_event, now_ms
from session.relay import VoiceRelay

SERVICE_VERSION = "1.0.0"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    _register_health_routes(app)

    if app.state.relay_enabled:
        _register_relay_route(app)
    else:
        log_event({
            "ts_ms": now_ms(),
            "event_type": "VOICE_RELAY_ROUTE_SKIPPED",
            "level": "warning",
            "path": RELAY_WS_PATH,
        })

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:  # pyright: ignore[reportUnusedFunction]
        if exc.status_code == 404:
            return JSONResponse(
                status_code=404,
                content={
                    "error": "Endpoint not found",
                    "path": request.url.path,
                    "method": request.method,
                    "timestamp": _timestamp(),
                },
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail, "timestamp": _timestamp()},
        )


def _register_health_routes(app: FastAPI) -> None:
    def uptime_s() -> float:
        return round(time.monotonic() - app.state.started_at, 3)

    def relay_status() -> dict[str, bool]:
        return {
            "enabled": bool(app.state.relay_enabled),
            "configured": app.state.live_provider is not None,
        }

    @app.get("/")
    async def root() -> dict[str, Any]:  # pyright: ignore[reportUnusedFunction]
        return {
            "message": "Quest.io API Server",
            "version": SERVICE_VERSION,
            "status": "running",
            "timestamp": _timestamp(),
        }

    @app.get("/health")
    async def health() -> dict[str, str]:  # pyright: ignore[reportUnusedFunction]
        """Health check endpoint for load balancers."""
        return {"status": "ok"}

    @app.get("/api/health")
    async def api_health() -> dict[str, Any]:  # pyright: ignore[reportUnusedFunction]
        return {
            "status": "healthy",
            "message": "Quest.io API is running",
            "timestamp": _timestamp(),
            "uptime": uptime_s(),
            "version": SERVICE_VERSION,
            "voice_relay": relay_status(),
        }

    @app.get("/api/health/ready")
    async def ready() -> dict[str, Any]:  # pyright: ignore[reportUnusedFunction]
        return {
            "ready": True,
            "voice_relay": relay_status(),
            "timestamp": _timestamp(),
        }

    @app.get("/api/health/live")
    async def live() -> dict[str, Any]:  # pyright: ignore[reportUnusedFunction]
        return {"alive": True, "timestamp": _timestamp()}


def _register_relay_route(app: FastAPI) -> None:
    @app.websocket(RELAY_WS_PATH)
    async def gemini_voice(ws: WebSocket) -> None:  # pyright: ignore[reportUnusedFunction]
        """
        Voice relay endpoint.

        One connection = one relay = at most one upstream session.
        """
        await ws.accept()

        async def send_client(msg: dict[str, Any]) -> None:
            await ws.send_text(json.dumps(msg))

        async def close_client() -> None:
            await ws.close()

        relay = VoiceRelay(
            provider=app.state.live_provider,
            send_client=send_client,
            close_client=close_client,
        )

        try:
            await relay.on_ws_connect()

            while True:
                msg = await ws.receive()

                if msg["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(code=msg.get("code", 1000))

                if msg.get("text") is not None:
                    await relay.on_text_message(msg["text"])

                elif msg.get("bytes") is not None:
                    await relay.on_binary_message(msg["bytes"])

        except WebSocketDisconnect:
            await relay.on_ws_disconnect(reason="client_disconnect")

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": now_ms(),
                "event_type": "WS_FATAL_ERROR",
                **relay.log_context(),
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            await relay.on_ws_disconnect(reason="server_error")
