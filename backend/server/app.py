"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Initialize shared resources (live provider)
- Register routes
"""

from __future__ import annotations

import time
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from adapters.live.base import LiveProvider, ProviderConfigurationError
from adapters.live.gemini import build_live_provider
from config import AppConfig
from observability import logger
from observability.logger import log_event, now_ms

from server.routes import register_routes


def create_app(
    config: AppConfig | None = None,
    *,
    live_provider: LiveProvider | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with different configurations and fake providers
    - Environment-specific setup
    - ASGI server compatibility
    """
    if config is None:
        config = AppConfig.load_from_env()

    logger.configure(enable_json_logs=config.enable_json_logs)

    app = FastAPI(title="Quest.io Voice Relay", version="1.0.0")

    app.state.config = config
    app.state.started_at = time.monotonic()

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )

    @app.middleware("http")
    async def security_headers(request: Request, call_next: Any) -> Response:  # pyright: ignore[reportUnusedFunction]
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response

    # Build the live provider ONCE per process
    app.state.live_provider = None
    app.state.relay_enabled = config.enable_voice_relay

    if live_provider is not None:
        app.state.live_provider = live_provider
    elif config.enable_voice_relay:
        try:
            app.state.live_provider = build_live_provider(config)
        except ProviderConfigurationError as exc:
            # Relay stays up; clients are told about the missing key.
            log_event({
                "ts_ms": now_ms(),
                "event_type": "LIVE_PROVIDER_NOT_CONFIGURED",
                "error": str(exc),
            })
        except Exception as exc:  # pylint: disable=broad-exception-caught
            app.state.relay_enabled = False
            log_event({
                "ts_ms": now_ms(),
                "event_type": "VOICE_RELAY_DISABLED",
                "level": "warning",
                "exception": type(exc).__name__,
                "error": str(exc),
            })

    # Routes
    register_routes(app)

    return app
