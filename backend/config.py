"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No relay logic
- No protocol constants
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import GEMINI_API_VERSION_DEFAULT, GEMINI_LIVE_MODEL_DEFAULT


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the app factory and the live provider builder.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str = "development"
    log_level: str = "info"
    host: str = "0.0.0.0"
    port: int = 3001
    cors_origins: tuple[str, ...] = ("http://localhost:3000",)

    # ------------------------------------------------------------------
    # Upstream live provider
    # ------------------------------------------------------------------

    gemini_api_key: str | None = None
    gemini_live_model: str = GEMINI_LIVE_MODEL_DEFAULT
    gemini_api_version: str = GEMINI_API_VERSION_DEFAULT
    gemini_voice_name: str | None = None
    gemini_system_instruction: str | None = None

    # ------------------------------------------------------------------
    # Features
    # ------------------------------------------------------------------

    enable_voice_relay: bool = True

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool = True

    @property
    def has_gemini_credential(self) -> bool:
        """True when a non-blank Gemini API key is configured."""
        return bool(self.gemini_api_key and self.gemini_api_key.strip())

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Missing credentials are NOT an error here; the relay reports
        them to clients at connection time.
        """
        origins = os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:3000,https://quest-io.vercel.app",
        )
        return AppConfig(
            env=os.environ.get("ENV", "development"),
            log_level=os.environ.get("LOG_LEVEL", "info").lower(),
            host=os.environ.get("HOST", "0.0.0.0"),
            port=int(os.environ.get("PORT", "3001")),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),

            gemini_api_key=os.environ.get("GEMINI_API_KEY"),
            gemini_live_model=os.environ.get("GEMINI_LIVE_MODEL", GEMINI_LIVE_MODEL_DEFAULT),
            gemini_api_version=os.environ.get("GEMINI_API_VERSION", GEMINI_API_VERSION_DEFAULT),
            gemini_voice_name=os.environ.get("GEMINI_VOICE_NAME") or None,
            gemini_system_instruction=os.environ.get("GEMINI_SYSTEM_INSTRUCTION") or None,

            enable_voice_relay=_env_flag("ENABLE_VOICE_RELAY", "1"),
            enable_json_logs=_env_flag("ENABLE_JSON_LOGS", "1"),
        )
