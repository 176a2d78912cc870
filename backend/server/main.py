"""
Development entry point for the voice relay server.

Runs the ASGI app under uvicorn with host/port taken from AppConfig.
"""

from __future__ import annotations

import uvicorn
from dotenv import load_dotenv

from config import AppConfig


def run() -> None:
    """Start uvicorn serving server.asgi:app."""
    load_dotenv()
    config = AppConfig.load_from_env()

    uvicorn.run(
        "server.asgi:app",
        host=config.host,
        port=config.port,
        log_level=config.log_level,
        reload=config.env == "development",
    )


if __name__ == "__main__":
    run()
