"""
Live provider contract.

Purpose:
- Define the interface for a bidirectional streaming ("live") session with
  an external generative voice provider.
- Keep relay policy (when to open, when to close, what to forward) OUT of
  the adapter.

Rules:
- This file contains NO logic.
- No retries.
- No knowledge of the client WebSocket.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable


class ProviderConfigurationError(RuntimeError):
    """
    Raised at startup when the provider cannot be constructed from the
    current configuration (e.g. missing credential).
    """


@dataclass(frozen=True)
class LiveCallbacks:
    """
    Async sinks for upstream session events.

    on_open:    session established
    on_message: one provider event, already serialized to a JSON-safe dict
    on_error:   provider-side failure (human-readable detail)
    on_close:   session ended; the dict carries whatever close info exists
    """
    on_open: Callable[[], Awaitable[None]]
    on_message: Callable[[dict[str, Any]], Awaitable[None]]
    on_error: Callable[[str], Awaitable[None]]
    on_close: Callable[[dict[str, Any]], Awaitable[None]]


class LiveSession(ABC):
    """
    One open upstream session.

    The session is a *dumb pipe*: relay -> vendor and vendor -> callbacks.
    """

    @abstractmethod
    async def send_realtime_audio(self, data: bytes, *, mime_type: str) -> None:
        """
        Forward audio to the provider's realtime input stream.

        Contract:
        - data is forwarded as-is; no framing or length validation.
        - May raise on transport failure; the caller decides what to do.
        """
        raise NotImplementedError

    @abstractmethod
    async def send(self, payload: dict[str, Any]) -> None:
        """
        Generic send of a passthrough instruction object.

        Contract:
        - payload is the client's object, unmodified.
        - The adapter maps it onto whatever the vendor SDK accepts.
        """
        raise NotImplementedError

    @abstractmethod
    async def send_control(self, action: str) -> None:
        """Send a realtime control signal (see constants.CONTROL_ACTIONS)."""
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """
        Close the session.

        Contract:
        - Best-effort, idempotent.
        - After close, no further callbacks fire except at most one on_close.
        """
        raise NotImplementedError


class LiveProvider(ABC):
    """
    Factory for upstream sessions.

    Constructed once per process; shared across connections.
    Sessions it returns are owned exclusively by the caller.
    """

    @abstractmethod
    async def open_session(self, *, callbacks: LiveCallbacks) -> LiveSession:
        """
        Open a new upstream session.

        Contract:
        - Returns only once the session is usable.
        - callbacks.on_open fires before this returns.
        - Raises on failure; no internal retry.
        """
        raise NotImplementedError
