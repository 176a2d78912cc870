"""
Voice relay (one per client WebSocket).

Responsibilities:
- Owns the connection's RelayState
- Lazily opens exactly one upstream LiveSession on the first valid message
- Decodes inbound client frames into tagged variants and forwards them
- Pushes upstream events back to the client as JSON frames
- Closes both sides together, each exactly once

NOT responsible for:
- Retries, reconnection or backoff
- Buffering or backpressure
- Any audio processing

Failure policy:
- Every external call (session open, upstream send, client send) is
  wrapped; failures are logged and never escape the connection.
- Only session-open failures and missing credentials are surfaced to the
  client. Forwarding failures are swallowed.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable
from uuid import uuid4

from adapters.live.base import LiveCallbacks, LiveProvider, LiveSession
from constants import (
    MISSING_CREDENTIAL_MESSAGE,
    PAYLOAD_PREVIEW_CHARS,
    SESSION_OPEN_FAILED_MESSAGE,
)
from observability.logger import log_event, now_ms
from observability.metrics import emit_counter, timed
from protocol.messages import (
    ClientMessage,
    ControlMessage,
    GenericInstruction,
    RealtimeAudioInput,
    RelayProtocolError,
    decode_binary_message,
    decode_text_message,
    error_message,
    status_message,
)
from session.relay_state import RelayState


SendClient = Callable[[dict[str, Any]], Awaitable[None]]
CloseClient = Callable[[], Awaitable[None]]


def _new_connection_id() -> str:
    return f"conn_{uuid4().hex[:12]}"


class VoiceRelay:
    """
    One relay == one client connection == at most one upstream session.

    The route feeds client frames in through on_text_message /
    on_binary_message; upstream events leave through `send_client`.
    """

    def __init__(
        self,
        *,
        provider: LiveProvider | None,
        send_client: SendClient,
        close_client: CloseClient,
        missing_credential_message: str = MISSING_CREDENTIAL_MESSAGE,
    ) -> None:
        self.connection_id = _new_connection_id()
        self._provider = provider
        self._send_client = send_client
        self._close_client = close_client
        self._missing_credential_message = missing_credential_message

        self._state = RelayState.IDLE
        self._session: LiveSession | None = None
        self._session_task: asyncio.Task[LiveSession | None] | None = None
        self._upstream_closed = False
        self._client_closed = False

        # Emitted once at teardown
        self._audio_chunks_forwarded = 0
        self._messages_forwarded = 0
        self._messages_dropped = 0

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> RelayState:
        return self._state

    @property
    def session(self) -> LiveSession | None:
        return self._session

    def log_context(self) -> dict[str, Any]:
        return {
            "connection_id": self.connection_id,
            "state": self._state.value,
        }

    # ------------------------------------------------------------------
    # Client lifecycle
    # ------------------------------------------------------------------

    async def on_ws_connect(self) -> None:
        """Called once the client WebSocket is accepted."""
        self._log("RELAY_CONNECTED", has_provider=self._provider is not None)

        if self._provider is None:
            # Keep the socket open so the UI can show the error.
            await self._notify_client(error_message(self._missing_credential_message))
            return

        await self._notify_client(status_message("ready"))

    async def on_ws_disconnect(self, reason: str | None = None) -> None:
        """Called when the client socket closes or errors."""
        self._client_closed = True
        self._log("RELAY_CLIENT_DISCONNECTED", reason=reason)
        await self._close_upstream()

    # ------------------------------------------------------------------
    # Client -> upstream
    # ------------------------------------------------------------------

    async def on_binary_message(self, payload: bytes) -> None:
        """Raw PCM16 audio; forwarded without validation."""
        msg = decode_binary_message(payload)
        await self._forward(msg)

    async def on_text_message(self, text: str) -> None:
        """JSON text frame; anything outside the accepted variants is dropped."""
        try:
            msg = decode_text_message(text)
        except RelayProtocolError as e:
            self._log(
                "RELAY_MESSAGE_DROPPED",
                error_type=type(e).__name__,
                error=str(e),
                payload_preview=text[:PAYLOAD_PREVIEW_CHARS],
            )
            self._messages_dropped += 1
            return

        await self._forward(msg)

    async def _forward(self, msg: ClientMessage) -> None:
        if self._state is RelayState.CLOSED:
            return

        session = await self._ensure_session()
        if session is None:
            return

        try:
            if isinstance(msg, RealtimeAudioInput):
                await session.send_realtime_audio(msg.data, mime_type=msg.mime_type)
            elif isinstance(msg, GenericInstruction):
                await session.send(msg.payload)
            elif isinstance(msg, ControlMessage):
                await session.send_control(msg.action)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._log(
                "RELAY_UPSTREAM_SEND_FAILED",
                message_kind=type(msg).__name__,
                exception=type(exc).__name__,
                error=str(exc),
            )
            return

        if isinstance(msg, RealtimeAudioInput):
            self._audio_chunks_forwarded += 1
            return  # too chatty to log per frame

        self._messages_forwarded += 1
        self._log("RELAY_FORWARDED", message_kind=type(msg).__name__)

    # ------------------------------------------------------------------
    # Upstream session lifecycle
    # ------------------------------------------------------------------

    async def _ensure_session(self) -> LiveSession | None:
        """
        Return the upstream session, opening it on first use.

        Single flight: concurrent callers share one in-flight open.
        """
        if self._session is not None:
            return self._session

        if self._provider is None:
            return None

        if self._session_task is None:
            self._state = RelayState.SESSION_PENDING
            self._session_task = asyncio.create_task(self._open_session(self._provider))

        return await asyncio.shield(self._session_task)

    async def _open_session(self, provider: LiveProvider) -> LiveSession | None:
        callbacks = LiveCallbacks(
            on_open=self._on_upstream_open,
            on_message=self._on_upstream_message,
            on_error=self._on_upstream_error,
            on_close=self._on_upstream_close,
        )

        try:
            with timed("live_session_open", connection_id=self.connection_id):
                session = await provider.open_session(callbacks=callbacks)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._session_task = None
            if self._state is not RelayState.CLOSED:
                self._state = RelayState.IDLE
            self._log(
                "LIVE_SESSION_OPEN_FAILED",
                exception=type(exc).__name__,
                error=str(exc),
            )
            await self._notify_client(
                error_message(SESSION_OPEN_FAILED_MESSAGE, detail=str(exc))
            )
            return None

        if self._state is RelayState.CLOSED:
            # Client left while the open was in flight.
            self._log("LIVE_SESSION_OPENED_AFTER_CLOSE")
            await self._safe_close_session(session)
            return None

        self._session = session
        self._state = RelayState.ACTIVE
        self._log("LIVE_SESSION_OPENED")
        return session

    async def _close_upstream(self) -> None:
        """Close the upstream session exactly once; never raises."""
        if self._upstream_closed:
            return
        self._upstream_closed = True
        self._state = RelayState.CLOSED

        session = self._session
        if session is not None:
            await self._safe_close_session(session)

        self._emit_counters()

    async def _safe_close_session(self, session: LiveSession) -> None:
        try:
            await session.close()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._log(
                "LIVE_SESSION_CLOSE_FAILED",
                exception=type(exc).__name__,
                error=str(exc),
            )
            return
        self._log("LIVE_SESSION_CLOSED")

    # ------------------------------------------------------------------
    # Upstream -> client (LiveCallbacks)
    # ------------------------------------------------------------------

    async def _on_upstream_open(self) -> None:
        await self._notify_client(status_message("upstream_open"))

    async def _on_upstream_message(self, event: dict[str, Any]) -> None:
        await self._notify_client(event)

    async def _on_upstream_error(self, detail: str) -> None:
        self._log("LIVE_SESSION_ERROR", error=detail)
        await self._notify_client(error_message("upstream_error", detail=detail))

    async def _on_upstream_close(self, info: dict[str, Any]) -> None:
        self._log("LIVE_SESSION_ENDED", **info)
        await self._notify_client(status_message("upstream_closed", **info))

        # Both sides close together.
        await self._close_upstream()
        await self._safe_close_client()

    # ------------------------------------------------------------------
    # Client I/O (best effort)
    # ------------------------------------------------------------------

    async def _notify_client(self, msg: dict[str, Any]) -> None:
        if self._client_closed:
            return
        try:
            await self._send_client(msg)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._log(
                "RELAY_CLIENT_SEND_FAILED",
                exception=type(exc).__name__,
                error=str(exc),
            )

    async def _safe_close_client(self) -> None:
        if self._client_closed:
            return
        self._client_closed = True
        try:
            await self._close_client()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._log(
                "RELAY_CLIENT_CLOSE_FAILED",
                exception=type(exc).__name__,
                error=str(exc),
            )

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def _emit_counters(self) -> None:
        for name, value in (
            ("relay_audio_chunks_forwarded", self._audio_chunks_forwarded),
            ("relay_messages_forwarded", self._messages_forwarded),
            ("relay_messages_dropped", self._messages_dropped),
        ):
            emit_counter(name, value, connection_id=self.connection_id)

    def _log(self, event_type: str, **details: Any) -> None:
        log_event({
            "ts_ms": now_ms(),
            "event_type": event_type,
            **self.log_context(),
            **details,
        })
