"""
Voice call client.

Owns:
- The relay WebSocket (websockets asyncio client)
- The capture graph: microphone -> level analyser
                     microphone -> mic processor -> relay
- Playback of audio returned by the relay

State machine:
    DISCONNECTED -> CONNECTING -> CONNECTED <-> IN_CALL
    any -> DISCONNECTED when the socket closes (ends the call)

Threading:
- Capture blocks arrive on the device thread. The mic processor runs there
  and posts frames to the event loop with call_soon_threadsafe.
- Everything else runs on the event loop.
- Processor output is never routed to playback.
"""

from __future__ import annotations

import asyncio
import json
import threading
from enum import Enum
from typing import Any, Awaitable, Callable

import numpy as np
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed

from audio.frames import PcmFrame
from audio.mic_processor import MicProcessor
from audio.worklet import create_processor
from client.devices import AudioOutput, Microphone, MicrophoneUnavailable
from client.levels import MicLevelAnalyser
from client.playback import PlaybackQueue
from constants import (
    CLIENT_CLOSE_DRAIN_TIMEOUT_S,
    CLIENT_DEFAULT_VOLUME,
    CLIENT_GREETING_STOP_SEQUENCES,
    CLIENT_GREETING_TEXT,
    CLIENT_PLAYBACK_MIME_DEFAULT,
    ERROR_MESSAGE_TYPE,
    FLUSH_COMMAND,
    MIC_LEVEL_POLL_INTERVAL_S,
    MIC_PROCESSOR_NAME,
    STATUS_MESSAGE_TYPE,
)
from observability.logger import log_event, now_ms
from protocol.messages import encode_media_message, extract_inline_audio


class ClientState(str, Enum):
    """Connection/call state of a VoiceCallClient."""
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    IN_CALL = "IN_CALL"


def default_greeting() -> dict[str, Any]:
    """Initial instruction sent once the capture graph is wired."""
    return {
        "contents": {"role": "user", "parts": [{"text": CLIENT_GREETING_TEXT}]},
        "generationConfig": {"stopSequences": list(CLIENT_GREETING_STOP_SEQUENCES)},
    }


Connector = Callable[[str], Awaitable[Any]]


class VoiceCallClient:
    """
    One client == one relay connection == at most one call at a time.

    UI-facing attributes (read-only from outside):
        state, muted, volume, speaking, mic_level, last_status, last_error

    `on_change` is invoked after any of them changes.
    """

    def __init__(
        self,
        *,
        url: str,
        microphone_factory: Callable[[], Microphone],
        output: AudioOutput,
        connector: Connector = ws_connect,
        greeting: dict[str, Any] | None = None,
        on_change: Callable[[VoiceCallClient], None] | None = None,
    ) -> None:
        self.url = url
        self._microphone_factory = microphone_factory
        self._connector = connector
        self._greeting = greeting if greeting is not None else default_greeting()
        self._on_change = on_change

        self.state = ClientState.DISCONNECTED
        self.muted = False
        self.volume = CLIENT_DEFAULT_VOLUME
        self.speaking = False
        self.mic_level = 0.0
        self.last_status: str | None = None
        self.last_error: str | None = None

        self._ws: Any = None
        self._socket_open = False
        self._recv_task: asyncio.Task[None] | None = None
        self._send_task: asyncio.Task[None] | None = None
        self._closing_task: asyncio.Task[None] | None = None
        self._outbox: asyncio.Queue[str] = asyncio.Queue()

        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_thread_id: int | None = None

        self._mic: Microphone | None = None
        self._processor: MicProcessor | None = None
        self._analyser: MicLevelAnalyser | None = None
        self._level_task: asyncio.Task[None] | None = None

        self._player = PlaybackQueue(output=output, on_speaking=self._set_speaking)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the relay socket. No-op unless DISCONNECTED."""
        if self.state is not ClientState.DISCONNECTED:
            return

        self._loop = asyncio.get_running_loop()
        self._loop_thread_id = threading.get_ident()
        self._set_state(ClientState.CONNECTING)

        try:
            self._ws = await self._connector(self.url)
        except Exception as exc:
            self._log("CLIENT_CONNECT_FAILED", exception=type(exc).__name__, error=str(exc))
            self._set_state(ClientState.DISCONNECTED)
            raise

        self._socket_open = True
        self._set_state(ClientState.CONNECTED)
        self._recv_task = asyncio.create_task(self._receive_loop())
        self._send_task = asyncio.create_task(self._send_loop())

    async def close(self) -> None:
        """End any call and close the socket."""
        await self.stop_call()
        if self._send_task is not None and self._socket_open:
            try:
                await asyncio.wait_for(self._outbox.join(), timeout=CLIENT_CLOSE_DRAIN_TIMEOUT_S)
            except asyncio.TimeoutError:
                self._log("CLIENT_CLOSE_DRAIN_TIMEOUT", pending=self._outbox.qsize())

        ws = self._ws
        if ws is not None and self._socket_open:
            self._socket_open = False
            try:
                await ws.close()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                self._log("CLIENT_CLOSE_FAILED", exception=type(exc).__name__, error=str(exc))

        if self._recv_task is not None:
            await asyncio.gather(self._recv_task, return_exceptions=True)
        await self._on_socket_closed()

    # ------------------------------------------------------------------
    # Call control
    # ------------------------------------------------------------------

    async def start_call(self) -> None:
        """
        Acquire the microphone, wire the capture graph and greet upstream.

        No-op unless CONNECTED (so also a no-op while already IN_CALL).
        """
        if self.state is not ClientState.CONNECTED:
            return

        try:
            mic = self._microphone_factory()
        except MicrophoneUnavailable as exc:
            self._log("CLIENT_MIC_UNAVAILABLE", error=str(exc))
            self.last_error = str(exc)
            self._notify()
            return

        self._mic = mic
        self._analyser = MicLevelAnalyser()
        self._processor = create_processor(
            MIC_PROCESSOR_NAME,
            sample_rate_hz=mic.sample_rate_hz,
            post_message=self._on_processor_frame,
        )

        try:
            mic.start(self._on_capture_block)
        except MicrophoneUnavailable as exc:
            self._log("CLIENT_MIC_UNAVAILABLE", error=str(exc))
            self.last_error = str(exc)
            self._teardown_graph()
            self._notify()
            return

        self._set_state(ClientState.IN_CALL)
        self._level_task = asyncio.create_task(self._level_loop())

        self._queue_send(json.dumps(self._greeting))

    async def stop_call(self) -> None:
        """
        Tear down the capture graph and reset call indicators.

        Idempotent; safe when no call is active.
        """
        in_call = self.state is ClientState.IN_CALL

        if self._mic is not None:
            self._mic.stop()

        # Frames already posted from the device thread land while still IN_CALL.
        await asyncio.sleep(0)

        # Drain the partial frame while the call still counts as active.
        if self._processor is not None:
            self._processor.on_message(FLUSH_COMMAND)

        if in_call:
            self._queue_send(json.dumps({"control": "audio_stream_end"}))
            self._set_state(ClientState.CONNECTED if self._socket_open else ClientState.DISCONNECTED)

        self._teardown_graph()

        level_task = self._level_task
        self._level_task = None
        if level_task is not None and level_task is not asyncio.current_task():
            level_task.cancel()
            await asyncio.gather(level_task, return_exceptions=True)

        await self._player.stop()
        self.mic_level = 0.0
        self._set_speaking(False)
        self._notify()

    def set_muted(self, muted: bool) -> None:
        self.muted = muted
        self._notify()

    def toggle_muted(self) -> None:
        self.set_muted(not self.muted)

    def set_volume(self, volume: float) -> None:
        self.volume = min(max(float(volume), 0.0), 1.0)
        self._notify()

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def handle_server_message(self, raw: str | bytes) -> None:
        """
        Interpret one relay frame.

        status -> recorded; error -> recorded; otherwise play inline audio
        if present. Anything unparseable is ignored.
        """
        if not isinstance(raw, str):
            return
        try:
            data = json.loads(raw)
        except ValueError:
            return
        if not isinstance(data, dict):
            return

        msg_type = data.get("type")
        if msg_type == STATUS_MESSAGE_TYPE:
            self.last_status = data.get("message")
            self._notify()
            return
        if msg_type == ERROR_MESSAGE_TYPE:
            self.last_error = data.get("message")
            self._log("CLIENT_RELAY_ERROR", message=data.get("message"), detail=data.get("detail"))
            self._notify()
            return

        audio = extract_inline_audio(data, default_mime=CLIENT_PLAYBACK_MIME_DEFAULT)
        if audio is not None:
            self._player.enqueue(audio, volume=self.volume)

    async def wait_for_playback(self) -> None:
        """Wait until all queued audio has played."""
        await self._player.drain()

    async def _receive_loop(self) -> None:
        ws = self._ws
        try:
            async for raw in ws:
                await self.handle_server_message(raw)
        except ConnectionClosed as exc:
            self._log("CLIENT_SOCKET_CLOSED", code=getattr(exc.rcvd, "code", None))
        finally:
            self._socket_open = False
            if self.state is not ClientState.DISCONNECTED:
                self._closing_task = asyncio.get_running_loop().create_task(self._on_socket_closed())

    async def _on_socket_closed(self) -> None:
        if self.state is ClientState.DISCONNECTED:
            return
        self._socket_open = False
        await self.stop_call()
        if self._send_task is not None:
            self._send_task.cancel()
            self._send_task = None
        self._set_state(ClientState.DISCONNECTED)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def _queue_send(self, text: str) -> None:
        if not self._socket_open:
            return
        self._outbox.put_nowait(text)

    async def _send_loop(self) -> None:
        while True:
            text = await self._outbox.get()
            try:
                if self._socket_open:
                    await self._ws.send(text)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                self._log("CLIENT_SEND_FAILED", exception=type(exc).__name__, error=str(exc))
            finally:
                self._outbox.task_done()

    # ------------------------------------------------------------------
    # Capture graph
    # ------------------------------------------------------------------

    def _on_capture_block(self, block: np.ndarray) -> None:
        """Device thread: feed analyser and processor."""
        analyser = self._analyser
        processor = self._processor
        if analyser is not None:
            analyser.push(block)
        if processor is not None:
            processor.process([[block]])

    def _on_processor_frame(self, frame: PcmFrame) -> None:
        """Processor output; hop to the event loop if on the device thread."""
        if threading.get_ident() == self._loop_thread_id:
            self._send_frame(frame)
            return
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(self._send_frame, frame)

    def _send_frame(self, frame: PcmFrame) -> None:
        if self.state is not ClientState.IN_CALL:
            return
        if self.muted:
            return
        self._queue_send(encode_media_message(frame.pcm_bytes, mime_type=frame.mime_type))

    def _teardown_graph(self) -> None:
        self._mic = None
        self._processor = None
        if self._analyser is not None:
            self._analyser.reset()
        self._analyser = None

    async def _level_loop(self) -> None:
        while self.state is ClientState.IN_CALL and self._analyser is not None:
            self.mic_level = self._analyser.level()
            self._notify()
            await asyncio.sleep(MIC_LEVEL_POLL_INTERVAL_S)

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _set_state(self, state: ClientState) -> None:
        if state is self.state:
            return
        self._log("CLIENT_STATE_CHANGED", from_state=self.state.value, to_state=state.value)
        self.state = state
        self._notify()

    def _set_speaking(self, speaking: bool) -> None:
        if speaking == self.speaking:
            return
        self.speaking = speaking
        self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self)

    def _log(self, event_type: str, **details: Any) -> None:
        log_event({
            "ts_ms": now_ms(),
            "event_type": event_type,
            "url": self.url,
            "state": self.state.value,
            **details,
        })
