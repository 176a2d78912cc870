"""
Gemini Live adapter.

Implements LiveProvider / LiveSession on top of the google-genai SDK
(`client.aio.live.connect`).

Role in the system:
- Opens one Live session per relay connection.
- Pumps provider events to LiveCallbacks, serialized as camelCase JSON
  dicts (bytes as base64) so they can be forwarded verbatim.
- Maps relay messages onto the SDK's realtime-input / client-content /
  tool-response calls.

Architectural constraints:
- No retries, no reconnection, no buffering.
- No knowledge of the client WebSocket.
"""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import AsyncExitStack
from typing import Any, TYPE_CHECKING

from google import genai
from google.genai import errors, types

from adapters.live.base import (
    LiveCallbacks,
    LiveProvider,
    LiveSession,
    ProviderConfigurationError,
)
from constants import (
    GEMINI_NORMAL_CLOSE_CODE,
    GEMINI_RESPONSE_MODALITIES,
    SETUP_ONLY_KEYS,
)
from observability.logger import log_event, now_ms

if TYPE_CHECKING:
    from config import AppConfig


def serialize_server_message(message: Any) -> dict[str, Any]:
    """
    Convert an SDK server message into a JSON-safe dict.

    Uses the SDK's camelCase aliases and base64 for bytes, matching the
    Live API wire format.
    """
    return message.model_dump(mode="json", exclude_none=True, by_alias=True)


def build_live_connect_config(config: AppConfig) -> types.LiveConnectConfig:
    """Build the setup config sent when a Live session opens."""
    kwargs: dict[str, Any] = {
        "response_modalities": [types.Modality(m) for m in GEMINI_RESPONSE_MODALITIES],
        "output_audio_transcription": types.AudioTranscriptionConfig(),
    }
    if config.gemini_system_instruction:
        kwargs["system_instruction"] = types.Content(
            parts=[types.Part(text=config.gemini_system_instruction)],
        )
    if config.gemini_voice_name:
        kwargs["speech_config"] = types.SpeechConfig(
            voice_config=types.VoiceConfig(
                prebuilt_voice_config=types.PrebuiltVoiceConfig(
                    voice_name=config.gemini_voice_name,
                ),
            ),
        )
    return types.LiveConnectConfig(**kwargs)


def _as_contents(value: Any) -> list[types.Content]:
    if isinstance(value, list):
        return [types.Content.model_validate(v) for v in value]
    return [types.Content.model_validate(value)]


class GeminiLiveSession(LiveSession):
    """
    One open Gemini Live session.

    Design:
    - One receive task per session
    - Exactly one on_close notification per session
    """

    def __init__(
        self,
        *,
        session: Any,  # Type: google.genai.live.AsyncSession
        exit_stack: AsyncExitStack,
        callbacks: LiveCallbacks,
    ) -> None:
        self._session = session
        self._exit_stack = exit_stack
        self._callbacks = callbacks
        self._closed = False
        self._close_notified = False
        self._recv_task: asyncio.Task[None] | None = None

    def start(self) -> None:
        """Start pumping provider events into the callbacks."""
        if self._recv_task is None:
            self._recv_task = asyncio.create_task(self._pump())

    # ------------------------------------------------------------------
    # Public API (LiveSession contract)
    # ------------------------------------------------------------------

    async def send_realtime_audio(self, data: bytes, *, mime_type: str) -> None:
        await self._session.send_realtime_input(
            audio=types.Blob(data=data, mime_type=mime_type),
        )

    async def send(self, payload: dict[str, Any]) -> None:
        ignored = [k for k in SETUP_ONLY_KEYS if k in payload]
        if ignored:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "LIVE_SETUP_KEYS_IGNORED",
                "keys": ignored,
            })

        client_content = payload.get("clientContent")
        if not isinstance(client_content, dict):
            client_content = {}

        turns = payload.get("turns") or payload.get("contents") or client_content.get("turns")
        turn_complete = bool(
            payload.get("turnComplete", client_content.get("turnComplete", True))
        )

        if turns:
            await self._session.send_client_content(
                turns=_as_contents(turns),
                turn_complete=turn_complete,
            )
        elif isinstance(payload.get("text"), str):
            await self._session.send_client_content(
                turns=types.Content(role="user", parts=[types.Part(text=payload["text"])]),
                turn_complete=turn_complete,
            )

        tool_response = payload.get("toolResponse")
        if isinstance(tool_response, dict):
            await self._session.send_tool_response(
                function_responses=[
                    types.FunctionResponse.model_validate(fr)
                    for fr in tool_response.get("functionResponses", [])
                ],
            )

        realtime = payload.get("realtimeInput")
        if isinstance(realtime, dict) and isinstance(realtime.get("text"), str):
            await self._session.send_realtime_input(text=realtime["text"])

    async def send_control(self, action: str) -> None:
        if action == "audio_stream_end":
            await self._session.send_realtime_input(audio_stream_end=True)
        elif action == "activity_start":
            await self._session.send_realtime_input(activity_start=types.ActivityStart())
        elif action == "activity_end":
            await self._session.send_realtime_input(activity_end=types.ActivityEnd())
        else:
            raise ValueError(f"Unknown control action: {action}")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        task = self._recv_task
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        await self._exit_stack.aclose()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _pump(self) -> None:
        """
        Forward provider events until the connection ends.

        The SDK's receive() iterator ends at each turn boundary, so it is
        re-entered until it yields nothing (connection gone).
        A normal-closure APIError from the SDK counts as a clean end.
        """
        reason = "upstream_ended"
        try:
            while not self._closed:
                received = False
                async for message in self._session.receive():
                    received = True
                    await self._callbacks.on_message(serialize_server_message(message))
                if not received:
                    break
        except asyncio.CancelledError:
            raise
        except errors.APIError as exc:
            if exc.code != GEMINI_NORMAL_CLOSE_CODE:
                reason = "upstream_error"
                await self._callbacks.on_error(f"{type(exc).__name__}: {exc}")
        except Exception as exc:  # pylint: disable=broad-exception-caught
            reason = "upstream_error"
            await self._callbacks.on_error(f"{type(exc).__name__}: {exc}")

        await self._notify_close(reason)

    async def _notify_close(self, reason: str) -> None:
        if self._close_notified:
            return
        self._close_notified = True
        await self._callbacks.on_close({"reason": reason})


class GeminiLiveProvider(LiveProvider):
    """Gemini Live session factory (one per process)."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        api_version: str,
        connect_config: types.LiveConnectConfig,
    ) -> None:
        self._model = model
        self._connect_config = connect_config
        self._client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(api_version=api_version),
        )

    @property
    def model(self) -> str:
        return self._model

    async def open_session(self, *, callbacks: LiveCallbacks) -> LiveSession:
        stack = AsyncExitStack()
        try:
            session = await stack.enter_async_context(
                self._client.aio.live.connect(
                    model=self._model,
                    config=self._connect_config,
                )
            )
        except BaseException:
            await stack.aclose()
            raise

        live = GeminiLiveSession(session=session, exit_stack=stack, callbacks=callbacks)
        await callbacks.on_open()
        live.start()
        return live


def build_live_provider(config: AppConfig) -> GeminiLiveProvider:
    """
    Construct the process-wide live provider.

    Raises:
        ProviderConfigurationError if the credential is absent.
    """
    if not config.has_gemini_credential:
        raise ProviderConfigurationError("GEMINI_API_KEY environment variable not set")

    assert config.gemini_api_key is not None
    return GeminiLiveProvider(
        api_key=config.gemini_api_key,
        model=config.gemini_live_model,
        api_version=config.gemini_api_version,
        connect_config=build_live_connect_config(config),
    )
