"""
Terminal voice call against a running relay.

    quest-voice --url ws://localhost:3001/ws/gemini-voice

Connects, starts a call on the default microphone and prints state changes
until Ctrl+C, then ends the call and closes the socket.
"""

from __future__ import annotations

import argparse
import asyncio

from dotenv import load_dotenv

from client.devices import SoundDeviceOutput, acquire_microphone
from client.voice_client import ClientState, VoiceCallClient
from constants import CLIENT_DEFAULT_VOLUME, RELAY_WS_PATH
from observability import logger


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Voice call through the Quest.io relay")
    parser.add_argument(
        "--url",
        default=f"ws://localhost:3001{RELAY_WS_PATH}",
        help="relay WebSocket URL",
    )
    parser.add_argument("--muted", action="store_true", help="start with the microphone muted")
    parser.add_argument("--volume", type=float, default=CLIENT_DEFAULT_VOLUME, help="playback volume 0..1")
    parser.add_argument("--device", default=None, help="sounddevice input device name or index")
    parser.add_argument("--plain-logs", action="store_true", help="human-readable log lines")
    return parser.parse_args(argv)


def _device(value: str | None) -> int | str | None:
    if value is None:
        return None
    return int(value) if value.isdigit() else value


class _StatusPrinter:
    """Prints a line whenever a user-visible field changes."""

    def __init__(self) -> None:
        self._last: tuple[object, ...] | None = None

    def __call__(self, client: VoiceCallClient) -> None:
        snapshot = (
            client.state.value,
            client.muted,
            client.speaking,
            client.last_status,
            client.last_error,
        )
        if snapshot == self._last:
            return
        self._last = snapshot
        state, muted, speaking, status, error = snapshot
        print(
            f"[{state}] muted={muted} speaking={speaking}"
            f" status={status} error={error}",
            flush=True,
        )


async def _run(args: argparse.Namespace) -> None:
    device = _device(args.device)
    client = VoiceCallClient(
        url=args.url,
        microphone_factory=lambda: acquire_microphone(device),
        output=SoundDeviceOutput(),
        on_change=_StatusPrinter(),
    )
    client.set_muted(args.muted)
    client.set_volume(args.volume)

    await client.connect()
    await client.start_call()
    try:
        while client.state is not ClientState.DISCONNECTED:
            await asyncio.sleep(0.25)
    finally:
        await client.close()


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    args = _parse_args(argv)
    logger.configure(enable_json_logs=not args.plain_logs)
    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
