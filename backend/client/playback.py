"""
Playback of audio returned by the relay.

- Decodes inline audio (raw PCM16 or a container format) to float32.
- Applies the call volume.
- Plays chunks one after another and drives the "speaking" indicator:
  True when playback starts from idle, False once the queue drains.
"""

from __future__ import annotations

import asyncio
import io
import re
from typing import Callable

import numpy as np
import soundfile as sf

from audio.pcm import pcm16le_to_float32
from client.devices import AudioOutput
from constants import UPSTREAM_OUTPUT_SAMPLE_RATE_HZ
from observability.logger import log_event, now_ms
from protocol.messages import InlineAudio

_RATE_RE = re.compile(r"rate=(\d+)")


def parse_pcm_rate(mime_type: str, default: int = UPSTREAM_OUTPUT_SAMPLE_RATE_HZ) -> int:
    """Read `rate=N` from a PCM MIME tag (e.g. `audio/pcm;rate=24000`)."""
    match = _RATE_RE.search(mime_type)
    if match is None:
        return default
    return int(match.group(1))


def is_raw_pcm(mime_type: str) -> bool:
    base = mime_type.split(";", 1)[0].strip().lower()
    return base in ("audio/pcm", "audio/l16")


def decode_inline_audio(audio: InlineAudio) -> tuple[np.ndarray, int]:
    """
    Decode inline audio to (mono float32 samples, sample rate).

    Raw PCM16 is read directly; anything else goes through libsndfile.
    """
    if is_raw_pcm(audio.mime_type):
        return pcm16le_to_float32(audio.data), parse_pcm_rate(audio.mime_type)

    samples, rate = sf.read(io.BytesIO(audio.data), dtype="float32", always_2d=True)
    return samples.mean(axis=1).astype(np.float32), int(rate)


def apply_volume(samples: np.ndarray, volume: float) -> np.ndarray:
    """Scale samples by volume in [0, 1]."""
    gain = min(max(volume, 0.0), 1.0)
    return (samples * gain).astype(np.float32)


class PlaybackQueue:
    """
    Sequential player for relay audio chunks.

    Design:
    - One worker task, created lazily on first enqueue
    - Decode/playback errors are logged and skipped
    """

    def __init__(
        self,
        *,
        output: AudioOutput,
        on_speaking: Callable[[bool], None],
    ) -> None:
        self._output = output
        self._on_speaking = on_speaking
        self._queue: asyncio.Queue[tuple[InlineAudio, float]] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._speaking = False

    @property
    def speaking(self) -> bool:
        return self._speaking

    def enqueue(self, audio: InlineAudio, *, volume: float) -> None:
        """Queue a chunk for playback at the given volume."""
        self._queue.put_nowait((audio, volume))
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run())

    async def drain(self) -> None:
        """Wait until everything queued so far has played."""
        await self._queue.join()

    async def stop(self) -> None:
        """Drop queued audio, halt the current chunk, clear speaking."""
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

        worker = self._worker
        self._worker = None
        if worker is not None and not worker.done():
            self._output.stop()
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass

        self._set_speaking(False)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        while not self._queue.empty():
            audio, volume = self._queue.get_nowait()
            try:
                self._set_speaking(True)
                samples, rate = decode_inline_audio(audio)
                await self._output.play(apply_volume(samples, volume), rate)
            except asyncio.CancelledError:
                self._queue.task_done()
                raise
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": now_ms(),
                    "event_type": "PLAYBACK_FAILED",
                    "mime_type": audio.mime_type,
                    "exception": type(exc).__name__,
                    "error": str(exc),
                })
            self._queue.task_done()

        self._set_speaking(False)

    def _set_speaking(self, speaking: bool) -> None:
        if speaking == self._speaking:
            return
        self._speaking = speaking
        self._on_speaking(speaking)
