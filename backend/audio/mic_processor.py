"""
Microphone capture processor.

Converts host capture buffers (float samples at the device's native rate)
into mono 16 kHz PCM16 frames of CAPTURE_FRAME_SAMPLES samples.

Runs on the capture thread:
- Never blocks; frames leave through the `post_message` callback.
- Holds no reference to a frame after posting it.
- Control messages arrive through `on_message` (only FLUSH_COMMAND today).

Usage example:

    processor = MicProcessor(sample_rate_hz=48_000, post_message=frames.append)
    processor.process([[block]])        # block: float32 ndarray, channel 0
    processor.on_message("flush")       # drain partial remainder
"""

from __future__ import annotations

from typing import Any, Callable, Sequence

import numpy as np

from audio.frames import PcmFrame
from audio.pcm import decimate, decimation_ratio, float32_to_pcm16le
from constants import (
    AUDIO_SAMPLE_RATE_HZ,
    CAPTURE_FRAME_SAMPLES,
    FLUSH_COMMAND,
)


class MicProcessor:
    """
    Frame accumulator with nearest-neighbour downsampling.

    inputs layout mirrors an audio render callback:
        inputs[input_index][channel_index] -> 1-D float array
    Only inputs[0][0] is read (mono capture from the first channel).
    """

    def __init__(
        self,
        *,
        sample_rate_hz: float,
        post_message: Callable[[PcmFrame], None],
        frame_samples: int = CAPTURE_FRAME_SAMPLES,
    ) -> None:
        if frame_samples <= 0:
            raise ValueError("frame_samples must be > 0")

        self.buffer_size = frame_samples
        self.sample_rate_target = AUDIO_SAMPLE_RATE_HZ
        self._post_message = post_message
        self._acc: np.ndarray = np.zeros(0, dtype=np.float32)
        self._downsample_ratio = decimation_ratio(sample_rate_hz, self.sample_rate_target)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def downsample_ratio(self) -> float:
        return self._downsample_ratio

    @property
    def pending_samples(self) -> int:
        """Samples accumulated but not yet emitted."""
        return int(self._acc.shape[0])

    def on_message(self, data: Any) -> None:
        """Handle a control message from the consumer side."""
        if data == FLUSH_COMMAND:
            self._flush()

    def process(self, inputs: Sequence[Sequence[Any]]) -> bool:
        """
        Consume one capture block.

        Missing inputs or channels are ignored. Always returns True so the
        host keeps the processor alive.
        """
        if not inputs:
            return True
        channels = inputs[0]
        if channels is None or len(channels) == 0:
            return True
        ch0 = channels[0]
        if ch0 is None:
            return True

        samples = np.asarray(ch0, dtype=np.float32).reshape(-1)
        if samples.size == 0:
            return True

        self._append(decimate(samples, self._downsample_ratio))
        return True

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _append(self, chunk: np.ndarray) -> None:
        self._acc = np.concatenate((self._acc, chunk))

        while self._acc.shape[0] >= self.buffer_size:
            emit = self._acc[: self.buffer_size]
            self._acc = self._acc[self.buffer_size :].copy()
            self._post(emit)

    def _flush(self) -> None:
        if self._acc.shape[0] == 0:
            return
        emit = self._acc
        self._acc = np.zeros(0, dtype=np.float32)
        self._post(emit)

    def _post(self, samples: np.ndarray) -> None:
        frame = PcmFrame(
            pcm_bytes=float32_to_pcm16le(samples),
            sample_rate_hz=self.sample_rate_target,
        )
        self._post_message(frame)
