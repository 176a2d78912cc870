"""
Host audio devices for the voice call client (sounddevice / PortAudio).

Microphone:
- Delivers mono float32 blocks on the PortAudio callback thread.
- Opens at the device's native rate; the mic processor decimates to 16 kHz.

AudioOutput:
- Plays float32 mono samples; `play` resolves when playback ends.

Failure modes:
- No input device / device busy / no PortAudio: acquire_microphone or
  Microphone.start raises MicrophoneUnavailable.

sounddevice is imported where a device is opened, so hosts without
PortAudio can still import the client.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Protocol

import numpy as np

from constants import (
    AUDIO_CHANNELS,
    CAPTURE_SAMPLE_RATE_HZ_DEFAULT,
    RENDER_QUANTUM_SAMPLES,
)
from observability.logger import log_event, now_ms


CaptureCallback = Callable[[np.ndarray], None]


class MicrophoneUnavailable(RuntimeError):
    """Raised when no usable capture device can be opened."""


class Microphone(Protocol):
    """Capture source used by VoiceCallClient."""

    @property
    def sample_rate_hz(self) -> float: ...

    def start(self, callback: CaptureCallback) -> None: ...

    def stop(self) -> None: ...


class AudioOutput(Protocol):
    """Playback sink used by the playback queue."""

    async def play(self, samples: np.ndarray, sample_rate_hz: int) -> None: ...

    def stop(self) -> None: ...


class SoundDeviceMicrophone:
    """Real-time capture from the default (or given) input device."""

    def __init__(
        self,
        *,
        device: int | str | None = None,
        blocksize: int = RENDER_QUANTUM_SAMPLES,
    ) -> None:
        import sounddevice as sd

        self._device = device
        self._blocksize = blocksize
        self._stream: Any = None  # Type: sounddevice.InputStream

        try:
            info = sd.query_devices(device, kind="input")
        except sd.PortAudioError as e:
            raise MicrophoneUnavailable(str(e)) from e
        self._sample_rate = float(info.get("default_samplerate") or CAPTURE_SAMPLE_RATE_HZ_DEFAULT)

    @property
    def sample_rate_hz(self) -> float:
        return self._sample_rate

    def start(self, callback: CaptureCallback) -> None:
        import sounddevice as sd

        if self._stream is not None:
            return

        def _audio_callback(indata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
            if status:
                log_event({
                    "ts_ms": now_ms(),
                    "event_type": "MIC_CALLBACK_STATUS",
                    "status": str(status),
                    "frames": frames,
                })
            callback(indata[:, 0].copy() if indata.ndim > 1 else indata.copy())

        try:
            self._stream = sd.InputStream(
                samplerate=self._sample_rate,
                channels=AUDIO_CHANNELS,
                dtype="float32",
                blocksize=self._blocksize,
                device=self._device,
                callback=_audio_callback,
            )
            self._stream.start()
        except sd.PortAudioError as e:
            self._stream = None
            raise MicrophoneUnavailable(str(e)) from e

    def stop(self) -> None:
        stream = self._stream
        if stream is None:
            return
        self._stream = None
        stream.stop()
        stream.close()


class SoundDeviceOutput:
    """Blocking sounddevice playback run off the event loop."""

    def __init__(self, *, device: int | str | None = None) -> None:
        self._device = device

    async def play(self, samples: np.ndarray, sample_rate_hz: int) -> None:
        await asyncio.to_thread(self._play_blocking, samples, sample_rate_hz)

    def _play_blocking(self, samples: np.ndarray, sample_rate_hz: int) -> None:
        import sounddevice as sd

        sd.play(samples, samplerate=sample_rate_hz, device=self._device)
        sd.wait()

    def stop(self) -> None:
        import sounddevice as sd

        sd.stop()


def acquire_microphone(device: int | str | None = None) -> SoundDeviceMicrophone:
    """
    Open the capture device.

    Raises:
        MicrophoneUnavailable if PortAudio is missing or no input device
        matches.
    """
    try:
        return SoundDeviceMicrophone(device=device)
    except (OSError, ValueError) as e:
        # OSError: PortAudio library not found at import
        raise MicrophoneUnavailable(str(e)) from e
