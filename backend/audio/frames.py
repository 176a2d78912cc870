"""
Audio frame primitives.

Pure data containers only.
No behavior, no queues, no timing logic.
"""

from __future__ import annotations
from dataclasses import dataclass

from constants import AUDIO_SAMPLE_RATE_HZ, AUDIO_SAMPLE_WIDTH_BYTES


@dataclass(frozen=True)
class PcmFrame:
    """
    A captured PCM16 frame handed from the mic processor to its consumer.

    pcm_bytes:
        Raw PCM16 little-endian mono audio. Immutable; produced fresh for
        each emission so the processor keeps no reference after hand-off.
        Full frames hold CAPTURE_FRAME_SAMPLES samples; a flushed remainder
        may be shorter.

    sample_rate_hz:
        Sample rate of pcm_bytes (16 kHz after decimation).
    """
    pcm_bytes: bytes
    sample_rate_hz: int = AUDIO_SAMPLE_RATE_HZ

    @property
    def sample_count(self) -> int:
        """Number of samples in the frame."""
        return len(self.pcm_bytes) // AUDIO_SAMPLE_WIDTH_BYTES

    @property
    def mime_type(self) -> str:
        """MIME tag describing the frame on the relay wire."""
        return f"audio/pcm;rate={self.sample_rate_hz}"
