"""PCM conversion utilities."""
from __future__ import annotations

import numpy as np

from constants import PCM16_NEGATIVE_SCALE, PCM16_POSITIVE_SCALE


def pcm16le_to_float32(pcm_bytes: bytes) -> np.ndarray:
    """
    Convert PCM16 little-endian mono bytes to float32 in [-1.0, 1.0).

    No resampling. No channel mixing.
    """
    if len(pcm_bytes) % 2 != 0:
        # Truncated sample; drop the dangling byte.
        pcm_bytes = pcm_bytes[: len(pcm_bytes) - 1]

    audio_i16 = np.frombuffer(pcm_bytes, dtype="<i2")  # little-endian int16
    audio_f32 = audio_i16.astype(np.float32) / 32768.0
    return audio_f32


def float32_to_pcm16le(samples: np.ndarray) -> bytes:
    """
    Convert float samples to PCM16 little-endian bytes.

    Samples are clamped to [-1, 1] first. Negatives scale by 32768 and
    non-negatives by 32767, truncating toward zero, so the result always
    stays within [-32768, 32767].
    """
    s = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(s < 0, s * PCM16_NEGATIVE_SCALE, s * PCM16_POSITIVE_SCALE)
    return np.trunc(scaled).astype("<i2").tobytes()


def decimation_ratio(native_rate_hz: float, target_rate_hz: int) -> float:
    """
    Return native/target, floored at 1.0.

    A device already at or below the target rate is passed through.
    """
    ratio = native_rate_hz / target_rate_hz
    if ratio < 1:
        ratio = 1.0
    return ratio


def decimate(samples: np.ndarray, ratio: float) -> np.ndarray:
    """
    Nearest-neighbour decimation: out[i] = samples[floor(i * ratio)].

    No anti-alias filtering; content above the target Nyquist folds back.
    Returns the input unchanged when ratio <= 1.
    """
    if ratio <= 1:
        return samples

    out_len = int(np.floor(len(samples) / ratio))
    if out_len <= 0:
        return samples[:0]

    idx = np.floor(np.arange(out_len) * ratio).astype(np.int64)
    return samples[idx]
