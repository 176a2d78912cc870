"""
Mic level analyser for call visualization.

Reproduces a browser AnalyserNode's byte frequency data (Blackman window,
time smoothing, dB mapped onto 0..255) and reduces it to a level in [0, 1]:

    level = min(mean(byte_bins) / 128, 1)
"""

from __future__ import annotations

import threading

import numpy as np

from constants import (
    MIC_LEVEL_FFT_SIZE,
    MIC_LEVEL_MAX_DB,
    MIC_LEVEL_MIN_DB,
    MIC_LEVEL_NORMALIZER,
)

_SMOOTHING = 0.8


class MicLevelAnalyser:
    """
    Holds the most recent fft_size samples and reports their energy.

    push() runs on the capture thread; level() on the event loop.
    """

    def __init__(self, *, fft_size: int = MIC_LEVEL_FFT_SIZE) -> None:
        if fft_size <= 0 or fft_size & (fft_size - 1):
            raise ValueError("fft_size must be a positive power of two")
        self.fft_size = fft_size
        self._window = np.blackman(fft_size).astype(np.float64)
        self._samples = np.zeros(fft_size, dtype=np.float64)
        self._smoothed = np.zeros(fft_size // 2, dtype=np.float64)
        self._lock = threading.Lock()

    @property
    def frequency_bin_count(self) -> int:
        return self.fft_size // 2

    def push(self, block: np.ndarray) -> None:
        """Append captured samples, keeping only the newest fft_size."""
        block = np.asarray(block, dtype=np.float64).reshape(-1)
        if block.size == 0:
            return
        with self._lock:
            if block.size >= self.fft_size:
                self._samples = block[-self.fft_size :].copy()
            else:
                self._samples = np.concatenate((self._samples[block.size :], block))

    def byte_frequency_data(self) -> np.ndarray:
        """Magnitude spectrum as uint8, one value per frequency bin."""
        with self._lock:
            samples = self._samples.copy()

        spectrum = np.fft.rfft(samples * self._window)[: self.frequency_bin_count]
        magnitude = np.abs(spectrum) / self.fft_size
        self._smoothed = _SMOOTHING * self._smoothed + (1 - _SMOOTHING) * magnitude

        with np.errstate(divide="ignore"):
            db = 20 * np.log10(self._smoothed)
        scaled = 255 * (db - MIC_LEVEL_MIN_DB) / (MIC_LEVEL_MAX_DB - MIC_LEVEL_MIN_DB)
        return np.clip(np.nan_to_num(scaled, neginf=0.0), 0, 255).astype(np.uint8)

    def level(self) -> float:
        """Normalized mic level in [0, 1]."""
        data = self.byte_frequency_data()
        return min(float(data.sum()) / len(data) / MIC_LEVEL_NORMALIZER, 1.0)

    def reset(self) -> None:
        with self._lock:
            self._samples = np.zeros(self.fft_size, dtype=np.float64)
        self._smoothed = np.zeros(self.frequency_bin_count, dtype=np.float64)
