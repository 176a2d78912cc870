# pylint: disable=missing-module-docstring,missing-function-docstring

import numpy as np
import pytest

from audio.frames import PcmFrame
from audio.mic_processor import MicProcessor
from audio.worklet import UnknownProcessorError, create_processor, register_processor
from constants import (
    AUDIO_SAMPLE_RATE_HZ,
    CAPTURE_FRAME_BYTES,
    CAPTURE_FRAME_SAMPLES,
    FLUSH_COMMAND,
    MIC_PROCESSOR_NAME,
    RENDER_QUANTUM_SAMPLES,
)


def _feed(processor: MicProcessor, samples: np.ndarray, block: int = RENDER_QUANTUM_SAMPLES) -> None:
    for start in range(0, len(samples), block):
        processor.process([[samples[start : start + block]]])


def _make(sample_rate_hz: float = AUDIO_SAMPLE_RATE_HZ) -> tuple[MicProcessor, list[PcmFrame]]:
    frames: list[PcmFrame] = []
    return MicProcessor(sample_rate_hz=sample_rate_hz, post_message=frames.append), frames


def test_emits_one_frame_per_full_buffer() -> None:
    processor, frames = _make()

    _feed(processor, np.zeros(3000, dtype=np.float32))

    assert len(frames) == 3000 // CAPTURE_FRAME_SAMPLES
    assert processor.pending_samples == 3000 % CAPTURE_FRAME_SAMPLES
    for frame in frames:
        assert len(frame.pcm_bytes) == CAPTURE_FRAME_BYTES
        assert frame.sample_count == CAPTURE_FRAME_SAMPLES
        assert frame.sample_rate_hz == AUDIO_SAMPLE_RATE_HZ


def test_single_large_block_emits_every_complete_frame() -> None:
    processor, frames = _make()

    processor.process([[np.zeros(CAPTURE_FRAME_SAMPLES * 3 + 5, dtype=np.float32)]])

    assert len(frames) == 3
    assert processor.pending_samples == 5


def test_frames_preserve_sample_order_across_blocks() -> None:
    processor, frames = _make()
    ramp = (np.arange(CAPTURE_FRAME_SAMPLES, dtype=np.float32) - 512) / 1024

    _feed(processor, ramp, block=100)

    assert len(frames) == 1
    decoded = np.frombuffer(frames[0].pcm_bytes, dtype="<i2")
    assert decoded[0] == -16384
    assert np.all(np.diff(decoded) >= 0)


def test_samples_outside_unit_range_are_clamped() -> None:
    processor, frames = _make()
    block = np.full(CAPTURE_FRAME_SAMPLES, 3.0, dtype=np.float32)
    block[::2] = -3.0

    processor.process([[block]])

    decoded = np.frombuffer(frames[0].pcm_bytes, dtype="<i2")
    assert decoded.min() == -32768
    assert decoded.max() == 32767


def test_flush_emits_partial_remainder_once() -> None:
    processor, frames = _make()
    processor.process([[np.full(300, 0.25, dtype=np.float32)]])

    processor.on_message(FLUSH_COMMAND)
    processor.on_message(FLUSH_COMMAND)

    assert len(frames) == 1
    assert frames[0].sample_count == 300
    assert processor.pending_samples == 0


def test_flush_with_empty_buffer_posts_nothing() -> None:
    processor, frames = _make()

    processor.on_message(FLUSH_COMMAND)

    assert frames == []


def test_unknown_control_message_is_ignored() -> None:
    processor, frames = _make()
    processor.process([[np.zeros(10, dtype=np.float32)]])

    processor.on_message("reset")
    processor.on_message({"command": "flush"})

    assert frames == []
    assert processor.pending_samples == 10


@pytest.mark.parametrize("inputs", [[], [[]], [None], [[None]], [[np.zeros(0, dtype=np.float32)]]])
def test_missing_input_is_ignored(inputs: list) -> None:
    processor, frames = _make()

    assert processor.process(inputs) is True
    assert frames == []
    assert processor.pending_samples == 0


def test_only_first_channel_is_read() -> None:
    processor, frames = _make()
    left = np.zeros(CAPTURE_FRAME_SAMPLES, dtype=np.float32)
    right = np.ones(CAPTURE_FRAME_SAMPLES, dtype=np.float32)

    processor.process([[left, right]])

    assert frames[0].pcm_bytes == b"\x00\x00" * CAPTURE_FRAME_SAMPLES


def test_downsamples_48k_capture_by_three() -> None:
    processor, frames = _make(48_000)
    assert processor.downsample_ratio == 3.0

    # 128-sample quanta -> 42 output samples each
    _feed(processor, np.zeros(RENDER_QUANTUM_SAMPLES * 10, dtype=np.float32))
    assert frames == []
    assert processor.pending_samples == 420

    _feed(processor, np.zeros(RENDER_QUANTUM_SAMPLES * 15, dtype=np.float32))
    assert len(frames) == 1
    assert processor.pending_samples == 1050 - CAPTURE_FRAME_SAMPLES


def test_low_rate_device_is_passed_through() -> None:
    processor, frames = _make(8_000)

    assert processor.downsample_ratio == 1.0
    processor.process([[np.zeros(CAPTURE_FRAME_SAMPLES, dtype=np.float32)]])
    assert len(frames) == 1


def test_rejects_non_positive_frame_size() -> None:
    with pytest.raises(ValueError):
        MicProcessor(sample_rate_hz=16_000, post_message=lambda f: None, frame_samples=0)


def test_registry_creates_mic_processor_by_name() -> None:
    frames: list[PcmFrame] = []

    processor = create_processor(MIC_PROCESSOR_NAME, sample_rate_hz=48_000, post_message=frames.append)

    assert isinstance(processor, MicProcessor)
    assert processor.downsample_ratio == 3.0


def test_registry_rejects_unknown_name() -> None:
    with pytest.raises(UnknownProcessorError):
        create_processor("not-registered", sample_rate_hz=16_000, post_message=lambda f: None)


def test_registry_accepts_custom_factory() -> None:
    created: list[float] = []

    def factory(*, sample_rate_hz: float, post_message) -> MicProcessor:  # type: ignore[no-untyped-def]
        created.append(sample_rate_hz)
        return MicProcessor(sample_rate_hz=sample_rate_hz, post_message=post_message, frame_samples=4)

    register_processor("tiny-frames", factory)
    frames: list[PcmFrame] = []
    processor = create_processor("tiny-frames", sample_rate_hz=16_000, post_message=frames.append)
    processor.process([[np.zeros(9, dtype=np.float32)]])

    assert created == [16_000]
    assert len(frames) == 2
