"""
CONSTANTS AS CONTRACT
---------------------
Single source of truth for all behavioral invariants of the voice relay.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# Capture Format (PCM16 mono @ 16kHz, 1024-sample frames)
# =============================================================================

AUDIO_SAMPLE_RATE_HZ: Final[int] = 16_000
AUDIO_CHANNELS: Final[int] = 1
AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit)

CAPTURE_FRAME_SAMPLES: Final[int] = 1024
CAPTURE_FRAME_BYTES: Final[int] = CAPTURE_FRAME_SAMPLES * AUDIO_SAMPLE_WIDTH_BYTES

# Nominal render quantum delivered per capture callback
RENDER_QUANTUM_SAMPLES: Final[int] = 128

# Browser/host capture is typically 48kHz
CAPTURE_SAMPLE_RATE_HZ_DEFAULT: Final[int] = 48_000

# Asymmetric int16 scaling: negatives by 0x8000, non-negatives by 0x7FFF
PCM16_NEGATIVE_SCALE: Final[int] = 0x8000
PCM16_POSITIVE_SCALE: Final[int] = 0x7FFF

# =============================================================================
# Mic Processor Contract
# =============================================================================

MIC_PROCESSOR_NAME: Final[str] = "mic-processor"
FLUSH_COMMAND: Final[str] = "flush"

# =============================================================================
# Relay Wire Contract
# =============================================================================

RELAY_WS_PATH: Final[str] = "/ws/gemini-voice"
RELAY_AUDIO_MIME_TYPE: Final[str] = "audio/pcm;rate=16000"

STATUS_MESSAGE_TYPE: Final[str] = "status"
ERROR_MESSAGE_TYPE: Final[str] = "error"

MISSING_CREDENTIAL_MESSAGE: Final[str] = "Missing GEMINI_API_KEY"
SESSION_OPEN_FAILED_MESSAGE: Final[str] = "Failed to open live session"

# Top-level keys accepted as a generic instruction for the upstream session
GENERIC_INSTRUCTION_KEYS: Final[Tuple[str, ...]] = (
    "contents",
    "turns",
    "clientContent",
    "generationConfig",
    "systemInstruction",
    "toolResponse",
    "text",
    "realtimeInput",
    "turnComplete",
)

# Keys the Live API only honours in the setup message
SETUP_ONLY_KEYS: Final[Tuple[str, ...]] = (
    "generationConfig",
    "systemInstruction",
)

CONTROL_ACTIONS: Final[Tuple[str, ...]] = (
    "audio_stream_end",
    "activity_start",
    "activity_end",
)

# Log previews of client payloads are truncated to this many characters
PAYLOAD_PREVIEW_CHARS: Final[int] = 100

# =============================================================================
# Upstream (Gemini Live) Defaults
# =============================================================================

GEMINI_LIVE_MODEL_DEFAULT: Final[str] = "gemini-2.0-flash-live-001"
GEMINI_API_VERSION_DEFAULT: Final[str] = "v1beta"
GEMINI_RESPONSE_MODALITIES: Final[Tuple[str, ...]] = ("AUDIO",)

# WebSocket close code the SDK reports when the Live session ends cleanly
GEMINI_NORMAL_CLOSE_CODE: Final[int] = 1000

# Native audio output of the Live API
UPSTREAM_OUTPUT_SAMPLE_RATE_HZ: Final[int] = 24_000

# =============================================================================
# Client Behavior
# =============================================================================

CLIENT_GREETING_TEXT: Final[str] = "You are a helpful voice assistant."
CLIENT_GREETING_STOP_SEQUENCES: Final[Tuple[str, ...]] = ("user_says",)

CLIENT_DEFAULT_VOLUME: Final[float] = 1.0
CLIENT_PLAYBACK_MIME_DEFAULT: Final[str] = "audio/mp3"

# Upper bound on flushing queued frames before the socket is closed
CLIENT_CLOSE_DRAIN_TIMEOUT_S: Final[float] = 2.0

# Mic level visualization (mirrors a browser AnalyserNode with fftSize=256)
MIC_LEVEL_FFT_SIZE: Final[int] = 256
MIC_LEVEL_MIN_DB: Final[float] = -100.0
MIC_LEVEL_MAX_DB: Final[float] = -30.0
MIC_LEVEL_NORMALIZER: Final[float] = 128.0
MIC_LEVEL_POLL_INTERVAL_S: Final[float] = 1 / 60
