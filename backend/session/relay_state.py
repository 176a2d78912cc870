"""
Relay connection state.

Lifecycle of one client WebSocket and its (lazily opened) upstream session:
IDLE -> SESSION_PENDING -> ACTIVE -> CLOSED

Failed session creation returns SESSION_PENDING to IDLE.
"""
from enum import Enum


class RelayState(str, Enum):
    """
    Per-connection relay state.

    No behavior; transitions live in VoiceRelay.
    """
    IDLE = "IDLE"                        # Socket open, no upstream session
    SESSION_PENDING = "SESSION_PENDING"  # Session creation in flight
    ACTIVE = "ACTIVE"                    # Bidirectional forwarding
    CLOSED = "CLOSED"                    # Terminal
