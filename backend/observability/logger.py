"""
JSONL event logger.

- Write one JSON object per line
- Output to stdout
- No buffering, no batching
- No side effects beyond logging
"""

from __future__ import annotations

import json
import sys
import time
from typing import Any, Mapping, Callable


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print

_json_lines: bool = True


def configure(*, enable_json_logs: bool) -> None:
    """
    Select the output format.

    JSONL is the default; plain mode renders `EVENT_TYPE key=value ...`
    for local development.
    """
    global _json_lines  # pylint: disable=global-statement
    _json_lines = enable_json_logs


def now_ms() -> int:
    """Wall-clock milliseconds for event timestamps."""
    return time.time_ns() // 1_000_000


def _plain(event: Mapping[str, Any]) -> str:
    head = str(event.get("event_type", "EVENT"))
    rest = " ".join(
        f"{k}={v}" for k, v in event.items() if k != "event_type"
    )
    return f"{head} {rest}".rstrip()


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single event line to stdout.

    The caller is responsible for:
    - Supplying a fully-formed event dict
    - Including ts_ms, connection_id, state, etc.

    This function:
    - Serializes to JSON (or plain text when configured)
    - Writes exactly one line
    - Flushes immediately (no buffering)
    - Never raises
    """
    if not _json_lines:
        _print(_plain(event))
        return

    try:
        line = json.dumps(event, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        # Last-resort fallback: logging must never crash the relay
        fallback: dict[str, Any] = {
            "ts_ms": event.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)
