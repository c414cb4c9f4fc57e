"""
Structured event logger.

- Write one event per line to stdout
- JSONL by default; key=value text when JSON logs are disabled
- No buffering, no batching
- No side effects beyond logging
"""

from __future__ import annotations

import json
import sys
from typing import Any, Mapping, Callable


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print

_json_lines: bool = True


def configure_logging(*, enable_json_logs: bool) -> None:
    """Select JSONL (machine) or key=value (human) output. Process-wide."""
    global _json_lines  # pylint: disable=global-statement
    _json_lines = enable_json_logs


def _format_text(event: Mapping[str, Any]) -> str:
    head = str(event.get("event_type") or event.get("decision") or "event")
    rest = " ".join(
        f"{key}={json.dumps(value, ensure_ascii=False, default=str)}"
        for key, value in event.items()
        if key != "event_type"
    )
    return f"{head} {rest}".rstrip()


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single structured event.

    The caller is responsible for:
    - Supplying a fully-formed event dict
    - Including ts_ms, session_id, phase, etc. where relevant

    This function:
    - Serializes the event (JSON unless configured otherwise)
    - Writes exactly one line
    - Flushes immediately (no buffering)
    - Never raises
    """
    try:
        if _json_lines:
            line = json.dumps(event, ensure_ascii=False, separators=(",", ":"))
        else:
            line = _format_text(event)
    except (TypeError, ValueError) as e:
        # Last-resort fallback, logging must never crash the runtime
        fallback: dict[str, Any] = {
            "ts_ms": event.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)
