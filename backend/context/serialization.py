"""
Session state serialization for the UI.

Responsibilities:
- Convert the immutable session state into a JSON-ready snapshot
  (sent to the client as STATE messages)

Non-responsibilities:
- No internal bookkeeping (run ids, handover flags, queued sends)
- No logging
- No orchestration decisions
"""

from __future__ import annotations

from typing import Any

from context.transcript import Message
from orchestrator.state_dataclass import SessionState


def serialize_message(message: Message) -> dict[str, Any]:
    return {
        "id": message.id,
        "text": message.text,
        "originator": message.originator.value,
        "timestamp_ms": message.timestamp_ms,
    }


def serialize_state(state: SessionState) -> dict[str, Any]:
    """
    Serialize the UI-observable part of the session state.

    Output format:
    {
        "phase": "IDLE" | "LISTENING" | "THINKING" | "SPEAKING",
        "partial_text": "...",
        "last_error": "..." | None,
        "messages": [{"id", "text", "originator", "timestamp_ms"}, ...],
    }

    Messages keep transcript order (oldest first).
    """
    return {
        "phase": state.phase.value,
        "partial_text": state.partial_text,
        "last_error": state.last_error,
        "messages": [serialize_message(m) for m in state.transcript],
    }
