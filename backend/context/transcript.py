"""
Session transcript model.

Responsibilities:
- Define the immutable Message value object
- Append messages to an ordered transcript

Non-responsibilities:
- No reducer logic
- No truncation (the transcript is append-only for the session lifetime)
- No serialization (see context.serialization)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Originator(str, Enum):
    """Who produced a message."""

    USER = "USER"
    ASSISTANT = "ASSISTANT"


@dataclass(frozen=True)
class Message:
    """Single transcript entry. Never mutated once created."""
    id: str
    text: str
    originator: Originator
    timestamp_ms: int


def message_id(seq: int) -> str:
    """Opaque per-session message id."""
    return f"msg_{seq}"


def append_message(
    transcript: tuple[Message, ...],
    *,
    seq: int,
    text: str,
    originator: Originator,
    timestamp_ms: int,
) -> tuple[Message, ...]:
    """
    Return a new transcript with one message appended.

    Invariants:
    - Messages are stored in chronological order
    - Existing entries are never replaced or removed
    """
    return transcript + (
        Message(
            id=message_id(seq),
            text=text,
            originator=originator,
            timestamp_ms=timestamp_ms,
        ),
    )
