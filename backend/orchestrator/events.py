"""
Unified event definitions for the conversation reducer.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- No clocks, no timers, no async, no side effects.

Completion events of asynchronous operations are ServiceEvents and carry the
run_id they were started with, so the reducer can drop stale completions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from orchestrator.enums.service import Service


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (phase, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # Caller operations
    # ------------------------------------------------------------------
    SEND_TEXT = "SEND_TEXT"
    START_LISTENING = "START_LISTENING"
    STOP_LISTENING = "STOP_LISTENING"
    STOP_SPEAKING = "STOP_SPEAKING"

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    SESSION_CLOSED = "SESSION_CLOSED"

    # ------------------------------------------------------------------
    # Speech input
    # ------------------------------------------------------------------
    INPUT_PARTIAL = "INPUT_PARTIAL"
    INPUT_FINAL = "INPUT_FINAL"
    INPUT_ERROR = "INPUT_ERROR"
    INPUT_ENDED = "INPUT_ENDED"

    # ------------------------------------------------------------------
    # Conversation transport
    # ------------------------------------------------------------------
    TRANSPORT_SUCCEEDED = "TRANSPORT_SUCCEEDED"
    TRANSPORT_FAILED = "TRANSPORT_FAILED"

    # ------------------------------------------------------------------
    # Speech output
    # ------------------------------------------------------------------
    OUTPUT_FINISHED = "OUTPUT_FINISHED"
    OUTPUT_RELEASED = "OUTPUT_RELEASED"

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------
    HANDOVER_TIMEOUT = "HANDOVER_TIMEOUT"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: monotonic timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


@dataclass(frozen=True)
class ServiceEvent(Event):
    """
    Base class for events scoped to a versioned asynchronous operation.

    The reducer MUST ignore events whose run_id does not match the
    currently active run for that service.
    """

    service: Service
    run_id: int


# =============================================================================
# Caller Operations
# =============================================================================

@dataclass(frozen=True)
class SendText(Event):
    """Caller submitted typed text."""
    text: str


@dataclass(frozen=True)
class StartListening(Event):
    """Caller (or UI timer) asked to start voice input."""


@dataclass(frozen=True)
class StopListening(Event):
    """Caller stopped voice input."""


@dataclass(frozen=True)
class StopSpeaking(Event):
    """Caller stopped speech output."""


@dataclass(frozen=True)
class SessionClosed(Event):
    """Controller teardown. Every later event is ignored."""


# =============================================================================
# Speech Input Events
# =============================================================================

@dataclass(frozen=True)
class InputPartial(ServiceEvent):
    """
    Partial transcription result.

    May be revised by later partials; never appended to the transcript.
    """
    text: str


@dataclass(frozen=True)
class InputFinal(ServiceEvent):
    """Final transcription result. Used as the user message."""
    text: str


@dataclass(frozen=True)
class InputError(ServiceEvent):
    """Speech recognition failed."""
    reason: str


@dataclass(frozen=True)
class InputEnded(ServiceEvent):
    """Recognition stream ended without a final result or error."""


# =============================================================================
# Transport Events
# =============================================================================

@dataclass(frozen=True)
class TransportSucceeded(ServiceEvent):
    """
    Backend answered.

    text is None when the response carried no extractable text.
    """
    text: str | None


@dataclass(frozen=True)
class TransportFailed(ServiceEvent):
    """Network or backend failure."""
    reason: str


# =============================================================================
# Speech Output Events
# =============================================================================

@dataclass(frozen=True)
class OutputFinished(ServiceEvent):
    """
    Speech output completed.

    success is False on synthesis failure or when playback was stopped.
    """
    success: bool


@dataclass(frozen=True)
class OutputReleased(ServiceEvent):
    """
    Output sink confirmed it released the audio device.

    Scoped to Service.HANDOVER; run_id is the handover run.
    """


# =============================================================================
# Timer Events
# =============================================================================

@dataclass(frozen=True)
class HandoverTimeout(Event):
    """Fallback settling delay elapsed before a release acknowledgment."""
    run_id: int
