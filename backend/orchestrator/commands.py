"""
Side-effect command definitions for the orchestrator.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the runtime.
- No behavior, no async, no I/O, no clocks.
- Reducer logic remains pure and deterministic.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
    - Commands are immutable value objects emitted by the reducer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from orchestrator.events import EventType

# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    These are stable discriminants used for logging, replay,
    and runtime dispatch.
    """

    # Speech input
    START_INPUT = "START_INPUT"
    STOP_INPUT = "STOP_INPUT"

    # Conversation transport
    START_TRANSPORT = "START_TRANSPORT"
    CANCEL_TRANSPORT = "CANCEL_TRANSPORT"

    # Speech output
    START_OUTPUT = "START_OUTPUT"
    STOP_OUTPUT = "STOP_OUTPUT"
    RELEASE_OUTPUT = "RELEASE_OUTPUT"
    CANCEL_RELEASE = "CANCEL_RELEASE"

    # Timers
    START_TIMER = "START_TIMER"
    CANCEL_TIMER = "CANCEL_TIMER"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Speech Input Commands
# =============================================================================

@dataclass(frozen=True)
class StartInput(Command):
    """Request to open a new recognition stream."""
    run_id: int
    command_type: CommandType = CommandType.START_INPUT


@dataclass(frozen=True)
class StopInput(Command):
    """Request to cancel the active recognition stream."""
    run_id: int
    command_type: CommandType = CommandType.STOP_INPUT


# =============================================================================
# Transport Commands
# =============================================================================

@dataclass(frozen=True)
class StartTransport(Command):
    """Request to submit text to the conversational backend."""
    run_id: int
    text: str
    command_type: CommandType = CommandType.START_TRANSPORT


@dataclass(frozen=True)
class CancelTransport(Command):
    """Request to cancel an in-flight backend request."""
    run_id: int
    command_type: CommandType = CommandType.CANCEL_TRANSPORT


# =============================================================================
# Speech Output Commands
# =============================================================================

@dataclass(frozen=True)
class StartOutput(Command):
    """
    Request to speak text.

    The runtime must emit exactly one OutputFinished for this run_id
    unless the run is stopped first.
    """
    run_id: int
    text: str
    command_type: CommandType = CommandType.START_OUTPUT


@dataclass(frozen=True)
class StopOutput(Command):
    """Request to stop in-flight playback."""
    run_id: int
    command_type: CommandType = CommandType.STOP_OUTPUT


@dataclass(frozen=True)
class ReleaseOutput(Command):
    """
    Request that the output sink release the audio device.

    run_id is the handover run; a confirmed release is reported back as
    OutputReleased(run_id).
    """
    run_id: int
    command_type: CommandType = CommandType.RELEASE_OUTPUT


@dataclass(frozen=True)
class CancelRelease(Command):
    """Request to abandon a pending release once the handover is over."""
    run_id: int
    command_type: CommandType = CommandType.CANCEL_RELEASE


# =============================================================================
# Timer Commands
# =============================================================================

@dataclass(frozen=True)
class StartTimer(Command):
    """
    Request to start a named timer.

    On expiration, the runtime must inject the specified timeout event.
    Starting a timer with an id that is already running replaces it.
    """
    timer_id: str
    duration_ms: int
    timeout_event_type: EventType
    command_type: CommandType = CommandType.START_TIMER


@dataclass(frozen=True)
class CancelTimer(Command):
    """Request to cancel a previously scheduled timer."""
    timer_id: str
    command_type: CommandType = CommandType.CANCEL_TIMER


# =============================================================================
# Observability Commands
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
