"""
Authoritative session state container.

Rules:
- These dataclasses are pure data models.
- SessionState contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from context.transcript import Message
from orchestrator.enums.phase import Phase
from orchestrator.run_ids import RunIds
from spec import DEFAULT_CONTINUOUS_MODE, DEFAULT_TTS_ENABLED


# =============================================================================
# Settings snapshot
# =============================================================================

@dataclass(frozen=True)
class SessionSettings:
    """
    Feature flags consulted by the reducer for one event.

    Read from the settings store by the runtime; the reducer never reads
    configuration on its own.
    """
    tts_enabled: bool = DEFAULT_TTS_ENABLED
    continuous_mode: bool = DEFAULT_CONTINUOUS_MODE


# =============================================================================
# Session State
# =============================================================================

@dataclass(frozen=True)
class SessionState:
    """Immutable snapshot of all controller-owned state."""

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------
    transcript: tuple[Message, ...] = ()
    phase: Phase = Phase.IDLE

    # Meaningful only while LISTENING; cleared on every exit
    partial_text: str = ""

    last_error: str | None = None

    # ------------------------------------------------------------------
    # Turn origin
    # ------------------------------------------------------------------
    # True iff the turn in flight was started by voice input.
    # Read once when speech output completes (continuous-mode restart).
    turn_is_voice: bool = False

    # ------------------------------------------------------------------
    # Run/version tracking
    # ------------------------------------------------------------------
    active_runs: RunIds = field(default_factory=RunIds)

    # ------------------------------------------------------------------
    # LISTENING sub-phases
    # ------------------------------------------------------------------
    # Waiting for the output sink to release the audio device
    handover_pending: bool = False

    # Recognition stream opened for active_runs.input
    input_open: bool = False

    # ------------------------------------------------------------------
    # Serialized sends
    # ------------------------------------------------------------------
    # Texts submitted while THINKING, sent in order after the in-flight
    # response arrives. Their USER messages are already in the transcript.
    pending_sends: tuple[str, ...] = ()

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------
    next_message_seq: int = 1
    closed: bool = False
