"""
Authoritative conversation phase enumeration.

Rules:
- This enum defines ONLY the control-plane phases.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in the reducer.
"""

from __future__ import annotations

from enum import Enum


class Phase(str, Enum):
    """
    Conversational activity of a single session.

    Exactly one phase is active at any instant. These represent
    orchestration intent, NOT adapter lifecycles: LISTENING covers both
    the input handover wait and the open recognition stream.
    """

    IDLE = "IDLE"
    LISTENING = "LISTENING"
    THINKING = "THINKING"
    SPEAKING = "SPEAKING"
