"""
Service enumeration for run-id versioned asynchronous operations.

Rules:
- This enum identifies versioned operations only.
- It must NOT encode behavior or lifecycle rules.
- Reducer logic decides how services are started, canceled, and reset.
"""

from __future__ import annotations

from enum import Enum


class Service(str, Enum):
    """
    Asynchronous operations managed by the orchestrator.

    Each service:
    - Has at most one active run at a time
    - Is identified by a monotonically increasing run_id

    HANDOVER is the wait for the speech output to release the audio
    device before a recognition stream is opened.
    """

    INPUT = "INPUT"
    TRANSPORT = "TRANSPORT"
    OUTPUT = "OUTPUT"
    HANDOVER = "HANDOVER"
