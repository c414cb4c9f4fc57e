"""
Conversation session container.

- Owns the adapters and settings a session runs against
- Owns the outbound control queue (server -> client messages)
- Tracks connection status (gateway-controlled)
- NOT a state machine
- Contains no orchestration logic
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, TYPE_CHECKING

from session.connection_status import ConnectionStatus
from spec import DEFAULT_SPEECH_LOCALE

if TYPE_CHECKING:
    from adapters.speech_input.base import SpeechInputSource
    from adapters.speech_output.base import SpeechOutputSink
    from adapters.transport.base import ConversationTransport
    from orchestrator.runtime_context import SettingsProvider


# ---------------------------------------------------------------------
# ConversationSession
# ---------------------------------------------------------------------


@dataclass
class ConversationSession:
    """Mutable runtime container for a single conversation session."""

    # ------------------------------------------------------------------
    # Identity / lifecycle
    # ------------------------------------------------------------------

    session_id: str
    created_at: float = field(default_factory=time.time)
    locale: str = DEFAULT_SPEECH_LOCALE

    # ------------------------------------------------------------------
    # Connection / gateway-controlled state
    # ------------------------------------------------------------------

    connection_status: ConnectionStatus = ConnectionStatus.DOWN

    # ------------------------------------------------------------------
    # Collaborators (concrete, side-effectful)
    # ------------------------------------------------------------------

    speech_input: SpeechInputSource | None = None
    speech_output: SpeechOutputSink | None = None
    transport: ConversationTransport | None = None
    settings: SettingsProvider | None = None

    def __post_init__(self) -> None:
        self._control_out: deque[dict[str, Any]] = deque()
        self._control_ready = asyncio.Event()

    # ------------------------------------------------------------------
    # Wiring helpers
    # ------------------------------------------------------------------

    def attach_speech_input(self, source: SpeechInputSource) -> None:
        """Attach the platform speech recognizer."""
        self.speech_input = source

    def attach_speech_output(self, sink: SpeechOutputSink) -> None:
        """Attach the platform speech synthesizer."""
        self.speech_output = sink

    def attach_transport(self, transport: ConversationTransport) -> None:
        """Attach the conversational backend client."""
        self.transport = transport

    def attach_settings(self, settings: SettingsProvider) -> None:
        """Attach the persisted configuration."""
        self.settings = settings

    # ------------------------------------------------------------------
    # Observability helpers (read-only)
    # ------------------------------------------------------------------

    def log_context(self) -> dict[str, Any]:
        """Standard logging context for this session."""
        return {
            "session_id": self.session_id,
            "connection_status": self.connection_status.value,
        }

    # ------------------------------------------------------------------
    # Outbound control queue
    # ------------------------------------------------------------------

    def enqueue_control(self, msg: dict[str, Any]) -> None:
        """
        Enqueue a control message for delivery to the client.

        Messages are buffered in FIFO order and later retrieved via
        drain_control(). Waiters in wait_control() are woken up.
        """
        self._control_out.append(msg)
        self._control_ready.set()

    def drain_control(self) -> tuple[dict[str, Any], ...]:
        """
        Atomically drain all pending control messages.

        Returns a FIFO-ordered tuple, empty if nothing is pending.
        After this call, the control queue is empty.
        """
        self._control_ready.clear()
        if not self._control_out:
            return ()
        out = tuple(self._control_out)
        self._control_out.clear()
        return out

    async def wait_control(self) -> None:
        """Block until at least one control message is pending."""
        while not self._control_out:
            self._control_ready.clear()
            await self._control_ready.wait()
