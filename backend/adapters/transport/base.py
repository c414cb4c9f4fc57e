"""
Conversation transport contract.

Purpose:
- Define the interface for submitting text to the conversational backend.
- Keep all orchestration, retries and cancellation semantics OUT of the
  transport.

Rules:
- Failures are returned as values, never raised across this boundary.
- No retries.
- No knowledge of speech, phases, or the transcript.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class TransportResult:
    """
    Outcome of one backend call.

    ok=True:  text holds the extracted response text, or None if the
              response carried none.
    ok=False: error holds a human-readable reason.
    """
    ok: bool
    text: str | None = None
    error: str | None = None

    @staticmethod
    def success(text: str | None) -> TransportResult:
        return TransportResult(ok=True, text=text)

    @staticmethod
    def failure(reason: str) -> TransportResult:
        return TransportResult(ok=False, error=reason)


class ConversationTransport(ABC):
    """
    Abstract base class for conversational backends.

    The transport is a *dumb pipe*: text in -> backend -> text out.
    """

    @abstractmethod
    async def test_connection(self, url: str, token: str | None) -> TransportResult:
        """Check that the backend at url accepts requests with token."""
        raise NotImplementedError

    @abstractmethod
    async def send_message(
        self,
        url: str,
        message: str,
        session_id: str,
        token: str | None,
    ) -> TransportResult:
        """
        Submit one user message.

        Contract:
        - session_id is an opaque correlation token passed through as-is.
        - Must NOT retry internally.
        - Must be cancellable (the runtime cancels the awaiting task).
        """
        raise NotImplementedError
