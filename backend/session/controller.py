"""
Conversation session controller.

Public face of one conversation session: turns caller operations into
events for the runtime and exposes the observable session state.

All transitions happen in the reducer; this class only translates calls
into events and owns the teardown sequence.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Callable

from adapters.transport.base import ConversationTransport, TransportResult
from observability.logger import log_event
from orchestrator.events import (
    Event,
    EventType,
    SendText,
    SessionClosed,
    StartListening,
    StopListening,
    StopSpeaking,
)
from orchestrator.runtime import Runtime, StateListener
from orchestrator.runtime_context import RuntimeExecutionContext, SettingsProvider
from orchestrator.state_dataclass import SessionState
from session.voice_session import ConversationSession


def _now_ms() -> int:
    return time.monotonic_ns() // 1_000_000


async def verify_connection(
    transport: ConversationTransport,
    settings: SettingsProvider,
    *,
    url: str | None = None,
    token: str | None = None,
) -> TransportResult:
    """
    Probe the webhook; on success store the probed URL/token as verified.

    url/token default to the stored values. Failed probes leave the
    settings untouched.
    """
    target = settings.webhook_url if url is None else url.strip()
    auth = settings.auth_token if token is None else token.strip()

    result = await transport.test_connection(target, auth or None)

    log_event({
        "ts_ms": _now_ms(),
        "event_type": "connection_test",
        "ok": result.ok,
        "error": result.error,
    })
    if result.ok:
        settings.remember_connection(target, auth)
    return result


class ConversationSessionController:
    """
    One controller == one conversation session.

    Construction wires a Runtime to the session's collaborators. The
    session must have speech input, speech output, transport and settings
    attached.
    """

    def __init__(self, *, session: ConversationSession) -> None:
        self.session = session
        self._runtime = Runtime(
            initial_state=SessionState(),
            context=RuntimeExecutionContext(session=session),
        )
        self._closed = False

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        """Current immutable snapshot."""
        return self._runtime.state

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call listener with every new state. Returns an unsubscribe callable."""
        return self._runtime.subscribe(listener)

    async def watch(self) -> AsyncIterator[SessionState]:
        """
        Yield the current state, then every later state.

        Runs until the consumer stops iterating.
        """
        queue: asyncio.Queue[SessionState] = asyncio.Queue()
        unsubscribe = self.subscribe(queue.put_nowait)
        try:
            yield self.state
            while True:
                yield await queue.get()
        finally:
            unsubscribe()

    # ------------------------------------------------------------------
    # Caller operations
    # ------------------------------------------------------------------

    async def send_message(self, text: str) -> None:
        """Submit typed text. Empty or whitespace-only text is ignored."""
        await self._dispatch(SendText(
            event_type=EventType.SEND_TEXT,
            ts_ms=_now_ms(),
            text=text,
        ))

    async def start_listening(self) -> None:
        await self._dispatch(StartListening(
            event_type=EventType.START_LISTENING,
            ts_ms=_now_ms(),
        ))

    async def stop_listening(self) -> None:
        await self._dispatch(StopListening(
            event_type=EventType.STOP_LISTENING,
            ts_ms=_now_ms(),
        ))

    async def stop_speaking(self) -> None:
        await self._dispatch(StopSpeaking(
            event_type=EventType.STOP_SPEAKING,
            ts_ms=_now_ms(),
        ))

    async def test_connection(self) -> TransportResult:
        """Probe the configured webhook."""
        assert self.session.transport is not None, "transport missing"
        assert self.session.settings is not None, "settings missing"
        return await verify_connection(self.session.transport, self.session.settings)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """
        Tear the session down.

        Cancels every in-flight task and timer and destroys the speech
        input. Idempotent.
        """
        if self._closed:
            return
        self._closed = True

        await self._runtime.handle_event(SessionClosed(
            event_type=EventType.SESSION_CLOSED,
            ts_ms=_now_ms(),
        ))
        await self._runtime.shutdown()

        if self.session.speech_input is not None:
            await self.session.speech_input.destroy()

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "SESSION_CLOSED",
            **self.session.log_context(),
        })

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _dispatch(self, event: Event) -> None:
        if self._closed:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "DISPATCH_AFTER_CLOSE",
                "session_id": self.session.session_id,
                "dropped_event": event.event_type.value,
            })
            return
        await self._runtime.handle_event(event)
