"""
Runtime execution shell for a single conversation session.

Responsibilities:
- Own session state
- Call pure reducer
- Execute commands with side effects (speech input/output, transport, timers)
- Run one task per service run and convert its outcome into events
- Schedule and cancel timers
- Publish state changes to subscribers
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from contextlib import aclosing
from typing import TYPE_CHECKING

from adapters.speech_input.base import SpeechError, SpeechFinal, SpeechPartial
from adapters.transport.base import TransportResult
from orchestrator.reducer import reduce
from orchestrator.commands import (
    Command,
    CancelRelease,
    CancelTimer,
    CancelTransport,
    LogEvent,
    ReleaseOutput,
    StartInput,
    StartOutput,
    StartTimer,
    StartTransport,
    StopInput,
    StopOutput,
)
from orchestrator.enums.service import Service
from orchestrator.events import (
    Event,
    EventType,
    HandoverTimeout,
    InputEnded,
    InputError,
    InputFinal,
    InputPartial,
    OutputFinished,
    OutputReleased,
    TransportFailed,
    TransportSucceeded,
)
from orchestrator.state_dataclass import SessionState
from orchestrator.cancellation import CancellationManager

from observability.logger import log_event
from observability.metrics import timed


if TYPE_CHECKING:
    from orchestrator.runtime_context import RuntimeExecutionContext


StateListener = Callable[[SessionState], None]


def _now_ms() -> int:
    return time.monotonic_ns() // 1_000_000


def _reason(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class Runtime:
    """
    Runtime execution boundary for a single conversation session.

    Responsibilities:
    - Own the authoritative session state
    - Act as the universal event sink for the session
      (caller operations, adapter outcomes, timer events)
    - Invoke the pure reducer deterministically
    - Execute emitted commands with side effects
    - Schedule and cancel timers
    - Convert timer expiry into events

    Architectural role:
    Runtime is the bridge between the pure orchestration layer
    (reducer + immutable state) and the imperative world
    (adapters, logging, IO, time).

    Guarantees:
    - Reducer is always called exactly once per incoming event
    - State is swapped in and published before any side effect runs
    - Runtime never performs orchestration logic itself
    - Service tasks and timers emit events back into handle_event
      (single entry point)
    """

    def __init__(
        self,
        *,
        initial_state: SessionState,
        context: RuntimeExecutionContext,
    ) -> None:
        self._state = initial_state
        self._ctx = context
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._listeners: list[StateListener] = []
        self._tasks = CancellationManager(session_id=context.session_id)

    @property
    def state(self) -> SessionState:
        """
        Return the current immutable session state.

        Consumers must never modify this state directly; it only changes
        through the reducer.
        """
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register a state listener.

        The listener is called synchronously with every new state.
        Returns a callable that removes the listener.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def handle_event(self, event: Event) -> None:
        """
        Process a single event through the orchestration pipeline.

        Processing steps:
        1. Pass the current state, the event and the current settings to
           the pure reducer
        2. Swap in the new state and publish it if it changed
        3. Execute all emitted commands sequentially

        All event sources converge here:
        - Controller (caller operations, teardown)
        - Service tasks (recognition results, responses, playback outcome)
        - Timers (handover fallback)
        """
        settings = self._ctx.settings.snapshot()
        new_state, commands = reduce(self._state, event, settings)

        changed = new_state != self._state
        self._state = new_state
        if changed:
            self._publish(new_state)

        for cmd in commands:
            await self._execute_command(cmd)

    async def shutdown(self) -> None:
        """
        Clean shutdown of runtime.

        Cancels all in-flight timers and service tasks and waits for them
        to complete. Called by the controller on close.
        """
        timers = [t for t in self._timers.values() if t is not asyncio.current_task()]
        for timer_id in list(self._timers.keys()):
            self._cancel_timer(timer_id)

        await self._tasks.clear_all()

        if timers:
            await asyncio.gather(*timers, return_exceptions=True)

        self._listeners.clear()

    # ------------------------------------------------------------------
    # State publication
    # ------------------------------------------------------------------

    def _publish(self, state: SessionState) -> None:
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "STATE_LISTENER_FAILED",
                    "session_id": self._ctx.session_id,
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })

    # ------------------------------------------------------------------
    # Command execution (side effects)
    # ------------------------------------------------------------------

    async def _execute_command(self, cmd: Command) -> None:
        """Execute a single command with side effects."""

        if isinstance(cmd, LogEvent):
            log_event({
                **cmd.event,
                "session_id": self._ctx.session_id,
            })

        elif isinstance(cmd, StartInput):
            # A previous stream must be closed before the next one opens
            if self._tasks.cancel(Service.INPUT):
                await self._ctx.speech_input.stop()

            self._tasks.start(
                service=Service.INPUT,
                run_id=cmd.run_id,
                coro=self._run_input(cmd.run_id),
            )

        elif isinstance(cmd, StopInput):
            self._tasks.cancel(Service.INPUT)
            await self._ctx.speech_input.stop()
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "INPUT_STOP_EXECUTED",
                "session_id": self._ctx.session_id,
                "input_run_id": cmd.run_id,
            })

        elif isinstance(cmd, StartTransport):
            self._tasks.start(
                service=Service.TRANSPORT,
                run_id=cmd.run_id,
                coro=self._run_transport(cmd.run_id, cmd.text),
            )

        elif isinstance(cmd, CancelTransport):
            self._tasks.cancel(Service.TRANSPORT)
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "TRANSPORT_CANCEL_EXECUTED",
                "session_id": self._ctx.session_id,
                "transport_run_id": cmd.run_id,
            })

        elif isinstance(cmd, StartOutput):
            self._tasks.start(
                service=Service.OUTPUT,
                run_id=cmd.run_id,
                coro=self._run_output(cmd.run_id, cmd.text),
            )

        elif isinstance(cmd, StopOutput):
            self._tasks.cancel(Service.OUTPUT)
            await self._ctx.speech_output.stop()
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "OUTPUT_STOP_EXECUTED",
                "session_id": self._ctx.session_id,
                "output_run_id": cmd.run_id,
            })

        elif isinstance(cmd, ReleaseOutput):
            self._tasks.start(
                service=Service.HANDOVER,
                run_id=cmd.run_id,
                coro=self._run_release(cmd.run_id),
            )

        elif isinstance(cmd, CancelRelease):
            self._tasks.cancel(Service.HANDOVER)
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "RELEASE_CANCEL_EXECUTED",
                "session_id": self._ctx.session_id,
                "handover_run_id": cmd.run_id,
            })

        elif isinstance(cmd, StartTimer):
            self._start_timer(
                timer_id=cmd.timer_id,
                duration_ms=cmd.duration_ms,
                timeout_event_type=cmd.timeout_event_type,
            )

        elif isinstance(cmd, CancelTimer):
            self._cancel_timer(cmd.timer_id)

        else:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "COMMAND_NOT_IMPLEMENTED",
                "session_id": self._ctx.session_id,
                "command_type": type(cmd).__name__,
            })

    # ------------------------------------------------------------------
    # Service tasks
    # ------------------------------------------------------------------

    async def _run_input(self, run_id: int) -> None:
        """
        Consume one recognition stream and report it as events.

        Ends after the first terminal result. A stream that ends without
        one is reported as InputEnded.
        """
        source = self._ctx.speech_input

        try:
            async with aclosing(source.listen(self._ctx.locale)) as results:
                async for result in results:
                    if isinstance(result, SpeechPartial):
                        await self.handle_event(InputPartial(
                            event_type=EventType.INPUT_PARTIAL,
                            ts_ms=_now_ms(),
                            service=Service.INPUT,
                            run_id=run_id,
                            text=result.text,
                        ))

                    elif isinstance(result, SpeechFinal):
                        await self.handle_event(InputFinal(
                            event_type=EventType.INPUT_FINAL,
                            ts_ms=_now_ms(),
                            service=Service.INPUT,
                            run_id=run_id,
                            text=result.text,
                        ))
                        return

                    elif isinstance(result, SpeechError):
                        await self.handle_event(InputError(
                            event_type=EventType.INPUT_ERROR,
                            ts_ms=_now_ms(),
                            service=Service.INPUT,
                            run_id=run_id,
                            reason=result.message,
                        ))
                        return

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "input_stream_failed",
                "session_id": self._ctx.session_id,
                "input_run_id": run_id,
                "exception": type(exc).__name__,
            })
            await self.handle_event(InputError(
                event_type=EventType.INPUT_ERROR,
                ts_ms=_now_ms(),
                service=Service.INPUT,
                run_id=run_id,
                reason=_reason(exc),
            ))
            return

        await self.handle_event(InputEnded(
            event_type=EventType.INPUT_ENDED,
            ts_ms=_now_ms(),
            service=Service.INPUT,
            run_id=run_id,
        ))

    async def _run_transport(self, run_id: int, text: str) -> None:
        """Submit one message and report the outcome."""
        settings = self._ctx.settings

        with timed(
            "transport_round_trip",
            session_id=self._ctx.session_id,
            details={"transport_run_id": run_id},
        ):
            try:
                result = await self._ctx.transport.send_message(
                    settings.webhook_url,
                    text,
                    settings.session_id,
                    settings.auth_token or None,
                )
            except Exception as exc:  # pylint: disable=broad-exception-caught
                result = TransportResult.failure(_reason(exc))

        if result.ok:
            await self.handle_event(TransportSucceeded(
                event_type=EventType.TRANSPORT_SUCCEEDED,
                ts_ms=_now_ms(),
                service=Service.TRANSPORT,
                run_id=run_id,
                text=result.text,
            ))
        else:
            await self.handle_event(TransportFailed(
                event_type=EventType.TRANSPORT_FAILED,
                ts_ms=_now_ms(),
                service=Service.TRANSPORT,
                run_id=run_id,
                reason=result.error or "unknown error",
            ))

    async def _run_output(self, run_id: int, text: str) -> None:
        """Speak one response and report whether playback completed."""
        try:
            with timed(
                "speech_output",
                session_id=self._ctx.session_id,
                details={"output_run_id": run_id},
            ):
                success = await self._ctx.speech_output.speak(text)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "speech_output_failed",
                "session_id": self._ctx.session_id,
                "output_run_id": run_id,
                "exception": type(exc).__name__,
                "reason": _reason(exc),
            })
            success = False

        await self.handle_event(OutputFinished(
            event_type=EventType.OUTPUT_FINISHED,
            ts_ms=_now_ms(),
            service=Service.OUTPUT,
            run_id=run_id,
            success=success,
        ))

    async def _run_release(self, run_id: int) -> None:
        """
        Ask the output sink to release the audio device.

        Only a confirmed release produces an event; otherwise the
        handover fallback timer completes the handover.
        """
        try:
            confirmed = await self._ctx.speech_output.release()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "output_release_failed",
                "session_id": self._ctx.session_id,
                "handover_run_id": run_id,
                "exception": type(exc).__name__,
            })
            return

        if confirmed:
            await self.handle_event(OutputReleased(
                event_type=EventType.OUTPUT_RELEASED,
                ts_ms=_now_ms(),
                service=Service.HANDOVER,
                run_id=run_id,
            ))

    # ------------------------------------------------------------------
    # Timer management
    # ------------------------------------------------------------------

    def _start_timer(
        self,
        *,
        timer_id: str,
        duration_ms: int,
        timeout_event_type: EventType,
    ) -> None:
        """
        Start or replace a timer that emits a timeout event.

        Timer tasks re-enter handle_event() when they expire,
        maintaining the single event entry point invariant.
        """
        self._cancel_timer(timer_id)

        async def _timer_task() -> None:
            try:
                await asyncio.sleep(duration_ms / 1000.0)
            except asyncio.CancelledError:
                return

            if self._timers.get(timer_id) is asyncio.current_task():
                del self._timers[timer_id]

            event = self._construct_timeout_event(
                timer_id=timer_id,
                timeout_event_type=timeout_event_type,
            )
            await self.handle_event(event)

        self._timers[timer_id] = asyncio.create_task(_timer_task())

    def _cancel_timer(self, timer_id: str) -> None:
        """
        Cancel an in-flight timer if it exists.

        Idempotent: safe to call even if timer doesn't exist.
        """
        task = self._timers.pop(timer_id, None)
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            return
        task.cancel()

    def _construct_timeout_event(
        self,
        *,
        timer_id: str,
        timeout_event_type: EventType,
    ) -> Event:
        """
        Construct the timeout event for an expired timer.

        The reducer emits timer commands with just the EventType; the
        runtime injects the current run id and timestamp.
        """
        if timeout_event_type is EventType.HANDOVER_TIMEOUT:
            return HandoverTimeout(
                event_type=EventType.HANDOVER_TIMEOUT,
                ts_ms=_now_ms(),
                run_id=self._state.active_runs.handover,
            )

        raise ValueError(
            f"Unknown timeout event type: {timeout_event_type} "
            f"for timer_id: {timer_id}"
        )
