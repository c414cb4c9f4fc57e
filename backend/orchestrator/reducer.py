"""
Pure conversation reducer.

(state, event, settings) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (phase, event) pair is handled or explicitly ignored (logged).
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from context.transcript import Originator, append_message
from orchestrator.commands import (
    CancelRelease,
    CancelTimer,
    CancelTransport,
    Command,
    LogEvent,
    ReleaseOutput,
    StartInput,
    StartOutput,
    StartTimer,
    StartTransport,
    StopInput,
    StopOutput,
)
from orchestrator.enums.phase import Phase
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
    SendText,
    ServiceEvent,
    SessionClosed,
    StartListening,
    StopListening,
    StopSpeaking,
    TransportFailed,
    TransportSucceeded,
)
from orchestrator.run_ids import RunIds
from orchestrator.state_dataclass import SessionSettings, SessionState
from spec import (
    INPUT_HANDOVER_DELAY_MS,
    NO_RESPONSE_PLACEHOLDER,
    RESTART_HANDOVER_DELAY_MS,
    TRANSPORT_ERROR_PREFIX,
)


# =============================================================================
# Invariants
# =============================================================================
# - Exactly one phase is active; every transition happens in this module
# - Run IDs are bumped ONLY on a new start; cancellation never bumps
# - Completions carrying a non-active run_id are ignored
# - partial_text is "" whenever phase is not LISTENING
# - No automatic retries

# =============================================================================
# Timer IDs
# =============================================================================

TIMER_HANDOVER = "output_handover"

_DEFAULT_SETTINGS = SessionSettings()


# =============================================================================
# Small helpers
# =============================================================================

def _bump_run_id(active_runs: RunIds, service: Service) -> RunIds:
    if service is Service.INPUT:
        return replace(active_runs, input=active_runs.input + 1)
    if service is Service.TRANSPORT:
        return replace(active_runs, transport=active_runs.transport + 1)
    if service is Service.OUTPUT:
        return replace(active_runs, output=active_runs.output + 1)
    if service is Service.HANDOVER:
        return replace(active_runs, handover=active_runs.handover + 1)
    raise ValueError(service)


def active_run_for(active_runs: RunIds, service: Service) -> int:
    """Return the active run id for a service."""
    if service is Service.INPUT:
        return active_runs.input
    if service is Service.TRANSPORT:
        return active_runs.transport
    if service is Service.OUTPUT:
        return active_runs.output
    if service is Service.HANDOVER:
        return active_runs.handover
    raise ValueError(service)


def _log(
    state: SessionState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "phase": state.phase.value,
            "event_type": event.event_type.value,
            "decision": decision,
            "run_ids": {
                "input": state.active_runs.input,
                "transport": state.active_runs.transport,
                "output": state.active_runs.output,
                "handover": state.active_runs.handover,
            },
            "turn_is_voice": state.turn_is_voice,
            "details": details or {},
        }
    )


def _logs_last(commands: tuple[Command, ...]) -> tuple[Command, ...]:
    non_logs: list[Command] = []
    logs: list[Command] = []
    state_change_logs: list[Command] = []

    for command in commands:
        if isinstance(command, LogEvent):
            if command.event.get("decision") == "state_changed":
                state_change_logs.append(command)
            else:
                logs.append(command)
        else:
            non_logs.append(command)

    return tuple(non_logs + logs + state_change_logs)


def _ignore(
    state: SessionState, event: Event, reason: str
) -> tuple[SessionState, tuple[Command, ...]]:
    return state, (_log(state, event, "ignore", {"reason": reason}),)


def _phase_changed(
    prev: SessionState,
    new_state: SessionState,
    event: Event,
    source: str,
) -> tuple[Command, ...]:
    if prev.phase is new_state.phase:
        return ()
    return (
        _log(
            new_state,
            event,
            "state_changed",
            {
                "from_phase": prev.phase.value,
                "to_phase": new_state.phase.value,
                "source": source,
            },
        ),
    )


def _append(
    state: SessionState,
    event: Event,
    text: str,
    originator: Originator,
) -> SessionState:
    return replace(
        state,
        transcript=append_message(
            state.transcript,
            seq=state.next_message_seq,
            text=text,
            originator=originator,
            timestamp_ms=event.ts_ms,
        ),
        next_message_seq=state.next_message_seq + 1,
    )


# =============================================================================
# Phase-entry helpers (state + commands, no logging of phase change)
# =============================================================================

def _leave_listening(state: SessionState) -> tuple[SessionState, list[Command]]:
    """
    Tear down whatever LISTENING sub-phase is active.

    Cancels the open recognition stream and/or the pending handover.
    Partial text is discarded.
    """
    cmds: list[Command] = []
    if state.input_open:
        cmds.append(StopInput(run_id=state.active_runs.input))
    if state.handover_pending:
        cmds.append(CancelTimer(timer_id=TIMER_HANDOVER))
        cmds.append(CancelRelease(run_id=state.active_runs.handover))

    return replace(
        state,
        input_open=False,
        handover_pending=False,
        partial_text="",
    ), cmds


def _open_input(
    state: SessionState, event: Event
) -> tuple[SessionState, list[Command]]:
    runs = _bump_run_id(state.active_runs, Service.INPUT)
    new_state = replace(
        state,
        phase=Phase.LISTENING,
        active_runs=runs,
        input_open=True,
        handover_pending=False,
        partial_text="",
    )
    return new_state, [
        StartInput(run_id=runs.input),
        _log(new_state, event, "open_input", {"input_run_id": runs.input}),
    ]


def _begin_handover(
    state: SessionState,
    event: Event,
    delay_ms: int,
    source: str,
) -> tuple[SessionState, list[Command]]:
    """
    Enter LISTENING with the input stream deferred until the output sink
    releases the audio device (or the fallback delay elapses).
    """
    runs = _bump_run_id(state.active_runs, Service.HANDOVER)
    new_state = replace(
        state,
        phase=Phase.LISTENING,
        active_runs=runs,
        handover_pending=True,
        input_open=False,
        partial_text="",
        turn_is_voice=True,
    )
    return new_state, [
        ReleaseOutput(run_id=runs.handover),
        StartTimer(
            timer_id=TIMER_HANDOVER,
            duration_ms=delay_ms,
            timeout_event_type=EventType.HANDOVER_TIMEOUT,
        ),
        _log(
            new_state,
            event,
            "begin_handover",
            {
                "handover_run_id": runs.handover,
                "delay_ms": delay_ms,
                "source": source,
            },
        ),
    ]


def _start_transport(
    state: SessionState, event: Event, text: str
) -> tuple[SessionState, list[Command]]:
    runs = _bump_run_id(state.active_runs, Service.TRANSPORT)
    new_state = replace(state, phase=Phase.THINKING, active_runs=runs)
    return new_state, [
        StartTransport(run_id=runs.transport, text=text),
        _log(
            new_state,
            event,
            "start_transport",
            {"transport_run_id": runs.transport, "text_len": len(text)},
        ),
    ]


def _submit(
    prev: SessionState,
    state: SessionState,
    event: Event,
    text: str,
    *,
    from_voice: bool,
) -> tuple[SessionState, tuple[Command, ...]]:
    """
    Append the USER message, then send it or queue it behind the
    in-flight request.

    prev is the state before the event (for phase-change logging);
    state may already carry event-specific updates.
    """
    new_state = _append(state, event, text, Originator.USER)

    if new_state.phase is Phase.THINKING:
        new_state = replace(
            new_state,
            pending_sends=new_state.pending_sends + (text,),
        )
        return new_state, (
            _log(
                new_state,
                event,
                "queue_send",
                {"queued": len(new_state.pending_sends)},
            ),
        )

    cmds: list[Command] = []
    if new_state.phase is Phase.LISTENING:
        new_state, more = _leave_listening(new_state)
        cmds.extend(more)
    elif new_state.phase is Phase.SPEAKING:
        cmds.append(StopOutput(run_id=new_state.active_runs.output))

    new_state = replace(new_state, turn_is_voice=from_voice)
    new_state, more = _start_transport(new_state, event, text)
    cmds.extend(more)

    source = "input_final" if from_voice else "send_text"
    return new_state, _logs_last(
        tuple(cmds) + _phase_changed(prev, new_state, event, source)
    )


def _finish_thinking(
    state: SessionState, event: Event, source: str
) -> tuple[SessionState, list[Command]] | None:
    """
    Start the next queued send, if any.

    Returns None when the queue is empty.
    """
    if not state.pending_sends:
        return None

    next_text, rest = state.pending_sends[0], state.pending_sends[1:]
    new_state = replace(state, pending_sends=rest, turn_is_voice=False)
    new_state, cmds = _start_transport(new_state, event, next_text)
    cmds.append(
        _log(
            new_state,
            event,
            "send_next_queued",
            {"remaining": len(rest), "source": source},
        )
    )
    return new_state, cmds


# =============================================================================
# Caller operations
# =============================================================================

def _on_send_text(
    state: SessionState, event: SendText
) -> tuple[SessionState, tuple[Command, ...]]:
    if not event.text.strip():
        return _ignore(state, event, "empty_text")
    return _submit(state, state, event, event.text, from_voice=False)


def _on_start_listening(
    state: SessionState, event: StartListening
) -> tuple[SessionState, tuple[Command, ...]]:
    if state.phase is Phase.LISTENING:
        return _ignore(state, event, "already_listening")

    if state.phase is Phase.THINKING:
        return _ignore(state, event, "thinking")

    if state.phase is Phase.SPEAKING:
        new_state, cmds = _begin_handover(
            state, event, INPUT_HANDOVER_DELAY_MS, source="start_listening"
        )
        cmds.insert(0, StopOutput(run_id=state.active_runs.output))
        return new_state, _logs_last(
            tuple(cmds) + _phase_changed(state, new_state, event, "start_listening")
        )

    new_state = replace(state, turn_is_voice=True)
    new_state, cmds = _open_input(new_state, event)
    return new_state, _logs_last(
        tuple(cmds) + _phase_changed(state, new_state, event, "start_listening")
    )


def _on_stop_listening(
    state: SessionState, event: StopListening
) -> tuple[SessionState, tuple[Command, ...]]:
    if state.phase is not Phase.LISTENING:
        new_state = replace(state, turn_is_voice=False)
        return new_state, (_log(new_state, event, "stop_listening_noop"),)

    new_state, cmds = _leave_listening(state)
    new_state = replace(new_state, phase=Phase.IDLE, turn_is_voice=False)
    return new_state, _logs_last(
        tuple(cmds)
        + (_log(new_state, event, "stop_listening"),)
        + _phase_changed(state, new_state, event, "stop_listening")
    )


def _on_stop_speaking(
    state: SessionState, event: StopSpeaking
) -> tuple[SessionState, tuple[Command, ...]]:
    if state.phase is not Phase.SPEAKING:
        new_state = replace(state, turn_is_voice=False)
        return new_state, (_log(new_state, event, "stop_speaking_noop"),)

    new_state = replace(state, phase=Phase.IDLE, turn_is_voice=False)
    return new_state, _logs_last((
        StopOutput(run_id=state.active_runs.output),
        _log(new_state, event, "stop_speaking",
             {"output_run_id": state.active_runs.output}),
    ) + _phase_changed(state, new_state, event, "stop_speaking"))


def _on_session_closed(
    state: SessionState, event: SessionClosed
) -> tuple[SessionState, tuple[Command, ...]]:
    cmds: list[Command] = []
    new_state, more = _leave_listening(state)
    cmds.extend(more)

    if state.phase is Phase.THINKING:
        cmds.append(CancelTransport(run_id=state.active_runs.transport))
    elif state.phase is Phase.SPEAKING:
        cmds.append(StopOutput(run_id=state.active_runs.output))

    new_state = replace(
        new_state,
        phase=Phase.IDLE,
        turn_is_voice=False,
        pending_sends=(),
        closed=True,
    )
    return new_state, _logs_last(
        tuple(cmds)
        + (_log(new_state, event, "session_closed"),)
        + _phase_changed(state, new_state, event, "session_closed")
    )


# =============================================================================
# Speech input
# =============================================================================

def _on_input(
    state: SessionState, event: ServiceEvent
) -> tuple[SessionState, tuple[Command, ...]]:
    if state.phase is not Phase.LISTENING or not state.input_open:
        return _ignore(state, event, "input_not_open")

    if isinstance(event, InputPartial):
        new_state = replace(state, partial_text=event.text)
        return new_state, (
            _log(new_state, event, "input_partial", {"text_len": len(event.text)}),
        )

    if isinstance(event, InputFinal):
        closed_input = replace(state, input_open=False, partial_text="")
        if not event.text.strip():
            new_state = replace(closed_input, phase=Phase.IDLE, turn_is_voice=False)
            return new_state, _logs_last(
                (_log(new_state, event, "input_final_empty"),)
                + _phase_changed(state, new_state, event, "input_final_empty")
            )
        return _submit(state, closed_input, event, event.text, from_voice=True)

    if isinstance(event, InputError):
        new_state = replace(
            state,
            phase=Phase.IDLE,
            input_open=False,
            partial_text="",
            last_error=event.reason,
            turn_is_voice=False,
        )
        return new_state, _logs_last(
            (_log(new_state, event, "input_error", {"reason": event.reason}),)
            + _phase_changed(state, new_state, event, "input_error")
        )

    if isinstance(event, InputEnded):
        new_state = replace(
            state,
            phase=Phase.IDLE,
            input_open=False,
            partial_text="",
            turn_is_voice=False,
        )
        return new_state, _logs_last(
            (_log(new_state, event, "input_ended_without_final"),)
            + _phase_changed(state, new_state, event, "input_ended")
        )

    return _ignore(state, event, "input_unhandled")


# =============================================================================
# Transport
# =============================================================================

def _on_transport(
    state: SessionState,
    event: ServiceEvent,
    settings: SessionSettings,
) -> tuple[SessionState, tuple[Command, ...]]:
    if state.phase is not Phase.THINKING:
        return _ignore(state, event, "not_thinking")

    if isinstance(event, TransportSucceeded):
        text = event.text if event.text and event.text.strip() else NO_RESPONSE_PLACEHOLDER
        new_state = _append(state, event, text, Originator.ASSISTANT)
        cmds: list[Command] = [
            _log(new_state, event, "transport_succeeded", {"text_len": len(text)}),
        ]

        queued = _finish_thinking(new_state, event, "transport_succeeded")
        if queued is not None:
            new_state, more = queued
            return new_state, _logs_last(tuple(cmds + more))

        if settings.tts_enabled:
            runs = _bump_run_id(new_state.active_runs, Service.OUTPUT)
            new_state = replace(new_state, phase=Phase.SPEAKING, active_runs=runs)
            cmds.append(StartOutput(run_id=runs.output, text=text))
        else:
            new_state = replace(new_state, phase=Phase.IDLE)
            cmds.append(_log(new_state, event, "output_disabled"))

        return new_state, _logs_last(
            tuple(cmds) + _phase_changed(state, new_state, event, "transport_succeeded")
        )

    if isinstance(event, TransportFailed):
        new_state = _append(
            state, event, f"{TRANSPORT_ERROR_PREFIX}{event.reason}", Originator.ASSISTANT
        )
        new_state = replace(new_state, last_error=event.reason)
        cmds = [_log(new_state, event, "transport_failed", {"reason": event.reason})]

        queued = _finish_thinking(new_state, event, "transport_failed")
        if queued is not None:
            new_state, more = queued
            return new_state, _logs_last(tuple(cmds + more))

        new_state = replace(new_state, phase=Phase.IDLE)
        return new_state, _logs_last(
            tuple(cmds) + _phase_changed(state, new_state, event, "transport_failed")
        )

    return _ignore(state, event, "transport_unhandled")


# =============================================================================
# Speech output
# =============================================================================

def _on_output_finished(
    state: SessionState,
    event: OutputFinished,
    settings: SessionSettings,
) -> tuple[SessionState, tuple[Command, ...]]:
    if state.phase is not Phase.SPEAKING:
        return _ignore(state, event, "not_speaking")

    restart = event.success and state.turn_is_voice and settings.continuous_mode

    if restart:
        new_state, cmds = _begin_handover(
            state, event, RESTART_HANDOVER_DELAY_MS, source="continuous_restart"
        )
    else:
        new_state = replace(state, phase=Phase.IDLE)
        cmds = []

    cmds.append(
        _log(
            new_state,
            event,
            "output_finished",
            {"success": event.success, "restart": restart},
        )
    )
    return new_state, _logs_last(
        tuple(cmds) + _phase_changed(state, new_state, event, "output_finished")
    )


def _on_handover_done(
    state: SessionState, event: Event, run_id: int
) -> tuple[SessionState, tuple[Command, ...]]:
    if run_id != state.active_runs.handover:
        return _ignore(state, event, "stale_run")

    if state.phase is not Phase.LISTENING or not state.handover_pending:
        return _ignore(state, event, "no_handover_pending")

    cmds: list[Command] = []
    if isinstance(event, OutputReleased):
        cmds.append(CancelTimer(timer_id=TIMER_HANDOVER))
    else:
        # Timeout completed the handover; abandon the unacknowledged release
        cmds.append(CancelRelease(run_id=run_id))

    new_state, more = _open_input(state, event)
    cmds.extend(more)
    cmds.append(
        _log(
            new_state,
            event,
            "handover_complete",
            {"acknowledged": isinstance(event, OutputReleased)},
        )
    )
    return new_state, _logs_last(tuple(cmds))


# =============================================================================
# Reducer entrypoint
# =============================================================================

def reduce(
    state: SessionState,
    event: Event,
    settings: SessionSettings = _DEFAULT_SETTINGS,
) -> tuple[SessionState, tuple[Command, ...]]:
    """
    Apply one event to the session state.

    Returns the new state and the commands the runtime must execute,
    in order. The input state is never mutated.
    """
    if state.closed:
        return _ignore(state, event, "session_closed")

    if isinstance(event, SessionClosed):
        return _on_session_closed(state, event)

    # ------------------------------------------------------------------
    # Caller operations
    # ------------------------------------------------------------------

    if isinstance(event, SendText):
        return _on_send_text(state, event)

    if isinstance(event, StartListening):
        return _on_start_listening(state, event)

    if isinstance(event, StopListening):
        return _on_stop_listening(state, event)

    if isinstance(event, StopSpeaking):
        return _on_stop_speaking(state, event)

    # ------------------------------------------------------------------
    # Timer events
    # ------------------------------------------------------------------

    if isinstance(event, HandoverTimeout):
        return _on_handover_done(state, event, event.run_id)

    # ------------------------------------------------------------------
    # Service completions (run-id gated)
    # ------------------------------------------------------------------

    if isinstance(event, ServiceEvent):
        if event.run_id != active_run_for(state.active_runs, event.service):
            return _ignore(state, event, "stale_run")

        if isinstance(event, (InputPartial, InputFinal, InputError, InputEnded)):
            return _on_input(state, event)

        if isinstance(event, (TransportSucceeded, TransportFailed)):
            return _on_transport(state, event, settings)

        if isinstance(event, OutputFinished):
            return _on_output_finished(state, event, settings)

        if isinstance(event, OutputReleased):
            return _on_handover_done(state, event, event.run_id)

    return _ignore(state, event, "unhandled_event")
