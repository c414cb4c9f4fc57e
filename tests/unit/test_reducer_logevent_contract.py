# pylint: disable=missing-module-docstring,missing-function-docstring

from orchestrator.reducer import reduce
from orchestrator.state_dataclass import SessionState
from orchestrator.events import StartListening, EventType
from orchestrator.commands import LogEvent


def test_reducer_emits_logevent_with_required_fields():
    state = SessionState()

    event = StartListening(
        event_type=EventType.START_LISTENING,
        ts_ms=123,
    )

    _, commands = reduce(state, event)

    log_events = [c for c in commands if isinstance(c, LogEvent)]
    assert log_events, "Reducer must emit at least one LogEvent"

    payload = log_events[0].event

    assert payload["ts_ms"] == 123
    assert payload["phase"] == "LISTENING"
    assert payload["event_type"] == "START_LISTENING"
    assert payload["decision"] == "open_input"
    assert payload["run_ids"] == {
        "input": 1,
        "transport": 0,
        "output": 0,
        "handover": 0,
    }
    assert payload["turn_is_voice"] is True
    assert payload["details"] == {"input_run_id": 1}


def test_phase_change_is_logged_last():
    _, commands = reduce(
        SessionState(),
        StartListening(event_type=EventType.START_LISTENING, ts_ms=0),
    )

    last = commands[-1]
    assert isinstance(last, LogEvent)
    assert last.event["decision"] == "state_changed"
    assert last.event["details"] == {
        "from_phase": "IDLE",
        "to_phase": "LISTENING",
        "source": "start_listening",
    }
