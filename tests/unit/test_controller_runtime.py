# pylint: disable=missing-module-docstring,missing-function-docstring
import asyncio
from pathlib import Path
from typing import Any

import pytest

import orchestrator.reducer as reducer_mod
from adapters.speech_input.base import SpeechError, SpeechFinal, SpeechPartial
from adapters.speech_input.remote import RemoteSpeechInput
from adapters.speech_output.remote import RemoteSpeechOutput
from adapters.transport.base import ConversationTransport, TransportResult
from context.transcript import Originator
from orchestrator.enums.phase import Phase
from orchestrator.state_dataclass import SessionState
from session.controller import ConversationSessionController, verify_connection
from session.settings_store import SettingsRepository
from session.voice_session import ConversationSession


WEBHOOK_URL = "https://hook.example/chat"


# ---------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------

class FakeTransport(ConversationTransport):
    """Replies in order; optionally holds every request until released."""

    def __init__(self, replies: list[Any], *, hold: bool = False) -> None:
        self.sent: list[tuple[str, str, str, str | None]] = []
        self.probed: list[tuple[str, str | None]] = []
        self.reachable = True
        self._replies = list(replies)
        self._gate = asyncio.Event()
        if not hold:
            self._gate.set()

    def release(self) -> None:
        self._gate.set()

    async def test_connection(self, url: str, token: str | None) -> TransportResult:
        self.probed.append((url, token))
        if self.reachable:
            return TransportResult.success(None)
        return TransportResult.failure("HTTP 404")

    async def send_message(
        self,
        url: str,
        message: str,
        session_id: str,
        token: str | None,
    ) -> TransportResult:
        self.sent.append((url, message, session_id, token))
        await self._gate.wait()
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class Harness:
    def __init__(self, tmp_path: Path, transport: FakeTransport) -> None:
        self.control: list[dict[str, Any]] = []
        self.settings = SettingsRepository(tmp_path / "settings.json")
        self.settings.webhook_url = WEBHOOK_URL
        self.settings.auth_token = "tok"

        self.session = ConversationSession(session_id="sess_test", locale="ja-JP")
        self.speech_input = RemoteSpeechInput(send_control=self.control.append)
        self.speech_output = RemoteSpeechOutput(send_control=self.control.append)
        self.transport = transport
        self.session.attach_speech_input(self.speech_input)
        self.session.attach_speech_output(self.speech_output)
        self.session.attach_transport(transport)
        self.session.attach_settings(self.settings)

        self.controller = ConversationSessionController(session=self.session)

    @property
    def state(self) -> SessionState:
        return self.controller.state

    def controls(self, msg_type: str) -> list[dict[str, Any]]:
        return [m for m in self.control if m["type"] == msg_type]

    def finish_speaking(self, success: bool = True) -> None:
        speak = self.controls("SPEAK")[-1]
        assert self.speech_output.complete(speak["utterance_id"], success)


async def settle(rounds: int = 20) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def texts(state: SessionState) -> list[tuple[Originator, str]]:
    return [(m.originator, m.text) for m in state.transcript]


# ---------------------------------------------------------------------
# Typed turns
# ---------------------------------------------------------------------

def test_typed_message_round_trip_speaks_reply(tmp_path: Path) -> None:
    async def scenario() -> None:
        h = Harness(tmp_path, FakeTransport([TransportResult.success("Hi there")]))

        await h.controller.send_message("hello")

        # USER message is visible before the request resolves
        assert texts(h.state) == [(Originator.USER, "hello")]
        assert h.state.phase is Phase.THINKING

        await settle()

        assert h.transport.sent == [
            (WEBHOOK_URL, "hello", h.settings.session_id, "tok"),
        ]
        assert texts(h.state) == [
            (Originator.USER, "hello"),
            (Originator.ASSISTANT, "Hi there"),
        ]
        assert h.state.phase is Phase.SPEAKING
        assert h.controls("SPEAK")[-1]["text"] == "Hi there"

        h.finish_speaking()
        await settle()

        assert h.state.phase is Phase.IDLE
        await h.controller.close()

    asyncio.run(scenario())


def test_output_disabled_goes_idle_without_speaking(tmp_path: Path) -> None:
    async def scenario() -> None:
        h = Harness(tmp_path, FakeTransport([TransportResult.success("Hi")]))
        h.settings.tts_enabled = False

        await h.controller.send_message("hello")
        await settle()

        assert h.state.phase is Phase.IDLE
        assert len(h.state.transcript) == 2
        assert h.controls("SPEAK") == []
        await h.controller.close()

    asyncio.run(scenario())


def test_transport_exception_becomes_error_message(tmp_path: Path) -> None:
    async def scenario() -> None:
        h = Harness(tmp_path, FakeTransport([RuntimeError("boom")]))

        await h.controller.send_message("hello")
        await settle()

        assert texts(h.state)[-1] == (Originator.ASSISTANT, "Error: boom")
        assert h.state.last_error == "boom"
        assert h.state.phase is Phase.IDLE
        await h.controller.close()

    asyncio.run(scenario())


def test_sends_are_serialized_and_only_last_reply_is_spoken(tmp_path: Path) -> None:
    async def scenario() -> None:
        transport = FakeTransport(
            [TransportResult.success("one!"), TransportResult.success("two!")],
            hold=True,
        )
        h = Harness(tmp_path, transport)

        await h.controller.send_message("one")
        await h.controller.send_message("two")
        await settle()

        # Second request waits for the first response
        assert [s[1] for s in transport.sent] == ["one"]
        assert texts(h.state) == [
            (Originator.USER, "one"),
            (Originator.USER, "two"),
        ]

        transport.release()
        await settle()

        assert [s[1] for s in transport.sent] == ["one", "two"]
        assert [t for _, t in texts(h.state)] == ["one", "two", "one!", "two!"]
        assert [m["text"] for m in h.controls("SPEAK")] == ["two!"]
        await h.controller.close()

    asyncio.run(scenario())


# ---------------------------------------------------------------------
# Voice turns
# ---------------------------------------------------------------------

def test_voice_turn_with_continuous_restart(tmp_path: Path) -> None:
    async def scenario() -> None:
        h = Harness(tmp_path, FakeTransport([TransportResult.success("Hi")]))
        h.settings.continuous_mode = True

        await h.controller.start_listening()
        await settle()

        start = h.controls("INPUT_START")[-1]
        assert start == {"type": "INPUT_START", "stream_id": 1, "locale": "ja-JP"}
        assert h.state.phase is Phase.LISTENING

        h.speech_input.deliver(SpeechPartial(text="h"), stream_id=1)
        await settle()
        h.speech_input.deliver(SpeechPartial(text="he"), stream_id=1)
        await settle()
        assert h.state.partial_text == "he"
        assert h.state.transcript == ()

        h.speech_input.deliver(SpeechFinal(text="hello"), stream_id=1)
        await settle()

        assert texts(h.state) == [
            (Originator.USER, "hello"),
            (Originator.ASSISTANT, "Hi"),
        ]
        assert h.state.phase is Phase.SPEAKING
        # Stream ended on its own; the client is not told to stop
        assert h.controls("INPUT_STOP") == []

        h.finish_speaking()
        await settle()

        assert h.state.phase is Phase.LISTENING
        assert h.state.handover_pending is True
        assert h.controls("OUTPUT_RELEASE")

        release = h.controls("OUTPUT_RELEASE")[-1]
        assert h.speech_output.confirm_release(release["release_id"]) is True
        await settle()

        assert h.state.input_open is True
        assert h.controls("INPUT_START")[-1]["stream_id"] == 2

        await h.controller.close()
        assert h.controls("INPUT_STOP")[-1] == {"type": "INPUT_STOP", "stream_id": 2}

    asyncio.run(scenario())


def test_recognition_error_does_not_restart(tmp_path: Path) -> None:
    async def scenario() -> None:
        h = Harness(tmp_path, FakeTransport([]))
        h.settings.continuous_mode = True

        await h.controller.start_listening()
        await settle()
        h.speech_input.deliver(SpeechError(message="no match"), stream_id=1)
        await settle()

        assert h.state.phase is Phase.IDLE
        assert h.state.last_error == "no match"
        assert len(h.controls("INPUT_START")) == 1
        await h.controller.close()

    asyncio.run(scenario())


def test_stop_listening_closes_stream_and_drops_partial(tmp_path: Path) -> None:
    async def scenario() -> None:
        h = Harness(tmp_path, FakeTransport([]))

        await h.controller.start_listening()
        await settle()
        h.speech_input.deliver(SpeechPartial(text="hal"), stream_id=1)
        await settle()

        await h.controller.stop_listening()
        await settle()

        assert h.state.phase is Phase.IDLE
        assert h.state.partial_text == ""
        assert h.controls("INPUT_STOP") == [{"type": "INPUT_STOP", "stream_id": 1}]
        # Results for the closed stream are dropped
        assert h.speech_input.deliver(SpeechFinal(text="late"), stream_id=1) is False
        await h.controller.close()

    asyncio.run(scenario())


def test_start_listening_while_speaking_falls_back_to_timer(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(reducer_mod, "INPUT_HANDOVER_DELAY_MS", 10)

    async def scenario() -> None:
        h = Harness(tmp_path, FakeTransport([TransportResult.success("long answer")]))

        await h.controller.send_message("tell me")
        await settle()
        assert h.state.phase is Phase.SPEAKING

        await h.controller.start_listening()
        await settle()

        assert h.controls("SPEAK_STOP")
        assert h.state.phase is Phase.LISTENING
        assert h.state.input_open is False

        # Client never confirms the release
        await asyncio.sleep(0.05)
        await settle()

        assert h.state.input_open is True
        assert h.controls("INPUT_START")[-1]["stream_id"] == 1
        await h.controller.close()

    asyncio.run(scenario())


def test_late_release_ack_does_not_complete_next_handover(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(reducer_mod, "INPUT_HANDOVER_DELAY_MS", 10)

    async def scenario() -> None:
        h = Harness(tmp_path, FakeTransport([
            TransportResult.success("long answer"),
            TransportResult.success("Hi"),
        ]))
        h.settings.continuous_mode = True

        await h.controller.send_message("tell me")
        await settle()
        await h.controller.start_listening()
        await settle()
        first_release = h.controls("OUTPUT_RELEASE")[-1]["release_id"]

        # Timer opens the input; the unacknowledged release is abandoned
        await asyncio.sleep(0.05)
        await settle()
        assert h.state.input_open is True

        h.speech_input.deliver(SpeechFinal(text="hi"), stream_id=1)
        await settle()
        assert h.state.phase is Phase.SPEAKING

        h.finish_speaking()
        await settle()

        releases = h.controls("OUTPUT_RELEASE")
        assert len(releases) == 2
        assert releases[-1]["release_id"] != first_release
        assert h.state.handover_pending is True

        # Client acknowledges the first release only now
        assert h.speech_output.confirm_release(first_release) is False
        await settle()

        assert h.state.input_open is False
        assert h.state.handover_pending is True

        assert h.speech_output.confirm_release(releases[-1]["release_id"]) is True
        await settle()

        assert h.state.input_open is True
        assert h.controls("INPUT_START")[-1]["stream_id"] == 2
        await h.controller.close()

    asyncio.run(scenario())


def test_stop_speaking_cancels_output(tmp_path: Path) -> None:
    async def scenario() -> None:
        h = Harness(tmp_path, FakeTransport([TransportResult.success("Hi")]))
        h.settings.continuous_mode = True

        await h.controller.send_message("hello")
        await settle()
        await h.controller.stop_speaking()
        await settle()

        assert h.state.phase is Phase.IDLE
        assert h.controls("SPEAK_STOP")
        # A late acknowledgment for the stopped utterance changes nothing
        speak = h.controls("SPEAK")[-1]
        assert h.speech_output.complete(speak["utterance_id"], True) is False
        await settle()
        assert h.state.phase is Phase.IDLE
        await h.controller.close()

    asyncio.run(scenario())


# ---------------------------------------------------------------------
# Observation and teardown
# ---------------------------------------------------------------------

def test_subscribe_sees_every_state_until_unsubscribed(tmp_path: Path) -> None:
    async def scenario() -> None:
        h = Harness(tmp_path, FakeTransport([TransportResult.success("Hi")]))
        h.settings.tts_enabled = False
        seen: list[Phase] = []

        unsubscribe = h.controller.subscribe(lambda s: seen.append(s.phase))
        await h.controller.send_message("hello")
        await settle()

        assert seen == [Phase.THINKING, Phase.IDLE]

        unsubscribe()
        await h.controller.start_listening()
        assert seen == [Phase.THINKING, Phase.IDLE]
        await h.controller.close()

    asyncio.run(scenario())


def test_watch_yields_current_then_new_states(tmp_path: Path) -> None:
    async def scenario() -> None:
        h = Harness(tmp_path, FakeTransport([]))
        stream = h.controller.watch()

        first = await stream.__anext__()
        assert first.phase is Phase.IDLE

        await h.controller.start_listening()
        second = await stream.__anext__()
        assert second.phase is Phase.LISTENING

        await stream.aclose()
        await h.controller.close()

    asyncio.run(scenario())


def test_close_cancels_in_flight_work_and_ignores_later_calls(tmp_path: Path) -> None:
    async def scenario() -> None:
        transport = FakeTransport([TransportResult.success("late")], hold=True)
        h = Harness(tmp_path, transport)

        await h.controller.send_message("hello")
        await settle()
        await h.controller.close()

        assert h.state.closed is True
        assert h.state.phase is Phase.IDLE
        pending = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
        assert pending == []

        transport.release()
        await h.controller.send_message("again")
        await h.controller.start_listening()
        await settle()

        assert [s[1] for s in transport.sent] == ["hello"]
        assert texts(h.state) == [(Originator.USER, "hello")]

        # Idempotent
        await h.controller.close()

    asyncio.run(scenario())


def test_test_connection_marks_settings_verified(tmp_path: Path) -> None:
    async def scenario() -> None:
        h = Harness(tmp_path, FakeTransport([]))
        assert h.settings.is_verified is False

        result = await h.controller.test_connection()

        assert result.ok is True
        assert h.settings.is_verified is True
        await h.controller.close()

    asyncio.run(scenario())


def test_verifying_another_url_stores_what_was_probed(tmp_path: Path) -> None:
    async def scenario() -> None:
        h = Harness(tmp_path, FakeTransport([]))

        result = await verify_connection(
            h.transport,
            h.settings,
            url=" https://other.example/chat ",
            token="new-token",
        )

        assert result.ok is True
        assert h.transport.probed == [("https://other.example/chat", "new-token")]
        assert h.settings.webhook_url == "https://other.example/chat"
        assert h.settings.auth_token == "new-token"
        assert h.settings.is_verified is True
        await h.controller.close()

    asyncio.run(scenario())


def test_failed_verification_leaves_settings_untouched(tmp_path: Path) -> None:
    async def scenario() -> None:
        h = Harness(tmp_path, FakeTransport([]))
        h.transport.reachable = False

        result = await verify_connection(
            h.transport,
            h.settings,
            url="https://other.example/chat",
        )

        assert result.ok is False
        assert h.transport.probed == [("https://other.example/chat", "tok")]
        assert h.settings.webhook_url == WEBHOOK_URL
        assert h.settings.is_verified is False
        await h.controller.close()

    asyncio.run(scenario())
