"""
Session gateway.

Responsibilities:
- Owns ConversationSession + controller lifecycle for one connection
- Tracks connection_status independently of the session phase
- Routes inbound JSON messages -> controller operations and adapter feeds
- Mirrors every state change to the client as a STATE message
- Drains outbound control messages for the transport layer

NOT responsible for:
- Any state machine logic
- Executing commands
- Socket I/O (routes own the websocket)
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

from uuid import uuid4

from adapters.speech_input.base import SpeechError, SpeechFinal, SpeechPartial
from adapters.speech_input.remote import RemoteSpeechInput
from adapters.speech_output.remote import RemoteSpeechOutput
from context.serialization import serialize_state
from observability.logger import log_event
from orchestrator.state_dataclass import SessionState
from session.connection_status import ConnectionStatus
from session.controller import ConversationSessionController
from session.voice_session import ConversationSession

if TYPE_CHECKING:
    from adapters.transport.base import ConversationTransport
    from config import AppConfig
    from session.settings_store import SettingsRepository


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _new_session_id() -> str:
    return f"sess_{uuid4().hex[:12]}"


def _text_field(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    return value if isinstance(value, str) else None


# ------------------------------------------------------------------
# Gateway result
# ------------------------------------------------------------------

@dataclass(frozen=True)
class GatewayResult:
    """
    Return value for gateway boundary methods.

    outbound_json:
        JSON messages to send to the client, in order
    """
    outbound_json: tuple[dict[str, Any], ...] = ()


# ------------------------------------------------------------------
# SessionGateway
# ------------------------------------------------------------------

class SessionGateway:
    """
    One gateway == one connection == one conversation session.

    Speech runs on the client: the gateway wires remote speech adapters
    whose control messages share the session's outbound queue.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        settings: SettingsRepository,
        transport: ConversationTransport,
    ) -> None:
        self._config = config
        self._settings = settings
        self._transport = transport

        self.session: ConversationSession | None = None
        self.controller: ConversationSessionController | None = None
        self._speech_input: RemoteSpeechInput | None = None
        self._speech_output: RemoteSpeechOutput | None = None
        self._unsubscribe: Any = None

    async def on_ws_connect(self) -> GatewayResult:
        """Called when a WebSocket connection is established."""
        session_id = _new_session_id()

        self.session = ConversationSession(
            session_id=session_id,
            locale=self._config.speech_locale,
        )
        self.session.connection_status = ConnectionStatus.UP

        self._speech_input = RemoteSpeechInput(
            send_control=self.session.enqueue_control,
        )
        self._speech_output = RemoteSpeechOutput(
            send_control=self.session.enqueue_control,
        )
        self.session.attach_speech_input(self._speech_input)
        self.session.attach_speech_output(self._speech_output)
        self.session.attach_transport(self._transport)
        self.session.attach_settings(self._settings)

        # Controller needs every collaborator attached
        self.controller = ConversationSessionController(session=self.session)
        self._unsubscribe = self.controller.subscribe(self._on_state)

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "SESSION_STARTED",
            "locale": self.session.locale,
            **self.session.log_context(),
        })

        init_msg: dict[str, Any] = {
            "type": "SESSION_STARTED",
            "session_id": session_id,
            "locale": self.session.locale,
            "state": serialize_state(self.controller.state),
        }

        return GatewayResult(outbound_json=(init_msg,) + self._drain_control_out())

    async def on_ws_disconnect(self, reason: str | None = None) -> GatewayResult:
        """Called when the WebSocket disconnects."""
        if self.session is None or self.controller is None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "WS_DISCONNECT_WITHOUT_SESSION",
                "reason": reason,
            })
            return GatewayResult()

        await self.controller.close()

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        self.session.connection_status = ConnectionStatus.DOWN

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "WS_DISCONNECTED",
            "reason": reason,
            **self.session.log_context(),
        })

        # Nothing can be delivered any more
        self.session.drain_control()
        return GatewayResult()

    async def on_json_message(self, payload: str) -> GatewayResult:
        """Route one inbound JSON message."""
        if self.session is None or self.controller is None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "MESSAGE_WITHOUT_SESSION",
                "payload_preview": payload[:100],
            })
            return GatewayResult()

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "JSON_DECODE_ERROR",
                "session_id": self.session.session_id,
                "error": str(e),
                "payload_preview": payload[:100],
            })
            self._reject("invalid_json", str(e))
            return GatewayResult(outbound_json=self._drain_control_out())

        if not isinstance(data, dict):
            self._reject("invalid_message", "message must be a JSON object")
            return GatewayResult(outbound_json=self._drain_control_out())

        await self._route(data)
        return GatewayResult(outbound_json=self._drain_control_out())

    async def wait_outbound_ready(self) -> None:
        """
        Block until control messages are pending.

        Used by the transport layer to push messages produced outside an
        inbound message (service tasks, timers).
        """
        assert self.session is not None, "no session"
        await self.session.wait_control()

    def drain_outbound(self) -> GatewayResult:
        """Drain every pending control message."""
        return GatewayResult(outbound_json=self._drain_control_out())

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    async def _route(self, data: dict[str, Any]) -> None:
        assert self.controller is not None
        assert self._speech_input is not None
        assert self._speech_output is not None

        msg_type = data.get("type")
        stream_id = data.get("stream_id")
        if not isinstance(stream_id, int):
            stream_id = None

        # ---- Caller operations ----
        if msg_type == "SEND_MESSAGE":
            text = _text_field(data, "text")
            if text is None:
                self._reject("invalid_message", "SEND_MESSAGE requires text")
                return
            await self.controller.send_message(text)

        elif msg_type == "START_LISTENING":
            await self.controller.start_listening()

        elif msg_type == "STOP_LISTENING":
            await self.controller.stop_listening()

        elif msg_type == "STOP_SPEAKING":
            await self.controller.stop_speaking()

        # ---- Client recognizer ----
        elif msg_type == "INPUT_PARTIAL":
            self._feed_input(SpeechPartial(text=_text_field(data, "text") or ""), stream_id)

        elif msg_type == "INPUT_FINAL":
            self._feed_input(SpeechFinal(text=_text_field(data, "text") or ""), stream_id)

        elif msg_type == "INPUT_ERROR":
            message = _text_field(data, "message") or "speech recognition error"
            self._feed_input(SpeechError(message=message), stream_id)

        elif msg_type == "INPUT_CLOSED":
            self._feed_input(None, stream_id)

        # ---- Client synthesizer ----
        elif msg_type in ("SPEAK_DONE", "SPEAK_ERROR"):
            utterance_id = _text_field(data, "utterance_id")
            if utterance_id is None:
                self._reject("invalid_message", f"{msg_type} requires utterance_id")
                return
            self._speech_output.complete(utterance_id, msg_type == "SPEAK_DONE")

        elif msg_type == "OUTPUT_RELEASED":
            release_id = _text_field(data, "release_id")
            if release_id is None:
                self._reject("invalid_message", "OUTPUT_RELEASED requires release_id")
                return
            if not self._speech_output.confirm_release(release_id):
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "OUTPUT_RELEASE_DROPPED",
                    "session_id": self.session.session_id if self.session else None,
                    "release_id": release_id,
                })

        else:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "UNKNOWN_MESSAGE_TYPE",
                "msg_type": msg_type,
                "session_id": self.session.session_id if self.session else None,
            })
            self._reject("unknown_message_type", str(msg_type))

    def _feed_input(self, result: Any, stream_id: int | None) -> None:
        assert self._speech_input is not None
        accepted = self._speech_input.deliver(result, stream_id=stream_id)
        if not accepted:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "INPUT_RESULT_DROPPED",
                "session_id": self.session.session_id if self.session else None,
                "stream_id": stream_id,
                "result": type(result).__name__,
            })

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def _on_state(self, state: SessionState) -> None:
        if self.session is None:
            return
        self.session.enqueue_control({
            "type": "STATE",
            "state": serialize_state(state),
        })

    def _reject(self, code: str, detail: str) -> None:
        if self.session is None:
            return
        self.session.enqueue_control({
            "type": "ERROR",
            "code": code,
            "detail": detail,
        })

    def _drain_control_out(self) -> tuple[dict[str, Any], ...]:
        if self.session is None:
            return ()
        return self.session.drain_control()
