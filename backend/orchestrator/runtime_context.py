"""
Runtime execution context.

Provides Runtime with live access to session-owned imperative resources
needed for command execution (adapters, settings, locale).

This module contains:
- Narrow Protocols (capabilities, not implementations)
- Zero orchestration logic
- Zero state mutation
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from adapters.speech_input.base import SpeechInputSource
    from adapters.speech_output.base import SpeechOutputSink
    from adapters.transport.base import ConversationTransport
    from orchestrator.state_dataclass import SessionSettings
    from session.voice_session import ConversationSession


# ---------------------------------------------------------------------
# Settings Protocol
# ---------------------------------------------------------------------

@runtime_checkable
class SettingsProvider(Protocol):
    """
    Access to the persisted configuration.

    Values are read at the moment they are needed, so edits made while a
    session is running apply to the next request / next reducer step.
    """

    @property
    def webhook_url(self) -> str: ...

    @property
    def auth_token(self) -> str: ...

    @property
    def session_id(self) -> str: ...

    def snapshot(self) -> SessionSettings: ...

    def remember_connection(self, webhook_url: str, auth_token: str) -> None: ...


# ---------------------------------------------------------------------
# Runtime Execution Context
# ---------------------------------------------------------------------

class RuntimeExecutionContext:
    """
    Narrow view over ConversationSession for Runtime.

    Runtime reaches adapters only through this object, never through
    module globals.
    """

    def __init__(self, *, session: ConversationSession) -> None:
        self._session = session

    @property
    def session(self) -> ConversationSession:
        return self._session

    @property
    def session_id(self) -> str:
        return self._session.session_id

    @property
    def locale(self) -> str:
        return self._session.locale

    @property
    def speech_input(self) -> SpeechInputSource:
        assert self._session.speech_input is not None, "speech input missing"
        return self._session.speech_input

    @property
    def speech_output(self) -> SpeechOutputSink:
        assert self._session.speech_output is not None, "speech output missing"
        return self._session.speech_output

    @property
    def transport(self) -> ConversationTransport:
        assert self._session.transport is not None, "transport missing"
        return self._session.transport

    @property
    def settings(self) -> SettingsProvider:
        assert self._session.settings is not None, "settings missing"
        return self._session.settings
