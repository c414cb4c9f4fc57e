"""
Persisted user settings.

Responsibilities:
- Store webhook connection details and feature flags in a JSON file
- Generate and persist the conversation correlation id (session_id)
- Provide an immutable SessionSettings snapshot per reducer step

Non-responsibilities:
- No encryption (values are stored as plain JSON)
- No orchestration logic
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any
from uuid import uuid4

from observability.logger import log_event
from orchestrator.state_dataclass import SessionSettings
from spec import DEFAULT_CONTINUOUS_MODE, DEFAULT_TTS_ENABLED


KEY_WEBHOOK_URL = "webhook_url"
KEY_AUTH_TOKEN = "auth_token"
KEY_SESSION_ID = "session_id"
KEY_HOTWORD_ENABLED = "hotword_enabled"
KEY_TTS_ENABLED = "tts_enabled"
KEY_CONTINUOUS_MODE = "continuous_mode"
KEY_IS_VERIFIED = "is_verified"


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def generate_session_id() -> str:
    return str(uuid4())


class SettingsRepository:
    """
    JSON-file backed settings with get/set semantics.

    Every setter writes the whole file immediately. A missing or unreadable
    file yields defaults; the next write replaces it.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._values: dict[str, Any] = self._load()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> dict[str, Any]:
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "settings_load_failed",
                "path": str(self._path),
                "exception": type(exc).__name__,
                "error": str(exc),
            })
            return {}

        if not isinstance(raw, dict):
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "settings_load_failed",
                "path": str(self._path),
                "error": "settings file is not a JSON object",
            })
            return {}
        return raw

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_name(self._path.name + ".tmp")
        tmp.write_text(
            json.dumps(self._values, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        tmp.replace(self._path)

    def _set(self, key: str, value: Any) -> None:
        self._values[key] = value
        self._save()

    def _get_str(self, key: str) -> str:
        value = self._values.get(key)
        return value if isinstance(value, str) else ""

    def _get_bool(self, key: str, default: bool) -> bool:
        value = self._values.get(key)
        return value if isinstance(value, bool) else default

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    @property
    def webhook_url(self) -> str:
        return self._get_str(KEY_WEBHOOK_URL)

    @webhook_url.setter
    def webhook_url(self, value: str) -> None:
        if value == self.webhook_url:
            return
        # A new endpoint has to be verified again
        self._values[KEY_IS_VERIFIED] = False
        self._set(KEY_WEBHOOK_URL, value)

    @property
    def auth_token(self) -> str:
        return self._get_str(KEY_AUTH_TOKEN)

    @auth_token.setter
    def auth_token(self, value: str) -> None:
        self._set(KEY_AUTH_TOKEN, value)

    @property
    def is_verified(self) -> bool:
        return self._get_bool(KEY_IS_VERIFIED, False)

    @is_verified.setter
    def is_verified(self, value: bool) -> None:
        self._set(KEY_IS_VERIFIED, value)

    def remember_connection(self, webhook_url: str, auth_token: str) -> None:
        """Store a URL/token pair that just passed a connection test."""
        self.webhook_url = webhook_url
        self.auth_token = auth_token
        self.is_verified = True

    def is_configured(self) -> bool:
        """True once a non-blank URL has passed a connection test."""
        return bool(self.webhook_url.strip()) and self.is_verified

    def seed(self, *, webhook_url: str | None, auth_token: str | None) -> None:
        """
        Apply deployment defaults.

        Only fills values the user has not set yet.
        """
        if webhook_url and not self.webhook_url:
            self.webhook_url = webhook_url
        if auth_token and not self.auth_token:
            self.auth_token = auth_token

    # ------------------------------------------------------------------
    # Conversation correlation id
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        """Opaque id sent with every message; created on first read."""
        current = self._get_str(KEY_SESSION_ID)
        if current:
            return current
        new_id = generate_session_id()
        self._set(KEY_SESSION_ID, new_id)
        return new_id

    def reset_session(self) -> str:
        """Start a new backend conversation. Returns the new id."""
        new_id = generate_session_id()
        self._set(KEY_SESSION_ID, new_id)
        return new_id

    # ------------------------------------------------------------------
    # Feature flags
    # ------------------------------------------------------------------

    @property
    def hotword_enabled(self) -> bool:
        return self._get_bool(KEY_HOTWORD_ENABLED, False)

    @hotword_enabled.setter
    def hotword_enabled(self, value: bool) -> None:
        self._set(KEY_HOTWORD_ENABLED, value)

    @property
    def tts_enabled(self) -> bool:
        return self._get_bool(KEY_TTS_ENABLED, DEFAULT_TTS_ENABLED)

    @tts_enabled.setter
    def tts_enabled(self, value: bool) -> None:
        self._set(KEY_TTS_ENABLED, value)

    @property
    def continuous_mode(self) -> bool:
        return self._get_bool(KEY_CONTINUOUS_MODE, DEFAULT_CONTINUOUS_MODE)

    @continuous_mode.setter
    def continuous_mode(self, value: bool) -> None:
        self._set(KEY_CONTINUOUS_MODE, value)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def snapshot(self) -> SessionSettings:
        """Settings the reducer reads for one step."""
        return SessionSettings(
            tts_enabled=self.tts_enabled,
            continuous_mode=self.continuous_mode,
        )

    def as_dict(self) -> dict[str, Any]:
        """Public view for the settings UI. The token itself is not exposed."""
        return {
            KEY_WEBHOOK_URL: self.webhook_url,
            "auth_token_set": bool(self.auth_token),
            KEY_SESSION_ID: self.session_id,
            KEY_HOTWORD_ENABLED: self.hotword_enabled,
            KEY_TTS_ENABLED: self.tts_enabled,
            KEY_CONTINUOUS_MODE: self.continuous_mode,
            KEY_IS_VERIFIED: self.is_verified,
            "is_configured": self.is_configured(),
        }
