"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No orchestration logic
- No protocol constants
- No runtime mutation (user-editable settings live in the settings store)
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from spec import DEFAULT_SETTINGS_PATH, DEFAULT_SPEECH_LOCALE, TRANSPORT_TIMEOUT_S


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the server, gateway and controller.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool

    # ------------------------------------------------------------------
    # Settings store
    # ------------------------------------------------------------------

    settings_path: str

    # Seed values, applied only when the settings store has none
    webhook_url: str | None
    webhook_token: str | None

    # ------------------------------------------------------------------
    # Speech / transport
    # ------------------------------------------------------------------

    speech_locale: str
    transport_timeout_s: float

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if TRANSPORT_TIMEOUT_S is not a number.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",

            settings_path=os.path.expanduser(
                os.environ.get("SETTINGS_PATH", DEFAULT_SETTINGS_PATH)
            ),
            webhook_url=os.environ.get("WEBHOOK_URL"),
            webhook_token=os.environ.get("WEBHOOK_TOKEN"),

            speech_locale=os.environ.get("SPEECH_LOCALE", DEFAULT_SPEECH_LOCALE),
            transport_timeout_s=float(
                os.environ.get("TRANSPORT_TIMEOUT_S", str(TRANSPORT_TIMEOUT_S))
            ),
        )
