"""
SPEC-AS-CONSTANTS
-----------------
Single source of truth for all behavioral invariants in the system.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# Audio handover (output -> input)
# =============================================================================
# Known timing heuristic, not a correctness guarantee. The runtime opens the
# input stream earlier if the output sink confirms release.

# startListening() while output is playing
INPUT_HANDOVER_DELAY_MS: Final[int] = 500

# Continuous-mode restart after a successful spoken response
RESTART_HANDOVER_DELAY_MS: Final[int] = 1_000

# =============================================================================
# Speech recognition
# =============================================================================

DEFAULT_SPEECH_LOCALE: Final[str] = "ja-JP"

# =============================================================================
# Transcript literals
# =============================================================================

NO_RESPONSE_PLACEHOLDER: Final[str] = "No response"
TRANSPORT_ERROR_PREFIX: Final[str] = "Error: "

# =============================================================================
# Webhook transport
# =============================================================================

TRANSPORT_TIMEOUT_S: Final[float] = 30.0

# Keys probed (in order) for the assistant text in a JSON webhook response
RESPONSE_TEXT_KEYS: Final[Tuple[str, ...]] = (
    "response",
    "text",
    "message",
    "reply",
    "output",
)

CONNECTION_TEST_MESSAGE: Final[str] = "ping"
CONNECTION_TEST_SESSION_ID: Final[str] = "connection-test"

# =============================================================================
# Settings store
# =============================================================================

DEFAULT_SETTINGS_PATH: Final[str] = "~/.voice-session/settings.json"
DEFAULT_TTS_ENABLED: Final[bool] = True
DEFAULT_CONTINUOUS_MODE: Final[bool] = False
