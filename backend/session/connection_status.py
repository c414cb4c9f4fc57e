"""
Connection status of the client link.

Tracked by the gateway, separately from the session phase:
a session can be IDLE with any ConnectionStatus.
"""
from enum import Enum


class ConnectionStatus(Enum):
    """Lifecycle of the websocket link that drives a session."""
    DOWN = "DOWN"      # No client attached (never connected or disconnected)
    UP = "UP"          # Client connected; control messages are delivered
