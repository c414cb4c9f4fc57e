"""
Speech output contract.

This module defines the *interface only*.

Key invariants:
- speak() resolves exactly once per call: True when playback completed,
  False on synthesis failure or when stop() interrupted it.
- The sink emits no events and makes no state transitions; the runtime
  turns the speak() result into an OutputFinished event.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class SpeechOutputSink(ABC):
    """
    Abstract interface for a platform speech synthesizer.

    Non-responsibilities:
    - No phase logic
    - No decision about restarting speech input afterwards
    - No direct interaction with the UI
    """

    @abstractmethod
    async def speak(self, text: str) -> bool:
        """
        Speak text and wait for playback to finish.

        Contract:
        - Returns True only if the whole utterance was played.
        - Must NOT raise for engine failures; return False instead.
        - Must NOT retry internally.
        """
        raise NotImplementedError

    @abstractmethod
    async def stop(self) -> None:
        """
        Stop in-flight playback.

        Contract:
        - Idempotent; a no-op when nothing is playing.
        - A pending speak() resolves False.
        """
        raise NotImplementedError

    async def release(self) -> bool:
        """
        Release the audio device so speech input can use it.

        Returns True when the platform confirms the release, False when it
        cannot tell. On False the orchestrator falls back to a fixed
        settling delay.
        """
        return False
