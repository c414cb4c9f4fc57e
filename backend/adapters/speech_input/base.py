"""
Speech input contract.

This module defines the *interface only*: no state machine, no retries,
no timers, no orchestration decisions live here.

Key invariants:
- Run IDs are owned by the orchestrator. Sources never see them; the runtime
  tags every result with the run_id of the stream that produced it.
- A stream yields zero or more SpeechPartial results and ends after at most
  one terminal result (SpeechFinal or SpeechError). Ending without a terminal
  result is allowed (e.g. the platform recognizer gave up silently).
- Cancellation is explicit: the runtime cancels the consuming task and then
  calls stop(). Nothing buffered for a cancelled stream may be delivered later.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class SpeechPartial:
    """Unstable transcript; may be revised by later partials."""
    text: str


@dataclass(frozen=True)
class SpeechFinal:
    """Final transcript. Terminal."""
    text: str


@dataclass(frozen=True)
class SpeechError:
    """Recognition failure. Terminal."""
    message: str


SpeechResult = Union[SpeechPartial, SpeechFinal, SpeechError]


class SpeechInputSource(ABC):
    """
    Abstract interface for a platform speech recognizer.

    Implementations are responsible for:
    - Opening one recognition stream per listen() call
    - Translating engine callbacks into SpeechResult values
    - Releasing the microphone on stop()/destroy()

    Non-responsibilities:
    - No phase logic (IDLE/LISTENING/etc.)
    - No decision about what happens with a final transcript
    - No direct interaction with the UI
    """

    @abstractmethod
    def listen(self, locale: str) -> AsyncGenerator[SpeechResult, None]:
        """
        Open a recognition stream for the given locale.

        Returns an async generator of results. The generator is lazy: the
        stream is opened when iteration starts, and closing the generator
        closes the stream.
        """
        raise NotImplementedError

    @abstractmethod
    async def stop(self) -> None:
        """
        Stop the active stream, if any.

        Contract:
        - MUST be idempotent and safe to call with no stream open.
        - After stop(), the active iterator must end without yielding
          further results.
        """
        raise NotImplementedError

    @abstractmethod
    async def destroy(self) -> None:
        """
        Release the recognizer for good (controller teardown).

        Implies stop(). listen() must not be called afterwards.
        """
        raise NotImplementedError
