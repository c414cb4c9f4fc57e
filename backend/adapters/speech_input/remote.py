"""
Client-driven speech input.

The connected client (browser or phone) runs the platform recognizer. The
server announces streams with INPUT_START / INPUT_STOP control messages and
the gateway feeds the client's recognition messages back in via deliver().
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Callable
from typing import Any

from adapters.speech_input.base import (
    SpeechError,
    SpeechFinal,
    SpeechInputSource,
    SpeechResult,
)

ControlSink = Callable[[dict[str, Any]], None]


class RemoteSpeechInput(SpeechInputSource):
    """
    Speech input whose recognizer lives on the client.

    Design:
    - One queue per stream; deliver() feeds the open stream only
    - stream_id lets the gateway drop results for a stream the
      server already closed
    - A None in the queue ends the stream without a terminal result
    """

    def __init__(self, *, send_control: ControlSink) -> None:
        self._send_control = send_control
        self._queue: asyncio.Queue[SpeechResult | None] | None = None
        self._stream_id = 0
        self._destroyed = False

    @property
    def stream_id(self) -> int:
        """Id of the most recently opened stream (0 before the first)."""
        return self._stream_id

    async def listen(self, locale: str) -> AsyncGenerator[SpeechResult, None]:
        if self._destroyed:
            raise RuntimeError("speech input destroyed")

        self._stream_id += 1
        stream_id = self._stream_id
        queue: asyncio.Queue[SpeechResult | None] = asyncio.Queue()
        self._queue = queue

        self._send_control({
            "type": "INPUT_START",
            "stream_id": stream_id,
            "locale": locale,
        })

        finished = False
        try:
            while True:
                result = await queue.get()
                if result is None:
                    return
                terminal = isinstance(result, (SpeechFinal, SpeechError))
                # A consumer may close the generator right after a terminal result
                finished = terminal
                yield result
                if terminal:
                    return
        finally:
            if self._queue is queue:
                self._queue = None
            # Client must stop its recognizer unless it ended the stream itself
            if not finished:
                self._send_control({
                    "type": "INPUT_STOP",
                    "stream_id": stream_id,
                })

    def deliver(self, result: SpeechResult | None, stream_id: int | None = None) -> bool:
        """
        Feed one client recognition message into the open stream.

        None closes the stream without a terminal result.

        Returns False (and drops the result) if no stream is open or
        stream_id names an older stream.
        """
        if self._queue is None:
            return False
        if stream_id is not None and stream_id != self._stream_id:
            return False
        self._queue.put_nowait(result)
        return True

    async def stop(self) -> None:
        if self._queue is not None:
            self._queue.put_nowait(None)
            self._queue = None

    async def destroy(self) -> None:
        await self.stop()
        self._destroyed = True
