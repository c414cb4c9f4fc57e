"""
Client-driven speech output.

The connected client runs the platform synthesizer. The server sends SPEAK /
SPEAK_STOP / OUTPUT_RELEASE control messages; the gateway resolves pending
calls when the client answers SPEAK_DONE / SPEAK_ERROR / OUTPUT_RELEASED.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any
from uuid import uuid4

from adapters.speech_output.base import SpeechOutputSink

ControlSink = Callable[[dict[str, Any]], None]


class RemoteSpeechOutput(SpeechOutputSink):
    """
    Speech output whose synthesizer lives on the client.

    Design:
    - One future per utterance, keyed by utterance_id
    - stop() resolves every pending utterance as not successful
    - release() waits for the OUTPUT_RELEASED carrying its release_id;
      the runtime bounds the wait with its fallback timer and cancels it
      once the handover is over
    """

    def __init__(self, *, send_control: ControlSink) -> None:
        self._send_control = send_control
        self._pending: dict[str, asyncio.Future[bool]] = {}
        self._release: tuple[str, asyncio.Future[bool]] | None = None

    async def speak(self, text: str) -> bool:
        utterance_id = uuid4().hex[:12]
        future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        self._pending[utterance_id] = future

        self._send_control({
            "type": "SPEAK",
            "utterance_id": utterance_id,
            "text": text,
        })

        try:
            return await future
        finally:
            self._pending.pop(utterance_id, None)

    def complete(self, utterance_id: str, success: bool) -> bool:
        """
        Resolve a pending utterance from a client SPEAK_DONE / SPEAK_ERROR.

        Returns False if the utterance is unknown or already resolved.
        """
        future = self._pending.get(utterance_id)
        if future is None or future.done():
            return False
        future.set_result(success)
        return True

    async def stop(self) -> None:
        self._send_control({"type": "SPEAK_STOP"})
        for future in self._pending.values():
            if not future.done():
                future.set_result(False)

    async def release(self) -> bool:
        release_id = uuid4().hex[:12]
        future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        self._release = (release_id, future)
        self._send_control({"type": "OUTPUT_RELEASE", "release_id": release_id})
        try:
            return await future
        finally:
            if self._release is not None and self._release[1] is future:
                self._release = None

    def confirm_release(self, release_id: str) -> bool:
        """
        Resolve the pending release() from a client OUTPUT_RELEASED.

        Returns False if no release is pending or release_id names an
        earlier one.
        """
        if self._release is None:
            return False
        pending_id, future = self._release
        if release_id != pending_id or future.done():
            return False
        future.set_result(True)
        return True
