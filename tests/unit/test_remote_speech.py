# pylint: disable=missing-module-docstring,missing-function-docstring
import asyncio
from typing import Any

import pytest

from adapters.speech_input.base import SpeechFinal, SpeechPartial, SpeechResult
from adapters.speech_input.remote import RemoteSpeechInput
from adapters.speech_output.remote import RemoteSpeechOutput


async def settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


async def consume(source: RemoteSpeechInput, into: list[SpeechResult]) -> None:
    async for result in source.listen("ja-JP"):
        into.append(result)


def test_stream_ends_after_final_without_stop_message() -> None:
    sent: list[dict[str, Any]] = []
    results: list[SpeechResult] = []

    async def scenario() -> None:
        source = RemoteSpeechInput(send_control=sent.append)
        task = asyncio.create_task(consume(source, results))
        await settle()

        assert source.deliver(SpeechPartial(text="こん"), stream_id=1) is True
        assert source.deliver(SpeechFinal(text="こんにちは"), stream_id=1) is True
        await task

        # Stream is gone once the final was consumed
        assert source.deliver(SpeechPartial(text="late")) is False

    asyncio.run(scenario())

    assert results == [SpeechPartial(text="こん"), SpeechFinal(text="こんにちは")]
    assert sent == [{"type": "INPUT_START", "stream_id": 1, "locale": "ja-JP"}]


def test_stop_closes_stream_and_tells_client() -> None:
    sent: list[dict[str, Any]] = []
    results: list[SpeechResult] = []

    async def scenario() -> None:
        source = RemoteSpeechInput(send_control=sent.append)
        task = asyncio.create_task(consume(source, results))
        await settle()

        await source.stop()
        await task

    asyncio.run(scenario())

    assert results == []
    assert sent[-1] == {"type": "INPUT_STOP", "stream_id": 1}


def test_results_for_other_streams_are_dropped() -> None:
    async def scenario() -> None:
        source = RemoteSpeechInput(send_control=lambda msg: None)
        assert source.deliver(SpeechFinal(text="nobody listening")) is False

        task = asyncio.create_task(consume(source, []))
        await settle()

        assert source.stream_id == 1
        assert source.deliver(SpeechFinal(text="old"), stream_id=0) is False

        await source.stop()
        await task

    asyncio.run(scenario())


def test_destroyed_source_refuses_to_listen() -> None:
    async def scenario() -> None:
        source = RemoteSpeechInput(send_control=lambda msg: None)
        await source.destroy()

        with pytest.raises(RuntimeError):
            await consume(source, [])

    asyncio.run(scenario())


def test_speak_resolves_from_client_completion() -> None:
    sent: list[dict[str, Any]] = []

    async def scenario() -> bool:
        sink = RemoteSpeechOutput(send_control=sent.append)
        task = asyncio.create_task(sink.speak("はい"))
        await settle()

        utterance_id = sent[0]["utterance_id"]
        assert sink.complete(utterance_id, True) is True
        assert sink.complete(utterance_id, True) is False
        return await task

    assert asyncio.run(scenario()) is True
    assert sent[0]["type"] == "SPEAK"
    assert sent[0]["text"] == "はい"


def test_stop_resolves_pending_speech_as_failed() -> None:
    sent: list[dict[str, Any]] = []

    async def scenario() -> bool:
        sink = RemoteSpeechOutput(send_control=sent.append)
        task = asyncio.create_task(sink.speak("long answer"))
        await settle()

        await sink.stop()
        return await task

    assert asyncio.run(scenario()) is False
    assert sent[-1] == {"type": "SPEAK_STOP"}


def test_release_waits_for_matching_acknowledgement() -> None:
    sent: list[dict[str, Any]] = []

    async def scenario() -> bool:
        sink = RemoteSpeechOutput(send_control=sent.append)
        assert sink.confirm_release("nothing-pending") is False

        task = asyncio.create_task(sink.release())
        await settle()
        release_id = sent[0]["release_id"]

        assert sink.confirm_release("someone-else") is False
        assert not task.done()
        assert sink.confirm_release(release_id) is True
        assert sink.confirm_release(release_id) is False
        return await task

    assert asyncio.run(scenario()) is True
    assert sent[0]["type"] == "OUTPUT_RELEASE"


def test_cancelled_release_ignores_its_late_acknowledgement() -> None:
    sent: list[dict[str, Any]] = []

    async def scenario() -> None:
        sink = RemoteSpeechOutput(send_control=sent.append)
        first = asyncio.create_task(sink.release())
        await settle()
        first.cancel()
        await asyncio.gather(first, return_exceptions=True)

        second = asyncio.create_task(sink.release())
        await settle()

        assert sink.confirm_release(sent[0]["release_id"]) is False
        assert not second.done()

        assert sink.confirm_release(sent[1]["release_id"]) is True
        assert await second is True

    asyncio.run(scenario())
