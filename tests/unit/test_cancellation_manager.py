# pylint: disable=missing-module-docstring,missing-function-docstring
import asyncio
from typing import Any

import pytest

import orchestrator.cancellation as cancellation_mod
from orchestrator.cancellation import CancellationManager
from orchestrator.enums.service import Service


async def settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


async def forever() -> None:
    await asyncio.Event().wait()


def test_new_run_cancels_previous_task() -> None:
    async def scenario() -> None:
        manager = CancellationManager(session_id="s1")
        first = manager.start(service=Service.INPUT, run_id=1, coro=forever())
        second = manager.start(service=Service.INPUT, run_id=2, coro=forever())
        await settle()

        assert first.cancelled()
        assert not second.done()
        await manager.clear_all()
        assert second.cancelled()

    asyncio.run(scenario())


def test_cancel_reports_whether_anything_was_running() -> None:
    async def scenario() -> None:
        manager = CancellationManager()
        assert manager.cancel(Service.OUTPUT) is False

        manager.start(service=Service.OUTPUT, run_id=1, coro=forever())
        assert manager.cancel(Service.OUTPUT) is True
        assert manager.cancel(Service.OUTPUT) is False
        await manager.clear_all()

    asyncio.run(scenario())


def test_task_starting_its_own_successor_is_not_cancelled() -> None:
    marks: list[str] = []

    async def scenario() -> None:
        manager = CancellationManager()

        async def second() -> None:
            await asyncio.sleep(0)
            marks.append("second_done")

        async def first() -> None:
            manager.start(service=Service.TRANSPORT, run_id=2, coro=second())
            await asyncio.sleep(0)
            marks.append("first_done")

        first_task = manager.start(service=Service.TRANSPORT, run_id=1, coro=first())
        await settle()

        assert first_task.done() and not first_task.cancelled()

    asyncio.run(scenario())

    assert sorted(marks) == ["first_done", "second_done"]


def test_clear_all_waits_for_tasks_still_cancelling() -> None:
    cleaned: list[str] = []

    async def slow_cleanup() -> None:
        try:
            await asyncio.Event().wait()
        finally:
            await asyncio.sleep(0)
            cleaned.append("done")

    async def scenario() -> None:
        manager = CancellationManager()
        manager.start(service=Service.HANDOVER, run_id=1, coro=slow_cleanup())
        await settle()

        manager.cancel(Service.HANDOVER)
        await manager.clear_all()

    asyncio.run(scenario())

    assert cleaned == ["done"]


def test_crashed_task_is_logged(monkeypatch: pytest.MonkeyPatch) -> None:
    emitted: list[dict[str, Any]] = []
    monkeypatch.setattr(cancellation_mod, "log_event", emitted.append)

    async def boom() -> None:
        raise ValueError("bad adapter")

    async def scenario() -> None:
        manager = CancellationManager(session_id="s1")
        manager.start(service=Service.TRANSPORT, run_id=3, coro=boom())
        await settle()

    asyncio.run(scenario())

    assert emitted == [{
        "event_type": "SERVICE_TASK_CRASHED",
        "session_id": "s1",
        "service": "TRANSPORT",
        "run_id": 3,
        "exception": "ValueError",
        "message": "bad adapter",
    }]
