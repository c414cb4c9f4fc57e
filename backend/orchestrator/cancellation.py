"""
Per-service task registry.

Responsibilities:
- Own at most one asyncio task per Service
- Cancel the previous task when a new run of the same service starts
- Cancel on request and on teardown, awaiting completion on teardown

Non-responsibilities:
- NO state machine decisions
- NO run_id generation
- NO adapter calls (the runtime stops adapters after cancelling)

This module is infrastructure only.
"""

from __future__ import annotations

import asyncio
from asyncio import Task
from collections.abc import Coroutine
from typing import Any

from orchestrator.enums.service import Service
from observability.logger import log_event


class CancellationManager:
    """
    Runtime manager for service tasks.

    Lifecycle:
    1. Reducer emits StartX(run_id)
    2. Runtime calls start(service, run_id, coro); an older task for the
       service is cancelled first
    3a. Task finishes and reports its completion event itself
    3b. Reducer emits StopX/CancelX -> runtime calls cancel(service)

    A task never cancels itself: a completion handler that starts the next
    run of its own service (e.g. a queued send) only replaces the entry.
    """

    def __init__(self, *, session_id: str | None = None) -> None:
        self._session_id = session_id
        self._tasks: dict[Service, Task[None]] = {}
        # Cancelled but not finished yet
        self._cancelling: set[Task[None]] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(
        self,
        *,
        service: Service,
        run_id: int,
        coro: Coroutine[Any, Any, None],
    ) -> Task[None]:
        """Start the task for a new run, replacing any previous one."""
        self.cancel(service)

        task = asyncio.create_task(coro, name=f"{service.value}:{run_id}")
        self._tasks[service] = task
        task.add_done_callback(
            lambda t, s=service, r=run_id: self._on_done(s, r, t)
        )
        return task

    def cancel(self, service: Service) -> bool:
        """
        Cancel the task for a service.

        Returns True if a running task was cancelled.
        """
        task = self._tasks.pop(service, None)
        if task is None or task.done():
            return False
        if task is asyncio.current_task():
            return False
        task.cancel()
        self._cancelling.add(task)
        return True

    async def clear_all(self) -> None:
        """
        Cancel every task and wait for all of them to finish.
        Used on session teardown.
        """
        current = asyncio.current_task()
        tasks = [
            task
            for task in list(self._tasks.values()) + list(self._cancelling)
            if task is not current
        ]
        self._tasks.clear()

        for task in tasks:
            task.cancel()

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _on_done(self, service: Service, run_id: int, task: Task[None]) -> None:
        self._cancelling.discard(task)
        if self._tasks.get(service) is task:
            del self._tasks[service]

        if task.cancelled():
            return

        exc = task.exception()
        if exc is not None:
            log_event({
                "event_type": "SERVICE_TASK_CRASHED",
                "session_id": self._session_id,
                "service": service.value,
                "run_id": run_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
