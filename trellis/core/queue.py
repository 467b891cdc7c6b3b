"""
Bounded Task Queue.

Runs deferred tasks from a FIFO backlog with at most N of them active at
once, and signals completion once per idle period.

A task is a callable taking a ``done`` continuation:

    def task(done):
        start_something(on_finish=done)

Tasks may also be coroutine functions; the returned awaitable is scheduled
on the running loop and ``done`` is called when it finishes.
"""

import asyncio
import inspect
import logging
from collections import deque
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Done = Callable[[], None]
Task = Callable[[Done], Any]


class QueueError(Exception):
    """Base exception for task queue errors."""

    pass


class TaskQueue:
    """
    FIFO backlog dispatched with a concurrency cap.

    Attributes:
        max_concurrent: Maximum number of simultaneously active tasks
        active_tasks: Number of tasks currently running
    """

    def __init__(self, max_concurrent: int):
        if max_concurrent < 1:
            raise QueueError(f"max_concurrent must be at least 1, got {max_concurrent}")
        self.max_concurrent = max_concurrent
        self.active_tasks = 0
        self._backlog: deque[Task] = deque()
        self._on_complete: Callable[[], Any] | None = None
        self._completed = False

    def enqueue(self, task: Task) -> "TaskQueue":
        """Append a task to the backlog and dispatch."""
        self._backlog.append(task)
        # New work opens a new idle period.
        self._completed = False
        self._process()
        return self

    def on_complete(self, callback: Callable[[], Any]) -> "TaskQueue":
        """
        Register the completion callback.

        Fires immediately if the queue is already idle, so a callback set
        after every task finished is not lost.
        """
        self._on_complete = callback
        if self.is_idle():
            self._fire_complete()
        return self

    def is_idle(self) -> bool:
        return not self._backlog and self.active_tasks == 0

    def status(self) -> dict[str, int]:
        """Get the current queue status."""
        return {
            "queued": len(self._backlog),
            "active": self.active_tasks,
            "total": len(self._backlog) + self.active_tasks,
        }

    def _process(self) -> None:
        logger.debug(
            "TaskQueue status: %d queued, %d active", len(self._backlog), self.active_tasks
        )

        if self.is_idle():
            self._fire_complete()
            return

        while self.active_tasks < self.max_concurrent and self._backlog:
            task = self._backlog.popleft()
            self.active_tasks += 1
            self._run(task)

    def _run(self, task: Task) -> None:
        finished = False

        def done() -> None:
            nonlocal finished
            if finished:
                return
            finished = True
            self.active_tasks -= 1
            self._process()

        try:
            outcome = task(done)
        except Exception as e:
            logger.error("Task raised synchronously: %s", e, exc_info=e)
            done()
            return

        if inspect.isawaitable(outcome):
            future = asyncio.ensure_future(outcome)

            def settle(f: asyncio.Future) -> None:
                if not f.cancelled() and f.exception() is not None:
                    logger.error("Task failed: %s", f.exception(), exc_info=f.exception())
                done()

            future.add_done_callback(settle)

    def _fire_complete(self) -> None:
        if self._on_complete is None or self._completed:
            return
        self._completed = True
        logger.debug("All tasks completed, calling completion callback")
        outcome = self._on_complete()
        if inspect.isawaitable(outcome):
            asyncio.ensure_future(outcome)
