"""
Tests for the bounded task queue.

This test suite covers:
1. Concurrency cap
2. FIFO dispatch
3. Completion exactly once per idle period
4. Tasks that fail or call done() more than once
"""

import asyncio

import pytest

from trellis.core.queue import QueueError, TaskQueue


class TestDispatch:
    """Test task dispatch."""

    def test_rejects_invalid_cap(self):
        with pytest.raises(QueueError):
            TaskQueue(0)

    def test_fifo_and_cap_with_callback_tasks(self):
        queue = TaskQueue(2)
        started = []
        pending = []

        def make(name):
            def task(done):
                started.append(name)
                pending.append(done)

            return task

        for name in "abcde":
            queue.enqueue(make(name))

        assert started == ["a", "b"]
        assert queue.status() == {"queued": 3, "active": 2, "total": 5}

        pending.pop(0)()
        assert started == ["a", "b", "c"]
        assert queue.active_tasks == 2

    def test_done_is_one_shot(self):
        queue = TaskQueue(1)
        finished = []

        def task(done):
            done()
            done()

        queue.enqueue(task)
        queue.enqueue(lambda done: (finished.append(True), done()))

        assert finished == [True]
        assert queue.active_tasks == 0

    def test_sync_exception_counts_as_done(self):
        queue = TaskQueue(1)
        ran = []

        def broken(done):
            raise RuntimeError("broken task")

        queue.enqueue(broken)
        queue.enqueue(lambda done: (ran.append(True), done()))

        assert ran == [True]
        assert queue.is_idle()

    @pytest.mark.asyncio
    async def test_cap_never_exceeded_with_coroutines(self):
        queue = TaskQueue(3)
        state = {"active": 0, "peak": 0, "finished": 0}
        drained = asyncio.Event()

        async def work():
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
            assert queue.active_tasks <= queue.max_concurrent
            await asyncio.sleep(0.005)
            state["active"] -= 1
            state["finished"] += 1

        for _ in range(10):
            queue.enqueue(lambda done: work())
        queue.on_complete(drained.set)

        await asyncio.wait_for(drained.wait(), timeout=5)

        assert state["finished"] == 10
        assert state["peak"] == 3


class TestCompletion:
    """Test completion signalling."""

    @pytest.mark.asyncio
    async def test_completion_fires_once(self):
        queue = TaskQueue(2)
        completions = []

        async def work():
            await asyncio.sleep(0.001)

        for _ in range(4):
            queue.enqueue(lambda done: work())
        queue.on_complete(lambda: completions.append(True))

        await asyncio.sleep(0.05)
        assert completions == [True]

    def test_callback_registered_after_idle_fires_immediately(self):
        queue = TaskQueue(1)
        queue.enqueue(lambda done: done())

        completions = []
        queue.on_complete(lambda: completions.append(True))

        assert completions == [True]

    def test_enqueue_rearms_completion(self):
        queue = TaskQueue(1)
        completions = []
        queue.on_complete(lambda: completions.append(True))
        assert completions == [True]

        queue.enqueue(lambda done: done())
        assert completions == [True, True]

        queue.on_complete(lambda: completions.append(True))
        assert completions == [True, True]

    @pytest.mark.asyncio
    async def test_async_completion_callback(self):
        queue = TaskQueue(1)
        finished = asyncio.Event()

        async def on_done():
            finished.set()

        queue.enqueue(lambda done: done())
        queue.on_complete(on_done)

        await asyncio.wait_for(finished.wait(), timeout=1)
