"""
Async Runtime - Promise/Result primitives on top of asyncio.

This module provides:
- Result: tagged success/failure value produced by every async operation
- Promise: deferred computation whose continuation fires exactly once
- wrap(): adapt a callback-style function into a promise factory
- spawn(): start a coroutine function, logging uncaught errors
- await_value() / try_await(): suspend until a promise settles
- join_all(), retry(), delay(): combinators

The asyncio event loop is the single cooperative thread. Continuations are
always marshalled back onto the loop before a waiting coroutine resumes.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


class AsyncError(Exception):
    """Raised by await_value() when a promise fails with a non-exception error."""

    def __init__(self, error: Any):
        super().__init__(str(error))
        self.error = error


@dataclass(frozen=True)
class Result:
    """
    Outcome of an asynchronous operation.

    Attributes:
        ok: True for success, False for failure
        value: Success value (None on failure)
        error: Failure error (None on success)
    """

    ok: bool
    value: Any = None
    error: Any = None

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: Any) -> "Result":
        return cls(ok=False, error=error)

    def unwrap(self) -> Any:
        """Return the value, or raise the failure."""
        if self.ok:
            return self.value
        if isinstance(self.error, BaseException):
            raise self.error
        raise AsyncError(self.error)


Continuation = Callable[[Result], None]
Executor = Callable[[Continuation], Any]


class Promise:
    """
    A deferred computation settled exactly once with a Result.

    The executor receives a settle function and is started lazily, the first
    time a continuation is attached. Later continuations receive the cached
    result. Synchronous exceptions raised by the executor settle the promise
    as a failure.

    Promises are awaitable: ``result = await promise`` suspends the current
    coroutine and returns the Result without raising.
    """

    def __init__(self, executor: Executor):
        self._executor = executor
        self._started = False
        self._result: Result | None = None
        self._continuations: list[Continuation] = []

    @classmethod
    def resolved(cls, value: Any = None) -> "Promise":
        return cls(lambda settle: settle(Result.success(value)))

    @classmethod
    def rejected(cls, error: Any) -> "Promise":
        return cls(lambda settle: settle(Result.failure(error)))

    @classmethod
    def from_coroutine(cls, func: Callable[..., Awaitable[Any]], *args: Any) -> "Promise":
        """Run func(*args) as a task; its return value or exception settles the promise."""

        def executor(settle: Continuation) -> None:
            task = asyncio.ensure_future(func(*args))

            def finished(t: asyncio.Future) -> None:
                if t.cancelled():
                    settle(Result.failure(asyncio.CancelledError()))
                elif t.exception() is not None:
                    settle(Result.failure(t.exception()))
                else:
                    settle(Result.success(t.result()))

            task.add_done_callback(finished)

        return cls(executor)

    @property
    def settled(self) -> bool:
        return self._result is not None

    @property
    def result(self) -> Result | None:
        return self._result

    def then(self, callback: Continuation) -> None:
        """Attach a continuation, starting the executor if needed."""
        if self._result is not None:
            callback(self._result)
            return
        self._continuations.append(callback)
        self._start()

    def _start(self) -> None:
        if self._started:
            return
        self._started = True
        try:
            self._executor(self._settle)
        except Exception as e:
            self._settle(Result.failure(e))

    def _settle(self, result: Any) -> None:
        if self._result is not None:
            logger.debug("Ignoring duplicate settlement of %r", self)
            return
        if not isinstance(result, Result):
            result = Result.success(result)
        self._result = result
        continuations, self._continuations = self._continuations, []
        for callback in continuations:
            callback(result)

    def __await__(self):
        return self._wait().__await__()

    async def _wait(self) -> Result:
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def resume(result: Result) -> None:
            if not future.done():
                future.set_result(result)

        # Resume on the loop thread whatever thread settled the promise.
        self.then(lambda result: loop.call_soon_threadsafe(resume, result))
        return await future


def _as_promise(obj: Any) -> Promise:
    if isinstance(obj, Promise):
        return obj
    if isinstance(obj, Awaitable):
        async def _await() -> Any:
            return await obj

        return Promise.from_coroutine(_await)
    raise TypeError(f"Expected a Promise or awaitable, got {type(obj).__name__}")


def wrap(func: Callable[..., Any]) -> Callable[..., Promise]:
    """
    Adapt a callback-accepting function into a promise factory.

    ``func`` is called as ``func(*args, callback)``; the values passed to the
    callback become the success value (None, the single value, or a tuple).

    Example:
        def read_flag(path, callback):
            callback(os.path.isdir(path))

        is_dir = wrap(read_flag)
        result = await is_dir("/tmp")
    """

    def factory(*args: Any) -> Promise:
        def executor(settle: Continuation) -> None:
            def callback(*values: Any) -> None:
                if not values:
                    settle(Result.success(None))
                elif len(values) == 1:
                    settle(Result.success(values[0]))
                else:
                    settle(Result.success(values))

            func(*args, callback)

        return Promise(executor)

    return factory


def spawn(func: Callable[..., Awaitable[Any]], *args: Any) -> asyncio.Task:
    """
    Start func(*args) as a task on the running loop.

    Uncaught exceptions are logged and never propagate to the caller.
    """
    task = asyncio.ensure_future(func(*args))

    def report(t: asyncio.Future) -> None:
        if t.cancelled():
            return
        exc = t.exception()
        if exc is not None:
            logger.error("Async error: %s", exc, exc_info=exc)

    task.add_done_callback(report)
    return task


async def await_value(promise: Promise | Awaitable[Any]) -> Any:
    """Suspend until the promise settles; return its value or raise its failure."""
    result = await _as_promise(promise)
    return result.unwrap()


async def try_await(promise: Promise | Awaitable[Any]) -> Result:
    """Suspend until the promise settles; return its Result."""
    return await _as_promise(promise)


def join_all(promises: Iterable[Promise]) -> Promise:
    """
    Settle after every promise has settled.

    Resolves with the list of values in input order, or with the first
    failure in settlement order. Failures never short-circuit the wait.
    """
    promises = list(promises)

    def executor(settle: Continuation) -> None:
        if not promises:
            settle(Result.success([]))
            return

        results: list[Result | None] = [None] * len(promises)
        state = {"completed": 0, "first_error": None, "failed": False}

        def make_callback(index: int) -> Continuation:
            def callback(result: Result) -> None:
                results[index] = result
                state["completed"] += 1
                if not result.ok and not state["failed"]:
                    state["failed"] = True
                    state["first_error"] = result.error
                if state["completed"] == len(promises):
                    if state["failed"]:
                        settle(Result.failure(state["first_error"]))
                    else:
                        settle(Result.success([r.value for r in results]))

            return callback

        for index, promise in enumerate(promises):
            promise.then(make_callback(index))

    return Promise(executor)


def delay(ms: float) -> Promise:
    """Promise resolving to success(None) after ``ms`` milliseconds."""

    def executor(settle: Continuation) -> None:
        loop = asyncio.get_running_loop()
        loop.call_later(ms / 1000, settle, Result.success(None))

    return Promise(executor)


def retry(
    factory: Callable[[], Promise],
    max_attempts: int = 3,
    initial_delay_ms: float = 100,
) -> Promise:
    """
    Invoke factory() until it succeeds, at most ``max_attempts`` times.

    Waits ``initial_delay_ms * 2 ** (attempt - 1)`` between attempts and
    surfaces the last failure once the attempts are exhausted.
    """

    def executor(settle: Continuation) -> None:
        loop = asyncio.get_running_loop()
        state = {"attempt": 0}

        def attempt() -> None:
            state["attempt"] += 1
            try:
                promise = _as_promise(factory())
            except Exception as e:
                promise = Promise.rejected(e)
            promise.then(check)

        def check(result: Result) -> None:
            if result.ok or state["attempt"] >= max_attempts:
                settle(result)
                return
            wait_ms = initial_delay_ms * (2 ** (state["attempt"] - 1))
            logger.debug(
                "Attempt %d/%d failed, retrying in %sms", state["attempt"], max_attempts, wait_ms
            )
            loop.call_later(wait_ms / 1000, attempt)

        attempt()

    return Promise(executor)
