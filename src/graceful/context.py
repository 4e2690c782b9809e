"""
Execution Context - Cancellation and deadline handle for steps.

Every step receives a Context. The orchestrator cancels it (or lets its
deadline fire) when the step's phase is over; steps observe that
cooperatively:

    async def connect_db(ctx: Context) -> None:
        await until_done(ctx, pool.open())

    def warm_cache(ctx: Context) -> None:   # runs on a worker thread
        for key in keys:
            if ctx.done():
                raise ctx.err
            cache.load(key)

Steps are coroutine functions (run on the loop) or plain callables (run on
a daemon thread so they can never block the loop or interpreter exit).
"""

import asyncio
import inspect
import threading
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

from .errors import Cancelled, ContextError, DeadlineExceeded

__all__ = ["Context", "Step", "call_step", "step_name", "until_done"]

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Step = Callable[["Context"], Awaitable[None] | None]


class Context:
    """Cancellation/timeout handle passed to a step.

    Must be created inside a running event loop. Finishing is one-shot:
    the first of cancel() or the deadline decides `err`.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self._loop = asyncio.get_running_loop()
        self._lock = threading.Lock()
        self._finished = threading.Event()
        self._err: ContextError | None = None
        self._waiters: set[asyncio.Future] = set()
        self._timer: asyncio.TimerHandle | None = None
        self.deadline: float | None = None

        if timeout is not None:
            self.deadline = time.monotonic() + timeout
            self._timer = self._loop.call_later(timeout, self._finish, DeadlineExceeded())

    @property
    def err(self) -> ContextError | None:
        """Why the context finished (None while still live)."""
        return self._err

    def done(self) -> bool:
        """Check if the context was cancelled or timed out."""
        return self._finished.is_set()

    def remaining(self) -> float | None:
        """Seconds left before the deadline (None if unlimited)."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def cancel(self) -> bool:
        """Cancel the context. Safe from any thread.

        Returns:
            True if this call finished the context
        """
        return self._finish(Cancelled())

    async def wait(self) -> None:
        """Wait until the context finishes."""
        if self._finished.is_set():
            return

        fut = asyncio.get_running_loop().create_future()
        with self._lock:
            if self._err is not None:
                return
            self._waiters.add(fut)

        try:
            await fut
        finally:
            with self._lock:
                self._waiters.discard(fut)

    def wait_sync(self, timeout: float | None = None) -> bool:
        """Block the calling thread until the context finishes.

        Returns:
            True if finished, False if timeout elapsed first
        """
        return self._finished.wait(timeout)

    def _finish(self, err: ContextError) -> bool:
        with self._lock:
            if self._err is not None:
                return False
            self._err = err
            waiters = list(self._waiters)
            self._waiters.clear()

        self._finished.set()

        if self._loop.is_closed():
            return True
        try:
            self._loop.call_soon_threadsafe(self._wake, waiters)
        except RuntimeError:
            # Loop closed between the check and the call; nothing left to wake
            pass
        return True

    def _wake(self, waiters: list[asyncio.Future]) -> None:
        if self._timer is not None:
            self._timer.cancel()
        for fut in waiters:
            if not fut.done():
                fut.set_result(None)

    def __repr__(self) -> str:
        state = type(self._err).__name__ if self._err else "live"
        return f"<Context {state} remaining={self.remaining()}>"


async def until_done(ctx: Context, aw: Awaitable[T]) -> T:
    """Await `aw` unless the context finishes first.

    A coroutine passed in is wrapped and cancelled if the context wins;
    a task or future passed in is left running.

    Raises:
        ContextError: The context's error if it finished first
    """
    fut = asyncio.ensure_future(aw)
    owned = fut is not aw
    finished = asyncio.ensure_future(ctx.wait())

    try:
        await asyncio.wait({fut, finished}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        if owned:
            fut.cancel()
        raise
    finally:
        finished.cancel()

    if fut.done():
        return fut.result()

    if owned:
        fut.cancel()
    raise ctx.err


def step_name(step: Any) -> str:
    """Readable name of a step for logs and thread names."""
    return (
        getattr(step, "__qualname__", None)
        or getattr(step, "__name__", None)
        or type(step).__name__
    )


def _is_async(step: Any) -> bool:
    return inspect.iscoroutinefunction(step) or inspect.iscoroutinefunction(
        getattr(step, "__call__", None)
    )


async def _run_in_thread(step: Step, ctx: Context) -> Any:
    """Run a synchronous step on a daemon thread and await its result."""
    loop = asyncio.get_running_loop()
    future = loop.create_future()
    name = step_name(step)

    def resolve(result: Any, error: BaseException | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    def target() -> None:
        result, error = None, None
        try:
            result = step(ctx)
        except StopIteration as e:
            # Futures cannot carry StopIteration
            error = RuntimeError("step raised StopIteration")
            error.__cause__ = e
        except BaseException as e:
            error = e
        try:
            loop.call_soon_threadsafe(resolve, result, error)
        except RuntimeError:
            logger.debug("step_result_dropped", step=name, error=str(error) if error else None)

    threading.Thread(target=target, name=f"graceful-step:{name}", daemon=True).start()
    return await future


async def call_step(step: Step, ctx: Context) -> BaseException | None:
    """Run one step and return its error (None on success).

    Whatever the step raises is its error, including SystemExit from a
    worker thread and CancelledError from awaiting a cancelled task.
    Only cancellation of the calling task itself propagates.
    """
    try:
        if _is_async(step):
            await step(ctx)
        else:
            result = await _run_in_thread(step, ctx)
            if inspect.isawaitable(result):
                await result
    except asyncio.CancelledError as e:
        task = asyncio.current_task()
        if task is not None and task.cancelling():
            raise
        return e
    except BaseException as e:
        return e
    return None
