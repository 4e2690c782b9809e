"""Tests for the execution context and step invocation."""

import asyncio
import threading
import time

import pytest

from graceful import Cancelled, Context, DeadlineExceeded, call_step, until_done


class TestContext:
    """Test cancellation and deadlines."""

    @pytest.mark.asyncio
    async def test_initial_state(self):
        """A fresh context without timeout is live and unlimited."""
        ctx = Context()

        assert not ctx.done()
        assert ctx.err is None
        assert ctx.deadline is None
        assert ctx.remaining() is None

    @pytest.mark.asyncio
    async def test_cancel(self):
        """Cancel finishes the context with Cancelled."""
        ctx = Context()

        assert ctx.cancel() is True
        await asyncio.wait_for(ctx.wait(), timeout=1)

        assert ctx.done()
        assert isinstance(ctx.err, Cancelled)
        assert str(ctx.err) == "context canceled"

    @pytest.mark.asyncio
    async def test_first_reason_wins(self):
        """A second cancel does not change the error."""
        ctx = Context()
        ctx.cancel()
        first = ctx.err

        assert ctx.cancel() is False
        assert ctx.err is first

    @pytest.mark.asyncio
    async def test_deadline(self):
        """Timeout finishes the context with DeadlineExceeded."""
        ctx = Context(timeout=0.05)
        assert ctx.remaining() > 0

        await asyncio.wait_for(ctx.wait(), timeout=1)

        assert isinstance(ctx.err, DeadlineExceeded)
        assert isinstance(ctx.err, TimeoutError)
        assert ctx.remaining() == 0.0

    @pytest.mark.asyncio
    async def test_cancel_from_thread(self):
        """Cancel is safe from another thread and wakes waiters."""
        ctx = Context()
        waiter = asyncio.ensure_future(ctx.wait())

        threading.Thread(target=ctx.cancel).start()

        await asyncio.wait_for(waiter, timeout=1)
        assert ctx.done()

    @pytest.mark.asyncio
    async def test_wait_sync(self):
        """Threads can block on the context."""
        ctx = Context(timeout=0.05)

        finished = await asyncio.to_thread(ctx.wait_sync, 1)

        assert finished is True


class TestUntilDone:
    """Test racing work against a context."""

    @pytest.mark.asyncio
    async def test_returns_result(self):
        """Result is returned when the work finishes first."""
        ctx = Context(timeout=1)

        async def work():
            return 42

        assert await until_done(ctx, work()) == 42

    @pytest.mark.asyncio
    async def test_raises_context_error(self):
        """Context error is raised when the context finishes first."""
        ctx = Context(timeout=0.05)
        started = time.monotonic()

        with pytest.raises(DeadlineExceeded):
            await until_done(ctx, asyncio.sleep(5))

        assert time.monotonic() - started < 1

    @pytest.mark.asyncio
    async def test_leaves_tasks_running(self):
        """A task passed in keeps running after the context wins."""
        ctx = Context()
        release = asyncio.Event()
        task = asyncio.create_task(release.wait())
        ctx.cancel()

        with pytest.raises(Cancelled):
            await until_done(ctx, task)

        assert not task.done()
        release.set()
        await task


class TestCallStep:
    """Test running async and sync steps."""

    @pytest.mark.asyncio
    async def test_async_success(self):
        """Successful async step returns None."""
        ctx = Context()

        async def step(ctx):
            await asyncio.sleep(0)

        assert await call_step(step, ctx) is None

    @pytest.mark.asyncio
    async def test_async_error_returned(self):
        """Raised exceptions become the returned error."""
        ctx = Context()
        boom = ValueError("boom")

        async def step(ctx):
            raise boom

        assert await call_step(step, ctx) is boom

    @pytest.mark.asyncio
    async def test_sync_step_runs_on_thread(self):
        """Plain callables run off the event loop thread."""
        ctx = Context()
        threads = []

        def step(ctx):
            threads.append(threading.current_thread())

        assert await call_step(step, ctx) is None
        assert threads[0] is not threading.main_thread()
        assert threads[0].daemon

    @pytest.mark.asyncio
    async def test_sync_step_error(self):
        """Errors from sync steps are returned too."""
        ctx = Context()

        def step(ctx):
            raise RuntimeError("sync failure")

        err = await call_step(step, ctx)

        assert isinstance(err, RuntimeError)
        assert str(err) == "sync failure"

    @pytest.mark.asyncio
    async def test_sync_step_sees_cancellation(self):
        """Sync steps observe the context cooperatively."""
        ctx = Context(timeout=0.05)

        def step(ctx):
            while not ctx.wait_sync(0.01):
                pass
            raise ctx.err

        err = await call_step(step, ctx)

        assert isinstance(err, DeadlineExceeded)

    @pytest.mark.asyncio
    async def test_callable_returning_awaitable(self):
        """Awaitables returned by plain callables are awaited."""
        ctx = Context()
        done = []

        async def work():
            done.append(True)

        assert await call_step(lambda ctx: work(), ctx) is None
        assert done == [True]

    @pytest.mark.asyncio
    async def test_awaiting_cancelled_task_is_step_error(self):
        """A step that awaits a task it cancelled fails instead of cancelling the caller."""
        ctx = Context()

        async def close_worker(ctx):
            worker = asyncio.create_task(asyncio.sleep(10))
            await asyncio.sleep(0)
            worker.cancel()
            await worker

        err = await call_step(close_worker, ctx)

        assert isinstance(err, asyncio.CancelledError)

    @pytest.mark.asyncio
    async def test_caller_cancellation_propagates(self):
        """Cancelling the task running the step still cancels it."""
        ctx = Context()

        async def step(ctx):
            await asyncio.sleep(10)

        task = asyncio.create_task(call_step(step, ctx))
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_sync_step_system_exit(self):
        """SystemExit on a worker thread is returned, not lost."""
        ctx = Context()

        def step(ctx):
            raise SystemExit(3)

        err = await asyncio.wait_for(call_step(step, ctx), timeout=1)

        assert isinstance(err, SystemExit)
        assert err.code == 3

    @pytest.mark.asyncio
    async def test_sync_step_stop_iteration(self):
        """StopIteration from a sync step becomes a RuntimeError."""
        ctx = Context()

        def step(ctx):
            raise StopIteration

        err = await asyncio.wait_for(call_step(step, ctx), timeout=1)

        assert isinstance(err, RuntimeError)
        assert isinstance(err.__cause__, StopIteration)
