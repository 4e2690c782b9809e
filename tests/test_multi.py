"""Tests for concurrent step composition."""

import asyncio
import time

import pytest

from graceful import Cancelled, Context, DeadlineExceeded, call_step, multi

from helpers import blocked_step, recording_step


class TestMulti:
    """Test the multi() fan-out helper."""

    @pytest.mark.asyncio
    async def test_all_succeed(self, calls):
        """No error when every step succeeds."""
        step = multi(
            recording_step(calls, "a"),
            recording_step(calls, "b"),
            recording_step(calls, "c"),
        )

        await step(Context())

        assert sorted(calls) == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_empty(self):
        """Composing nothing is a no-op step."""
        await multi()(Context())

    @pytest.mark.asyncio
    async def test_runs_concurrently(self, calls):
        """Steps overlap instead of running back to back."""
        step = multi(*(recording_step(calls, f"s{i}", delay=0.1) for i in range(5)))
        started = time.monotonic()

        await step(Context())

        assert time.monotonic() - started < 0.4
        assert len(calls) == 5

    @pytest.mark.asyncio
    async def test_single_failure_reported(self, calls):
        """The one failing step's error is raised."""
        boom = ValueError("boom")
        step = multi(
            recording_step(calls, "fast"),
            recording_step(calls, "failing", delay=0.02, error=boom),
            recording_step(calls, "slow", delay=0.05),
        )

        with pytest.raises(ValueError) as exc_info:
            await step(Context())

        assert exc_info.value is boom

    @pytest.mark.asyncio
    async def test_waits_for_all_before_returning(self, calls):
        """An early failure does not cut the wait for the others short."""
        finished = []

        async def slow(ctx):
            await asyncio.sleep(0.1)
            finished.append("slow")

        step = multi(recording_step(calls, "failing", error=RuntimeError("early")), slow)

        with pytest.raises(RuntimeError):
            await step(Context())

        assert finished == ["slow"]

    @pytest.mark.asyncio
    async def test_first_error_in_completion_order(self, calls):
        """With several failures, the first to complete wins."""
        late = RuntimeError("late")
        early = RuntimeError("early")
        step = multi(
            recording_step(calls, "late", delay=0.1, error=late),
            recording_step(calls, "early", delay=0.01, error=early),
        )

        with pytest.raises(RuntimeError) as exc_info:
            await step(Context())

        assert exc_info.value is early

    @pytest.mark.asyncio
    async def test_context_timeout_returns_promptly(self, release):
        """Stalled steps do not hold up a timed-out context."""
        step = multi(blocked_step(release), blocked_step(release))
        started = time.monotonic()

        with pytest.raises(DeadlineExceeded):
            await step(Context(timeout=0.05))

        assert time.monotonic() - started < 1

    @pytest.mark.asyncio
    async def test_cancelled_context(self, release):
        """A cancelled context raises Cancelled right away."""
        ctx = Context()
        ctx.cancel()

        with pytest.raises(Cancelled):
            await multi(blocked_step(release))(ctx)

    @pytest.mark.asyncio
    async def test_mixed_sync_and_async(self, calls):
        """Sync and async steps compose together."""

        def sync_step(ctx):
            calls.append("sync")

        await multi(sync_step, recording_step(calls, "async"))(Context())

        assert sorted(calls) == ["async", "sync"]

    @pytest.mark.asyncio
    async def test_non_exception_errors_reported(self, calls):
        """Steps raising SystemExit or CancelledError still report; multi does not hang."""

        def exit_thread(ctx):
            raise SystemExit(3)

        async def close_worker(ctx):
            worker = asyncio.create_task(asyncio.sleep(10))
            await asyncio.sleep(0)
            worker.cancel()
            await worker

        step = multi(exit_thread, close_worker, recording_step(calls, "ok", delay=0.02))

        err = await asyncio.wait_for(call_step(step, Context()), timeout=1)

        assert isinstance(err, (SystemExit, asyncio.CancelledError))
        assert calls == ["ok"]

    def test_name(self):
        """Composed step is named after its members."""

        async def connect_db(ctx):
            pass

        async def connect_cache(ctx):
            pass

        step = multi(connect_db, connect_cache)

        assert "connect_db" in step.__qualname__
        assert "connect_cache" in step.__qualname__
