"""
Multi - Run independent steps concurrently as a single step.

Useful for speeding up startup or shutdown where no step depends on
another, e.g. opening connections to a database, a cache and a config
service at the same time:

    startup = [load_settings, multi(connect_db, connect_cache, connect_config)]

Order among the composed steps is not guaranteed. Only the first error
(in completion order) is reported.
"""

import asyncio

import structlog

from .context import Context, Step, call_step, step_name, until_done
from .tasks import TaskScope

__all__ = ["multi"]

logger = structlog.get_logger(__name__)


def multi(*steps: Step) -> Step:
    """Compose steps into one that runs them all concurrently.

    The composed step waits for every step to report, then raises the
    first error received. If the context finishes first it raises the
    context's error right away; steps still running are detached.
    """

    async def run_all(ctx: Context) -> None:
        scope = TaskScope("multi")
        reports: asyncio.Queue[BaseException | None] = asyncio.Queue()

        async def report(step: Step) -> BaseException | None:
            err: BaseException | None = None
            try:
                err = await call_step(step, ctx)
            finally:
                reports.put_nowait(err)
            return err

        for step in steps:
            scope.spawn(report(step), name=step_name(step))

        first: BaseException | None = None
        try:
            for _ in steps:
                err = await until_done(ctx, reports.get())
                if first is None and err is not None:
                    first = err
        except BaseException:
            scope.detach_outstanding()
            raise

        if first is not None:
            logger.debug("multi_step_failed", steps=len(steps), error=str(first))
            raise first

    run_all.__qualname__ = f"multi({', '.join(step_name(s) for s in steps)})"
    return run_all
