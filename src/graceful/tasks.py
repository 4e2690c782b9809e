"""
Task Scope - Tracks background work spawned for steps.

asyncio only keeps weak references to tasks, so anything spawned for a
step is held here until it finishes. Work the orchestrator stops waiting
for (timeouts) is detached rather than forgotten: it keeps running, its
outcome is logged when it eventually finishes, and the result is
discarded.
"""

import asyncio
from collections.abc import Coroutine
from typing import Any

import structlog

__all__ = ["TaskScope"]

logger = structlog.get_logger(__name__)


class TaskScope:
    """Owns the tasks spawned for one phase of a run.

    Example:
        scope = TaskScope("shutdown")
        task = scope.spawn(call_step(step, ctx), name="close_db")
        ...
        scope.detach_outstanding()  # on timeout
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._tasks: set[asyncio.Task] = set()
        self._detached: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
        """Create a tracked task."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def outstanding(self) -> list[asyncio.Task]:
        """Tasks that have not finished yet."""
        return [t for t in self._tasks if not t.done()]

    @property
    def detached(self) -> list[asyncio.Task]:
        """Detached tasks that have not finished yet."""
        return [t for t in self._detached if not t.done()]

    def detach(self, task: asyncio.Task) -> None:
        """Stop caring about a task's result; log it when it arrives."""
        if task.done() or task in self._detached:
            return
        self._detached.add(task)
        task.add_done_callback(self._on_detached_done)

    def detach_outstanding(self) -> int:
        """Detach every unfinished task. Returns how many were detached."""
        pending = self.outstanding
        for task in pending:
            self.detach(task)
        if pending:
            logger.warning("steps_detached", scope=self.name, count=len(pending))
        return len(pending)

    def cancel_outstanding(self) -> int:
        """Cancel every unfinished task. Returns how many were cancelled."""
        pending = self.outstanding
        for task in pending:
            task.cancel()
        return len(pending)

    def _on_detached_done(self, task: asyncio.Task) -> None:
        self._detached.discard(task)

        if task.cancelled():
            logger.debug("detached_step_finished", scope=self.name, task=task.get_name(), cancelled=True)
            return

        exc = task.exception()
        result = exc if exc is not None else task.result()
        if isinstance(result, BaseException):
            logger.warning(
                "detached_step_finished",
                scope=self.name,
                task=task.get_name(),
                error=str(result) or type(result).__name__,
            )
        else:
            logger.debug("detached_step_finished", scope=self.name, task=task.get_name())

    def __len__(self) -> int:
        return len(self.outstanding)
