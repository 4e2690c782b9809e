"""
Orchestrator - Startup, wait, shutdown.

Lifecycle.run() drives one cycle:

1. Resolve configuration. Invalid options abort the run as a startup error.
2. Run startup steps sequentially.
   - The first failing step stops the sequence; later steps never run.
   - A startup timeout stops waiting and is reported as the startup error.
3. Block until a shutdown request or an OS signal arrives.
   - Only the first request is observed. Default signals: SIGINT, SIGTERM.
4. Run shutdown steps concurrently and collect every error.
   - A shutdown timeout stops collecting and adds one timeout error.

Steps abandoned by a timeout keep running in the background; their late
results are logged and discarded, never added to the ExitReason.
"""

import asyncio
import signal
from collections.abc import Sequence
from enum import Enum

import structlog

from .config import Config, Option, resolve_config
from .context import Context, Step, call_step, step_name, until_done
from .errors import ConfigError, ContextError
from .exit_reason import ExitReason
from .lifecycle.shutdown import ShutdownSignal, default_shutdown_signal
from .lifecycle.signals import SignalListener
from .tasks import TaskScope

__all__ = ["Lifecycle", "LifecycleState", "run", "start"]

logger = structlog.get_logger(__name__)


class LifecycleState(Enum):
    """Phases of a lifecycle run."""

    CREATED = "created"
    RESOLVING_CONFIG = "resolving_config"
    RUNNING_STARTUP = "running_startup"
    AWAITING_TRIGGER = "awaiting_trigger"
    RUNNING_SHUTDOWN = "running_shutdown"
    DONE = "done"


class Lifecycle:
    """Runs an application between startup and shutdown.

    Example:
        lifecycle = Lifecycle(
            startup=[load_settings, multi(connect_db, connect_cache)],
            shutdown=[close_db, close_cache],
            options=[with_startup_timeout(10), with_shutdown_timeout(5)],
        )
        reason = lifecycle.start()  # blocks until shutdown completes
        sys.exit(0 if reason.ok else 1)
    """

    def __init__(
        self,
        startup: Sequence[Step] = (),
        shutdown: Sequence[Step] = (),
        options: Sequence[Option] = (),
        *,
        config: Config | None = None,
        shutdown_signal: ShutdownSignal | None = None,
    ) -> None:
        self.startup_steps = tuple(startup)
        self.shutdown_steps = tuple(shutdown)
        self.options = tuple(options)
        self.base_config = config
        self.shutdown_signal = shutdown_signal if shutdown_signal is not None else ShutdownSignal()

        self.state = LifecycleState.CREATED
        self.config: Config | None = None
        self._startup_scope = TaskScope("startup")
        self._shutdown_scope = TaskScope("shutdown")

    def request_shutdown(self, err: BaseException | None = None) -> bool:
        """Ask this lifecycle to shut down. First request wins."""
        return self.shutdown_signal.request(err)

    @property
    def detached(self) -> list[asyncio.Task]:
        """Abandoned step tasks that are still running."""
        return self._startup_scope.detached + self._shutdown_scope.detached

    def start(self) -> ExitReason:
        """Run the lifecycle on a fresh event loop and block until done.

        Abandoned coroutine steps are cancelled before the loop closes;
        abandoned thread steps finish on their daemon threads.
        """

        async def main() -> ExitReason:
            try:
                return await self.run()
            finally:
                self._startup_scope.cancel_outstanding()
                self._shutdown_scope.cancel_outstanding()

        return asyncio.run(main())

    async def run(self) -> ExitReason:
        """Run the lifecycle on the current event loop.

        Returns:
            Why the application exited (never None)
        """
        self.state = LifecycleState.RESOLVING_CONFIG
        try:
            config = resolve_config(self.options, base=self.base_config)
        except ConfigError as e:
            logger.error("config_invalid", error=str(e))
            return self._done(ExitReason(startup_error=e))
        self.config = config

        logger.info(
            "lifecycle_starting",
            startup_steps=len(self.startup_steps),
            shutdown_steps=len(self.shutdown_steps),
            startup_timeout=config.startup_timeout,
            shutdown_timeout=config.shutdown_timeout,
        )

        self.state = LifecycleState.RUNNING_STARTUP
        startup_error = await self._run_startup(config.startup_timeout)
        if startup_error is not None:
            return self._done(ExitReason(startup_error=startup_error))
        logger.info("startup_complete")

        # Handlers stay installed until shutdown completes; later signals
        # are logged and dropped
        listener = SignalListener(config.signals)
        try:
            self.state = LifecycleState.AWAITING_TRIGGER
            os_signal, runtime_error = await self._await_trigger(listener)

            self.state = LifecycleState.RUNNING_SHUTDOWN
            shutdown_errors = await self._run_shutdown(config.shutdown_timeout)
        finally:
            listener.teardown()

        return self._done(
            ExitReason(
                os_signal=os_signal,
                runtime_error=runtime_error,
                shutdown_errors=tuple(shutdown_errors),
            )
        )

    async def _run_startup(self, timeout: float | None) -> BaseException | None:
        ctx = Context(timeout)

        async def sequence() -> BaseException | None:
            for step in self.startup_steps:
                err = await call_step(step, ctx)
                if err is not None:
                    logger.error("startup_step_failed", step=step_name(step), error=str(err))
                    ctx.cancel()
                    return err
                # Deadline passed while the step ran; the rest must not start
                if ctx.done():
                    return ctx.err
            return None

        worker = self._startup_scope.spawn(sequence(), name="startup")
        try:
            err = await until_done(ctx, worker)
            if err is not None and err is ctx.err:
                logger.error("startup_timeout", timeout=timeout)
            return err
        except ContextError as e:
            logger.error("startup_timeout", timeout=timeout)
            self._startup_scope.detach(worker)
            return e
        finally:
            ctx.cancel()

    async def _await_trigger(
        self, listener: SignalListener
    ) -> tuple[signal.Signals | None, BaseException | None]:
        listener.setup()
        logger.info("awaiting_trigger", signals=[s.name for s in listener.signals])

        requested = asyncio.ensure_future(self.shutdown_signal.wait())
        received = asyncio.ensure_future(listener.wait())
        try:
            await asyncio.wait({requested, received}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in (requested, received):
                if not waiter.done():
                    waiter.cancel()

        if requested.done() and not requested.cancelled():
            return None, requested.result()
        return received.result(), None

    async def _run_shutdown(self, timeout: float | None) -> list[BaseException]:
        ctx = Context(timeout)
        reports: asyncio.Queue[tuple[Step, BaseException | None]] = asyncio.Queue()

        async def report(step: Step) -> BaseException | None:
            err: BaseException | None = None
            try:
                err = await call_step(step, ctx)
            finally:
                reports.put_nowait((step, err))
            return err

        logger.info("shutdown_starting", steps=len(self.shutdown_steps))
        for step in self.shutdown_steps:
            self._shutdown_scope.spawn(report(step), name=step_name(step))

        errors: list[BaseException] = []
        try:
            for _ in self.shutdown_steps:
                try:
                    step, err = await until_done(ctx, reports.get())
                except ContextError as e:
                    logger.error("shutdown_timeout", timeout=timeout, outstanding=len(self._shutdown_scope))
                    errors.append(e)
                    self._shutdown_scope.detach_outstanding()
                    break
                if err is not None:
                    logger.error("shutdown_step_failed", step=step_name(step), error=str(err))
                    errors.append(err)
        finally:
            ctx.cancel()

        return errors

    def _done(self, reason: ExitReason) -> ExitReason:
        self.state = LifecycleState.DONE
        logger.info("lifecycle_stopped", reason=reason.to_compact_text())
        return reason


async def run(
    startup: Sequence[Step] = (),
    shutdown: Sequence[Step] = (),
    *options: Option,
    config: Config | None = None,
) -> ExitReason:
    """Run a lifecycle on the current loop, triggered by request_shutdown()."""
    lifecycle = Lifecycle(
        startup, shutdown, options, config=config, shutdown_signal=default_shutdown_signal
    )
    return await lifecycle.run()


def start(
    startup: Sequence[Step] = (),
    shutdown: Sequence[Step] = (),
    *options: Option,
    config: Config | None = None,
) -> ExitReason:
    """Run a lifecycle and block until it is done.

    Shutdown is triggered by an OS signal or graceful.request_shutdown().

    Returns:
        Why the application exited (never None)
    """
    lifecycle = Lifecycle(
        startup, shutdown, options, config=config, shutdown_signal=default_shutdown_signal
    )
    return lifecycle.start()
