"""
Shutdown Requests - Single-slot, first-wins shutdown trigger.

Any code can ask the running lifecycle to shut down, passing the error
that caused it (or None for a normal finish):

    signal = ShutdownSignal()
    lifecycle = Lifecycle(startup, shutdown, shutdown_signal=signal)

    # anywhere, any thread
    signal.request(RuntimeError("lost connection to broker"))

Only the first request while one is pending is kept; later ones are
dropped. Waiting consumes the request, so the same handle can serve a
later run.
"""

import asyncio
import threading

import structlog

__all__ = ["ShutdownSignal", "default_shutdown_signal", "request_shutdown"]

logger = structlog.get_logger(__name__)

_EMPTY = object()


class ShutdownSignal:
    """Thread-safe single-slot shutdown request.

    Example:
        sig = ShutdownSignal()
        sig.request(None)       # True, accepted
        sig.request(err)        # False, one already pending
        await sig.wait()        # None, slot empty again
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value: object = _EMPTY
        self._waiter: tuple[asyncio.AbstractEventLoop, asyncio.Future] | None = None

    @property
    def pending(self) -> bool:
        """Check if a request is waiting to be consumed."""
        with self._lock:
            return self._value is not _EMPTY

    def request(self, err: BaseException | None = None) -> bool:
        """Request shutdown. Non-blocking and safe from any thread.

        Args:
            err: Why the application is stopping (None for normal completion)

        Returns:
            True if accepted, False if a request was already pending
        """
        with self._lock:
            if self._value is not _EMPTY:
                accepted = False
                waiter = None
            else:
                accepted = True
                self._value = err
                waiter = self._waiter

        if not accepted:
            logger.debug("shutdown_request_dropped", error=_describe(err))
            return False

        logger.info("shutdown_requested", error=_describe(err))

        if waiter is not None:
            loop, fut = waiter
            try:
                loop.call_soon_threadsafe(_wake, fut)
            except RuntimeError:
                # Waiter's loop is closed; the request stays pending
                pass
        return True

    def take(self) -> tuple[bool, BaseException | None]:
        """Consume a pending request without waiting.

        Returns:
            (True, err) if a request was pending, else (False, None)
        """
        with self._lock:
            if self._value is _EMPTY:
                return False, None
            value, self._value = self._value, _EMPTY
        return True, value  # type: ignore[return-value]

    async def wait(self) -> BaseException | None:
        """Wait for a request and consume it.

        Returns:
            The error passed to request() (may be None)
        """
        loop = asyncio.get_running_loop()
        while True:
            with self._lock:
                if self._value is not _EMPTY:
                    value, self._value = self._value, _EMPTY
                    return value  # type: ignore[return-value]
                fut = loop.create_future()
                self._waiter = (loop, fut)

            try:
                await fut
            finally:
                with self._lock:
                    if self._waiter is not None and self._waiter[1] is fut:
                        self._waiter = None


def _wake(fut: asyncio.Future) -> None:
    if not fut.done():
        fut.set_result(None)


def _describe(err: BaseException | None) -> str | None:
    if err is None:
        return None
    return str(err) or type(err).__name__


# Process-wide handle used by the module-level start()/run()
default_shutdown_signal = ShutdownSignal()


def request_shutdown(err: BaseException | None = None) -> bool:
    """Request shutdown of the run started with graceful.start()/run().

    Only the first request is kept. Safe to call concurrently.
    """
    return default_shutdown_signal.request(err)
