"""
Signal Listening - OS signals as a shutdown trigger.

Installs loop signal handlers for a fixed set of signals when the
lifecycle starts waiting for its trigger. Only the first signal resolves
the listener; later ones are logged and ignored so they cannot interrupt
shutdown. teardown() puts back whatever handlers were there before.
"""

import asyncio
import signal
from collections.abc import Iterable
from typing import Any

import structlog

__all__ = ["SignalListener"]

logger = structlog.get_logger(__name__)


class SignalListener:
    """Resolves a future with the first OS signal received.

    Example:
        with SignalListener([signal.SIGTERM, signal.SIGINT]) as listener:
            sig = await listener.wait()
            await run_shutdown()  # a second ctrl+c is ignored here
    """

    def __init__(self, signals: Iterable[signal.Signals]) -> None:
        self.signals = tuple(signals)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._installed: list[signal.Signals] = []
        self._previous: dict[signal.Signals, Any] = {}
        self._received: asyncio.Future | None = None
        self._signals_received: list[signal.Signals] = []

    @property
    def installed(self) -> tuple[signal.Signals, ...]:
        """Signals with a handler currently registered."""
        return tuple(self._installed)

    @property
    def signals_received(self) -> tuple[signal.Signals, ...]:
        """Every signal delivered while listening."""
        return tuple(self._signals_received)

    def setup(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Register signal handlers with the event loop.

        Signals that cannot be handled here (not the main thread, platform
        without loop signal support, uncatchable signal) are skipped.

        Args:
            loop: Event loop to use (defaults to running loop)
        """
        if loop is None:
            loop = asyncio.get_running_loop()

        self._loop = loop
        self._received = loop.create_future()

        for sig in self.signals:
            try:
                previous = signal.getsignal(sig)
                loop.add_signal_handler(sig, self._handle_signal, sig)
            except (RuntimeError, NotImplementedError, ValueError) as e:
                logger.warning("signal_handler_skipped", signal=sig.name, reason=str(e))
                continue
            self._previous[sig] = previous
            self._installed.append(sig)

        logger.info("signal_handlers_registered", signals=[s.name for s in self._installed])

    def teardown(self) -> None:
        """Remove the handlers installed by setup() and restore the previous ones."""
        if self._loop is None:
            return

        for sig in self._installed:
            if not self._loop.is_closed():
                self._loop.remove_signal_handler(sig)
            # None means the handler was not installed from Python
            previous = self._previous.pop(sig, None)
            if previous is not None:
                signal.signal(sig, previous)
        self._installed.clear()

        if self._received is not None and not self._received.done():
            self._received.cancel()

        logger.debug("signal_handlers_removed")

    async def wait(self) -> signal.Signals:
        """Wait for the first signal."""
        if self._received is None:
            raise RuntimeError("SignalListener.setup() must be called before wait()")
        return await self._received

    def _handle_signal(self, sig: signal.Signals) -> None:
        self._signals_received.append(sig)

        if self._received is not None and not self._received.done():
            logger.info("signal_received", signal=sig.name)
            self._received.set_result(sig)
        else:
            logger.warning("signal_ignored", signal=sig.name, count=len(self._signals_received))

    def __enter__(self) -> "SignalListener":
        self.setup()
        return self

    def __exit__(self, *args) -> None:
        self.teardown()
