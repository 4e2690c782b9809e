"""
Lifecycle triggers - What ends the await phase of a run.

Handles:
- Explicit shutdown requests (first-wins, from any thread)
- OS signals (installed from the await phase until the run ends; only the first counts)

Example:
    from graceful.lifecycle import ShutdownSignal, SignalListener

    async def wait_for_trigger(sig: ShutdownSignal):
        with SignalListener([signal.SIGTERM]) as listener:
            done, _ = await asyncio.wait(
                {asyncio.ensure_future(sig.wait()), asyncio.ensure_future(listener.wait())},
                return_when=asyncio.FIRST_COMPLETED,
            )
"""

from .shutdown import ShutdownSignal, default_shutdown_signal, request_shutdown
from .signals import SignalListener

__all__ = [
    "ShutdownSignal",
    "SignalListener",
    "default_shutdown_signal",
    "request_shutdown",
]
