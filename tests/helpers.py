"""Step builders shared by the tests."""

import asyncio


def recording_step(calls: list, name: str, delay: float = 0.0, error: Exception | None = None):
    """Async step that records its name, sleeps, then fails or succeeds."""

    async def step(ctx) -> None:
        calls.append(name)
        if delay:
            await asyncio.sleep(delay)
        if error is not None:
            raise error

    step.__qualname__ = name
    return step


def blocked_step(release: asyncio.Event, calls: list | None = None, name: str = "blocked",
                 error: Exception | None = None):
    """Async step that ignores its context and waits for `release`."""

    async def step(ctx) -> None:
        if calls is not None:
            calls.append(name)
        await release.wait()
        if error is not None:
            raise error

    step.__qualname__ = name
    return step
