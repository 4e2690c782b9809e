"""Shared test fixtures."""

import asyncio

import pytest
import pytest_asyncio

from graceful import ShutdownSignal, default_shutdown_signal


@pytest.fixture
def shutdown_signal():
    """Fresh shutdown request handle."""
    return ShutdownSignal()


@pytest.fixture(autouse=True)
def clear_default_shutdown_signal():
    """Drop any request left on the process-wide handle."""
    default_shutdown_signal.take()
    yield
    default_shutdown_signal.take()


@pytest.fixture
def calls():
    """Records step invocations in order."""
    return []


@pytest_asyncio.fixture
async def release():
    """Event that lets blocked steps finish once the test is over."""
    event = asyncio.Event()
    yield event
    event.set()
    await asyncio.sleep(0.01)
