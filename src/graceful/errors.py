"""
Errors - Exception hierarchy for the lifecycle orchestrator.

Hierarchy:
- GracefulError: root of everything raised or recorded by this package
- ConfigError: invalid configuration value (fatal to a run)
- InvalidOptionType: configuration value of the wrong type
- ContextError: an execution context finished before the work did
- Cancelled: context was cancelled explicitly
- DeadlineExceeded: context timed out
"""

__all__ = [
    "Cancelled",
    "ConfigError",
    "ContextError",
    "DeadlineExceeded",
    "GracefulError",
    "InvalidOptionType",
]


class GracefulError(Exception):
    """Base class for all graceful errors."""


class ConfigError(GracefulError, ValueError):
    """Configuration value failed validation."""


class InvalidOptionType(ConfigError, TypeError):
    """Configuration value has the wrong type."""


class ContextError(GracefulError):
    """Execution context finished before the awaited work."""


class Cancelled(ContextError):
    """Execution context was cancelled."""

    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


class DeadlineExceeded(ContextError, TimeoutError):
    """Execution context reached its deadline."""

    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)
