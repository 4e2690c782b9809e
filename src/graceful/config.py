"""
Configuration for a lifecycle run.

Configuration sources (priority order):
1. Option values passed to Lifecycle / start() (with_* helpers)
2. Explicit Config passed as base (Config.from_env() for environment)
3. Default values

Environment variables (read by Config.from_env):
- GRACEFUL_STARTUP_TIMEOUT: Startup timeout in seconds (default: unlimited)
- GRACEFUL_SHUTDOWN_TIMEOUT: Shutdown timeout in seconds (default: unlimited)
- GRACEFUL_SIGNALS: Extra signals, comma-separated (e.g. "SIGHUP,SIGUSR1")
"""

import os
import signal
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import timedelta
from enum import Enum
from typing import Any

from .errors import ConfigError, InvalidOptionType

__all__ = [
    "DEFAULT_SIGNALS",
    "Config",
    "Option",
    "OptionKind",
    "resolve_config",
    "with_shutdown_timeout",
    "with_signals",
    "with_startup_timeout",
]

# Interrupt (ctrl+c) and terminate request
DEFAULT_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)

SignalLike = signal.Signals | int | str


def _get_env(prefix: str, key: str) -> str | None:
    """Get environment variable with prefix, treating blank as unset."""
    val = os.environ.get(f"{prefix}{key}")
    if val is None or not val.strip():
        return None
    return val.strip()


def _get_env_seconds(prefix: str, key: str) -> float | None:
    """Get a duration in seconds from the environment."""
    val = _get_env(prefix, key)
    if val is None:
        return None
    try:
        return float(val)
    except ValueError:
        raise ConfigError(f"{prefix}{key} must be a number of seconds, got {val!r}") from None


def _get_env_signals(prefix: str, key: str) -> tuple[str, ...]:
    """Get a comma-separated signal list from the environment."""
    val = _get_env(prefix, key)
    if val is None:
        return ()
    return tuple(part.strip() for part in val.split(",") if part.strip())


def _coerce_timeout(name: str, value: Any) -> float | None:
    """Validate a timeout and convert it to seconds.

    Raises:
        InvalidOptionType: If value is not a number or timedelta
        ConfigError: If value is zero or negative
    """
    if value is None:
        return None
    if isinstance(value, timedelta):
        seconds = value.total_seconds()
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = float(value)
    else:
        raise InvalidOptionType(
            f"{name} timeout must be a duration (seconds or timedelta), "
            f"got {type(value).__name__}"
        )
    if seconds <= 0:
        raise ConfigError(f"{name} timeout must be positive")
    return seconds


def _coerce_signal(value: Any) -> signal.Signals:
    """Convert a signal, signal number or signal name to signal.Signals."""
    if isinstance(value, signal.Signals):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        try:
            return signal.Signals(value)
        except ValueError:
            raise ConfigError(f"unknown signal number: {value}") from None
    if isinstance(value, str):
        name = value.strip().upper()
        if not name.startswith("SIG"):
            name = f"SIG{name}"
        try:
            return signal.Signals[name]
        except KeyError:
            raise ConfigError(f"unknown signal name: {value!r}") from None
    raise InvalidOptionType(f"signal must be a signal, number or name, got {type(value).__name__}")


def _coerce_signals(value: Any) -> tuple[signal.Signals, ...]:
    """Validate a sequence of signals."""
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        raise InvalidOptionType(f"signals must be a sequence of signals, got {type(value).__name__}")
    return tuple(_coerce_signal(v) for v in value)


def _merge_signals(*groups: Iterable[signal.Signals]) -> tuple[signal.Signals, ...]:
    """Concatenate signal groups, dropping duplicates but keeping order."""
    merged: list[signal.Signals] = []
    for group in groups:
        for sig in group:
            if sig not in merged:
                merged.append(sig)
    return tuple(merged)


@dataclass(frozen=True)
class Config:
    """Immutable lifecycle configuration.

    Timeouts are seconds; None means unlimited. The default signals are
    always listened for; `signals` only adds to them.

    Example:
        config = Config(startup_timeout=10, signals=("SIGHUP",))
        config.signals  # (SIGINT, SIGTERM, SIGHUP)
    """

    startup_timeout: float | timedelta | None = None
    shutdown_timeout: float | timedelta | None = None
    signals: tuple[SignalLike, ...] = field(default=DEFAULT_SIGNALS)

    def __post_init__(self) -> None:
        object.__setattr__(self, "startup_timeout", _coerce_timeout("startup", self.startup_timeout))
        object.__setattr__(self, "shutdown_timeout", _coerce_timeout("shutdown", self.shutdown_timeout))
        object.__setattr__(self, "signals", _merge_signals(DEFAULT_SIGNALS, _coerce_signals(self.signals)))

    @classmethod
    def from_env(cls, prefix: str = "GRACEFUL_") -> "Config":
        """Build configuration from environment variables.

        Raises:
            ConfigError: If a variable holds an invalid value
        """
        return cls(
            startup_timeout=_get_env_seconds(prefix, "STARTUP_TIMEOUT"),
            shutdown_timeout=_get_env_seconds(prefix, "SHUTDOWN_TIMEOUT"),
            signals=_get_env_signals(prefix, "SIGNALS"),
        )


class OptionKind(Enum):
    """Kinds of option values understood by resolve_config."""

    STARTUP_TIMEOUT = "startup_timeout"
    SHUTDOWN_TIMEOUT = "shutdown_timeout"
    SIGNALS = "signals"


@dataclass(frozen=True)
class Option:
    """A single named setting applied on top of a base Config."""

    kind: OptionKind | str
    value: Any


def with_startup_timeout(d: float | timedelta) -> Option:
    """Maximum time to wait for startup steps to complete. Default: unlimited."""
    return Option(OptionKind.STARTUP_TIMEOUT, d)


def with_shutdown_timeout(d: float | timedelta) -> Option:
    """Maximum time to wait for shutdown steps to complete. Default: unlimited."""
    return Option(OptionKind.SHUTDOWN_TIMEOUT, d)


def with_signals(sigs: Iterable[SignalLike]) -> Option:
    """Extra signals that trigger a shutdown. Default: SIGINT, SIGTERM."""
    return Option(OptionKind.SIGNALS, sigs)


def resolve_config(options: Iterable[Option], base: Config | None = None) -> Config:
    """Fold option values over a base configuration.

    Unknown option kinds are ignored. A known kind with a None payload is
    a type error; use Config() fields for "unlimited".

    Args:
        options: Option values, applied in order
        base: Starting configuration (defaults to Config())

    Returns:
        Resolved configuration

    Raises:
        InvalidOptionType: If an entry is not an Option or its payload has the wrong type
        ConfigError: If an option value is invalid
    """
    config = base if base is not None else Config()

    for opt in options:
        if not isinstance(opt, Option):
            raise InvalidOptionType(f"expected an Option, got {type(opt).__name__}")
        if isinstance(opt.kind, OptionKind) and opt.value is None:
            raise InvalidOptionType(f"{opt.kind.value} option requires a value, got None")
        if opt.kind == OptionKind.STARTUP_TIMEOUT:
            config = replace(config, startup_timeout=_coerce_timeout("startup", opt.value))
        elif opt.kind == OptionKind.SHUTDOWN_TIMEOUT:
            config = replace(config, shutdown_timeout=_coerce_timeout("shutdown", opt.value))
        elif opt.kind == OptionKind.SIGNALS:
            config = replace(config, signals=_merge_signals(config.signals, _coerce_signals(opt.value)))

    return config
