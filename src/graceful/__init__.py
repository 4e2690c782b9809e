"""
graceful - Startup, run and shutdown for long-running processes.

Example:
    import sys
    import graceful

    reason = graceful.start(
        [load_settings, graceful.multi(connect_db, connect_cache)],
        [close_db, close_cache],
        graceful.with_startup_timeout(10),
        graceful.with_shutdown_timeout(5),
    )
    print(reason.to_indented_text())
    sys.exit(0 if reason.ok else 1)

Call graceful.request_shutdown(err) from anywhere to stop the run the same
way SIGINT/SIGTERM would.
"""

from .config import (
    DEFAULT_SIGNALS,
    Config,
    Option,
    OptionKind,
    resolve_config,
    with_shutdown_timeout,
    with_signals,
    with_startup_timeout,
)
from .context import Context, Step, call_step, until_done
from .errors import (
    Cancelled,
    ConfigError,
    ContextError,
    DeadlineExceeded,
    GracefulError,
    InvalidOptionType,
)
from .exit_reason import ExitReason, ExitReasonPrintable
from .lifecycle import ShutdownSignal, SignalListener, default_shutdown_signal, request_shutdown
from .multi import multi
from .orchestrator import Lifecycle, LifecycleState, run, start
from .tasks import TaskScope

__version__ = "1.0.0"

__all__ = [
    "DEFAULT_SIGNALS",
    "Cancelled",
    "Config",
    "ConfigError",
    "Context",
    "ContextError",
    "DeadlineExceeded",
    "ExitReason",
    "ExitReasonPrintable",
    "GracefulError",
    "InvalidOptionType",
    "Lifecycle",
    "LifecycleState",
    "Option",
    "OptionKind",
    "ShutdownSignal",
    "SignalListener",
    "Step",
    "TaskScope",
    "call_step",
    "default_shutdown_signal",
    "multi",
    "request_shutdown",
    "resolve_config",
    "run",
    "start",
    "until_done",
    "with_shutdown_timeout",
    "with_signals",
    "with_startup_timeout",
]
