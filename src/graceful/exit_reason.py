"""
Exit Reason - Why and how a lifecycle run ended.

ExitReason holds the raw signal and exceptions; ExitReasonPrintable is
its display-safe projection, with every field rendered as text.
"""

import json
import signal
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field

__all__ = ["ExitReason", "ExitReasonPrintable"]


def _error_text(err: BaseException) -> str:
    # str() of e.g. TimeoutError() is empty; a set field never renders blank
    return str(err) or type(err).__name__


class ExitReasonPrintable(BaseModel):
    """Text-only view of an ExitReason, serialized with camelCase keys."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    os_signal: str = Field("", alias="osSignal")
    err_startup: str = Field("", alias="errStartup")
    err_runtime: str = Field("", alias="errRuntime")
    errs_shutdown: list[str] = Field(default_factory=list, alias="errsShutdown")


@dataclass(slots=True, frozen=True)
class ExitReason:
    """Information about why the program exited.

    Either startup_error is set (nothing else ran), or shutdown was
    triggered by os_signal or an explicit request (runtime_error, which
    may be None) and shutdown_errors lists what went wrong afterwards.

    Attributes:
        os_signal: Signal that triggered shutdown
        startup_error: Error that aborted startup
        runtime_error: Error passed with an explicit shutdown request
        shutdown_errors: Errors from shutdown steps, in receipt order
    """

    os_signal: signal.Signals | None = None
    startup_error: BaseException | None = None
    runtime_error: BaseException | None = None
    shutdown_errors: tuple[BaseException, ...] = ()

    @property
    def ok(self) -> bool:
        """True if nothing failed at any stage."""
        return (
            self.startup_error is None
            and self.runtime_error is None
            and not self.shutdown_errors
        )

    def to_printable(self) -> ExitReasonPrintable:
        """Project every field to its text form."""
        return ExitReasonPrintable(
            os_signal=self.os_signal.name if self.os_signal is not None else "",
            err_startup=_error_text(self.startup_error) if self.startup_error is not None else "",
            err_runtime=_error_text(self.runtime_error) if self.runtime_error is not None else "",
            errs_shutdown=[_error_text(e) for e in self.shutdown_errors],
        )

    def to_compact_text(self) -> str:
        """Serialize as single-line JSON."""
        return self.to_printable().model_dump_json(by_alias=True)

    def to_indented_text(self, prefix: str = "", indent: str = "\t") -> str:
        """Serialize as indented JSON.

        Args:
            prefix: Prepended to every line after the first (usually "")
            indent: One nesting level (usually "\\t")
        """
        text = json.dumps(
            self.to_printable().model_dump(by_alias=True),
            indent=indent,
            ensure_ascii=False,
        )
        return f"\n{prefix}".join(text.split("\n"))

    def __str__(self) -> str:
        return self.to_compact_text()
