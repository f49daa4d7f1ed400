"""Exceptions shared by the reporter and the code it instruments."""

from __future__ import annotations


class CancelError(Exception):
    """Raised to signal that the user cancelled the running operation.

    ``signal`` carries the interrupt name (e.g. ``"SIGINT"``) when an OS signal
    caused the cancellation, and is ``None`` when calling code raised it directly.
    """

    def __init__(self, message: str = "Operation cancelled", *, signal: str | None = None) -> None:
        super().__init__(message)
        self.signal = signal


class OperationContextError(RuntimeError):
    """Raised when stage properties are contributed outside an instrumented operation."""
