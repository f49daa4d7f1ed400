"""Scoped interrupt-signal handling for instrumented operations."""

from __future__ import annotations

import asyncio
import logging
import signal
from contextlib import contextmanager
from typing import Callable, Iterator, Sequence

INTERRUPT_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)

InterruptListener = Callable[[str], None]


class InterruptRouter:
    """Fans SIGINT/SIGTERM out to every operation currently listening.

    Loop signal handlers are installed when the first listener subscribes and
    removed when the last one leaves, so repeated operations never accumulate
    handlers. Nested operations (a prompt inside a session) all observe the
    same interrupt.
    """

    def __init__(
        self,
        signals: Sequence[signal.Signals] = INTERRUPT_SIGNALS,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._signals = tuple(signals)
        self._logger = logger or logging.getLogger("c3_metrics.signals")
        self._listeners: list[InterruptListener] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self._installed: list[signal.Signals] = []

    @property
    def installed_signals(self) -> tuple[signal.Signals, ...]:
        return tuple(self._installed)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    @contextmanager
    def listen(self, listener: InterruptListener) -> Iterator[None]:
        """Deliver interrupts to ``listener`` for the duration of the block."""
        if not self._listeners:
            self._install()
        self._listeners.append(listener)
        try:
            yield
        finally:
            self._listeners.remove(listener)
            if not self._listeners:
                self._uninstall()

    def dispatch(self, signal_name: str) -> None:
        self._logger.debug("interrupt_received", extra={"signal": signal_name, "listeners": len(self._listeners)})
        for listener in list(self._listeners):
            listener(signal_name)

    def _install(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._signals:
            try:
                loop.add_signal_handler(sig, self.dispatch, sig.name)
            except (NotImplementedError, RuntimeError, ValueError):
                # No loop signal support (Windows, or not the main thread).
                self._logger.debug("interrupt_handler_unavailable", extra={"signal": sig.name})
                continue
            self._installed.append(sig)
        self._loop = loop

    def _uninstall(self) -> None:
        loop, self._loop = self._loop, None
        installed, self._installed = self._installed, []
        if loop is None or loop.is_closed():
            return
        for sig in installed:
            loop.remove_signal_handler(sig)
