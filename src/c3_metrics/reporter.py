"""Lifecycle reporter for instrumented async operations.

``Reporter.collect_async_metrics`` sends a ``started`` event, runs the wrapped
operation while racing it against process interrupts, and then sends exactly
one terminal event (``completed``, ``cancelled`` or ``errored``). Code running
inside the operation can contribute terminal-stage properties through
``set_event_property`` / ``append_metrics_data`` without any parameter threading.
"""

from __future__ import annotations

import asyncio
import contextvars
import logging
import platform
import sys
import time
import traceback
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from c3_metrics import __version__
from c3_metrics.adapters import DeliveryClient, EventPayload, SparrowClient
from c3_metrics.config import Settings, metrics_config_path, settings as default_settings
from c3_metrics.errors import CancelError, OperationContextError
from c3_metrics.events import (
    TERMINAL_STAGES,
    OsInfo,
    Stage,
    build_event,
    dump_properties,
    event_name,
    properties_model,
    resolve_property_key,
    validate_lenient,
)
from c3_metrics.metrics_config import MetricsConfigStore, new_session_id
from c3_metrics.signals import InterruptRouter

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class ReporterContext:
    """Process-wide ambient values, built once when the reporter is created."""

    session_id: str
    device_id: str
    os: OsInfo
    c3_version: str = __version__


@dataclass(slots=True)
class OperationContext:
    """State of one instrumented operation, bound for the dynamic extent of its task."""

    event_prefix: str
    start_time: float
    started_props: dict[str, Any]
    properties: dict[Stage, dict[str, Any]] = field(
        default_factory=lambda: {stage: {} for stage in TERMINAL_STAGES}
    )
    active: bool = True


_current_operation: contextvars.ContextVar[OperationContext | None] = contextvars.ContextVar(
    "c3_metrics_operation", default=None
)


def _active_operation(accessor: str) -> OperationContext:
    operation = _current_operation.get()
    if operation is None or not operation.active:
        raise OperationContextError(f"{accessor} must be called within collect_async_metrics")
    return operation


def _contribute(operation: OperationContext, stage: Stage, key: str, value: Any) -> None:
    bag = operation.properties[stage]
    candidate = {**operation.started_props, **bag, key: value}
    # Fail at the call site rather than when the terminal event is composed.
    properties_model(operation.event_prefix, stage).model_validate(candidate)
    bag[key] = value


def set_event_property(stage: Stage | str, key: str, value: Any) -> None:
    """Contribute ``key`` to the ``stage`` event of the active operation."""
    operation = _active_operation("set_event_property")
    stage = Stage(stage)
    if stage not in TERMINAL_STAGES:
        raise ValueError(f"Properties can only be contributed to terminal stages, not {stage.value!r}")
    alias = resolve_property_key(operation.event_prefix, stage, key)
    _contribute(operation, stage, alias, value)


def append_metrics_data(key: str, value: Any) -> None:
    """Contribute ``key`` to every terminal stage of the active operation that accepts it."""
    operation = _active_operation("append_metrics_data")
    accepted = 0
    for stage in TERMINAL_STAGES:
        try:
            alias = resolve_property_key(operation.event_prefix, stage, key)
        except ValueError:
            continue
        _contribute(operation, stage, alias, value)
        accepted += 1
    if not accepted:
        raise ValueError(f"{key!r} is not a terminal property of {operation.event_prefix!r} events")


def describe_error(error: BaseException) -> dict[str, str | None]:
    message = str(error) or None
    stack = "".join(traceback.format_exception(type(error), error, error.__traceback__)) or None
    return {"message": message, "stack": stack}


async def _invoke(promise: Callable[[], Awaitable[T]]) -> T:
    return await promise()


class Reporter:
    """Sends lifecycle events for instrumented operations and tracks their delivery."""

    def __init__(
        self,
        *,
        store: MetricsConfigStore,
        client: DeliveryClient,
        context: ReporterContext,
        interrupts: InterruptRouter | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._client = client
        self._context = context
        self._interrupts = interrupts or InterruptRouter()
        self._clock = clock
        self._wall_clock = wall_clock
        self._logger = logger or logging.getLogger("c3_metrics.reporter")

        self._events: list[Awaitable[object]] = []
        self._abandoned: set[asyncio.Task[Any]] = set()

    @property
    def context(self) -> ReporterContext:
        return self._context

    @property
    def pending_events(self) -> tuple[Awaitable[object], ...]:
        return tuple(self._events)

    def send_event(self, name: str, properties: dict[str, Any]) -> None:
        """Send one event unless telemetry is disabled. Never waits for delivery."""
        if not self._store.get_permission().enabled:
            return

        event = build_event(name, properties)
        props = event.properties
        if props.c3_version is None:
            props.c3_version = self._context.c3_version
        if props.session_id is None:
            props.session_id = self._context.session_id
        if props.os is None:
            props.os = self._context.os

        payload = EventPayload(
            event=name,
            device_id=self._context.device_id,
            # Looked up on every send in case the user logged in meanwhile.
            user_id=self._store.get_user_id(),
            timestamp=int(self._wall_clock() * 1000),
            properties=dump_properties(props),
        )
        handle = self._client.send(payload)
        if handle is not None:
            self._events.append(handle)

    async def collect_async_metrics(
        self,
        *,
        event_prefix: str,
        started_props: dict[str, Any] | None = None,
        promise: Callable[[], Awaitable[T]],
    ) -> T:
        """Run ``promise()`` and report its lifecycle under ``event_prefix``.

        The operation's own result is returned, and its own failure re-raised,
        unchanged. An interrupt that arrives first raises ``CancelError`` with the
        signal name; the operation keeps running but its outcome is discarded.
        """
        started_model, rejected = validate_lenient(properties_model(event_prefix, Stage.STARTED), started_props or {})
        if rejected:
            self._logger.warning("started_properties_rejected", extra={"event_prefix": event_prefix, "keys": rejected})
        # JSON conversion happens at send time, where failures are contained.
        started = started_model.model_dump(by_alias=True, exclude_none=True)

        start_time = self._clock()
        self._send_quietly(event_name(event_prefix, Stage.STARTED), started)

        operation = OperationContext(event_prefix=event_prefix, start_time=start_time, started_props=started)
        token = _current_operation.set(operation)
        try:
            # The task copies the current context, binding the operation for its whole extent.
            task = asyncio.ensure_future(_invoke(promise))
        finally:
            _current_operation.reset(token)

        interrupt: asyncio.Future[str] = asyncio.get_running_loop().create_future()

        def _on_interrupt(signal_name: str) -> None:
            if not interrupt.done():
                interrupt.set_result(signal_name)

        try:
            with self._interrupts.listen(_on_interrupt):
                await asyncio.wait({task, interrupt}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            operation.active = False
            self._abandon(task)
            self._finish(operation, Stage.CANCELLED)
            raise
        finally:
            interrupt.cancel()

        operation.active = False
        if not task.done():
            signal_name = interrupt.result()
            self._abandon(task)
            self._finish(operation, Stage.CANCELLED, signal=signal_name)
            raise CancelError(f"Operation cancelled by {signal_name}", signal=signal_name)

        try:
            result = task.result()
        except (CancelError, asyncio.CancelledError):
            self._finish(operation, Stage.CANCELLED)
            raise
        except Exception as exc:
            self._finish(operation, Stage.ERRORED, error=exc)
            raise

        self._finish(operation, Stage.COMPLETED)
        return result

    async def wait_for_all_events_settled(self) -> None:
        """Wait for every delivery sent so far, ignoring individual failures."""
        pending = list(self._events)
        if not pending:
            return
        started = self._clock()
        await asyncio.gather(*pending, return_exceptions=True)
        self._logger.debug(
            "events_settled",
            extra={"count": len(pending), "duration_ms": self._duration_ms(started)},
        )

    def _finish(
        self,
        operation: OperationContext,
        stage: Stage,
        *,
        signal: str | None = None,
        error: BaseException | None = None,
    ) -> None:
        properties: dict[str, Any] = {
            **operation.started_props,
            **operation.properties[stage],
            "durationMs": self._duration_ms(operation.start_time),
        }
        if signal is not None:
            properties["signal"] = signal
        if error is not None:
            properties["error"] = describe_error(error)

        self._send_quietly(event_name(operation.event_prefix, stage), properties)

    def _send_quietly(self, name: str, properties: dict[str, Any]) -> None:
        try:
            self.send_event(name, properties)
        except Exception:  # noqa: BLE001 - telemetry must not change the operation's outcome.
            self._logger.exception("event_send_failed", extra={"event": name})

    def _duration_ms(self, start_time: float) -> int:
        # Clamped so clock adjustments never produce a negative duration.
        return max(0, round((self._clock() - start_time) * 1000))

    def _abandon(self, task: asyncio.Task[Any]) -> None:
        self._abandoned.add(task)
        task.add_done_callback(self._on_abandoned_settled)

    def _on_abandoned_settled(self, task: asyncio.Task[Any]) -> None:
        # The race was already reported; this outcome is only logged.
        self._abandoned.discard(task)
        if task.cancelled():
            outcome = "cancelled"
        else:
            error = task.exception()
            outcome = "completed" if error is None else f"{type(error).__name__}: {error}"
        self._logger.debug("abandoned_operation_settled", extra={"outcome": outcome})


def current_os() -> OsInfo:
    return OsInfo(platform=sys.platform, arch=platform.machine())


def create_reporter(
    config: Settings | None = None,
    *,
    store: MetricsConfigStore | None = None,
    client: DeliveryClient | None = None,
    interrupts: InterruptRouter | None = None,
) -> Reporter:
    """Build a reporter with a fresh session id and the persisted device id."""
    config = config or default_settings
    store = store or MetricsConfigStore(metrics_config_path(config), cache_dir=config.cache_dir)
    client = client or SparrowClient(
        source_key=config.sparrow_source_key,
        base_url=config.sparrow_url,
        timeout_seconds=config.request_timeout_seconds,
    )
    context = ReporterContext(
        session_id=new_session_id(),
        device_id=store.get_device_id(),
        os=current_os(),
    )
    return Reporter(store=store, client=client, context=context, interrupts=interrupts)
