"""Telemetry permission commands exposed to the CLI."""

from __future__ import annotations

from enum import Enum

from rich.console import Console

from c3_metrics.metrics_config import MetricsConfigStore, PermissionRecord

ENABLED_MESSAGE = (
    "Create-Cloudflare telemetry is completely anonymous. Thank you for helping us improve the experience!"
)
DISABLED_MESSAGE = "Create-Cloudflare is no longer collecting anonymous usage data"


class TelemetryAction(str, Enum):
    """Actions accepted by the ``telemetry`` command."""

    STATUS = "status"
    ENABLE = "enable"
    DISABLE = "disable"


class TelemetryCommandHandler:
    """Read/transform/write facade over the metrics config store."""

    def __init__(self, store: MetricsConfigStore, console: Console | None = None) -> None:
        self._store = store
        self._console = console or Console()

    def status(self) -> PermissionRecord:
        permission = self._store.get_permission()
        self._print_status(permission.enabled)
        return permission

    def enable(self) -> PermissionRecord:
        permission = self._store.set_permission(True)
        self._print_status(True)
        self._console.print(ENABLED_MESSAGE, soft_wrap=True, highlight=False)
        return permission

    def disable(self) -> PermissionRecord:
        permission = self._store.set_permission(False)
        self._print_status(False)
        self._console.print(DISABLED_MESSAGE, soft_wrap=True, highlight=False)
        return permission

    def run(self, action: TelemetryAction | str) -> PermissionRecord:
        action = TelemetryAction(action)
        if action is TelemetryAction.ENABLE:
            return self.enable()
        if action is TelemetryAction.DISABLE:
            return self.disable()
        return self.status()

    def _print_status(self, enabled: bool) -> None:
        self._console.print(f"Status: {'Enabled' if enabled else 'Disabled'}", highlight=False)
        self._console.print("")


def run_telemetry_command(
    action: TelemetryAction | str,
    store: MetricsConfigStore,
    console: Console | None = None,
) -> PermissionRecord:
    return TelemetryCommandHandler(store, console).run(action)
