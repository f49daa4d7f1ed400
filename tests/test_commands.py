from __future__ import annotations

import io
from datetime import datetime, timezone
from pathlib import Path

from rich.console import Console

from c3_metrics.commands import TelemetryAction, run_telemetry_command
from c3_metrics.metrics_config import MetricsConfigFile, MetricsConfigStore, PermissionRecord

PAST = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _store(tmp_path: Path, enabled: bool) -> MetricsConfigStore:
    store = MetricsConfigStore(tmp_path / "metrics.json")
    store.write(MetricsConfigFile(c3_permission=PermissionRecord(enabled=enabled, date=PAST)))
    return store


def _console() -> tuple[Console, io.StringIO]:
    buffer = io.StringIO()
    return Console(file=buffer, width=200), buffer


def test_status_reports_without_mutating(tmp_path: Path) -> None:
    store = _store(tmp_path, enabled=False)
    console, buffer = _console()

    run_telemetry_command("status", store, console)

    assert buffer.getvalue() == "Status: Disabled\n\n"
    assert store.read().c3_permission == PermissionRecord(enabled=False, date=PAST)


def test_enable_when_disabled_updates_permission(tmp_path: Path) -> None:
    store = _store(tmp_path, enabled=False)
    console, buffer = _console()

    permission = run_telemetry_command(TelemetryAction.ENABLE, store, console)

    assert permission.enabled is True
    assert permission.date > PAST
    assert buffer.getvalue() == (
        "Status: Enabled\n\n"
        "Create-Cloudflare telemetry is completely anonymous. "
        "Thank you for helping us improve the experience!\n"
    )


def test_enable_when_enabled_keeps_date(tmp_path: Path) -> None:
    store = _store(tmp_path, enabled=True)
    console, _ = _console()

    permission = run_telemetry_command("enable", store, console)

    assert permission.date == PAST


def test_disable_when_enabled(tmp_path: Path) -> None:
    store = _store(tmp_path, enabled=True)
    console, buffer = _console()

    run_telemetry_command("disable", store, console)

    assert store.read().c3_permission.enabled is False
    assert buffer.getvalue() == (
        "Status: Disabled\n\nCreate-Cloudflare is no longer collecting anonymous usage data\n"
    )
