"""CLI startup entrypoint for c3 metrics."""

from __future__ import annotations

import logging

import typer
from rich.logging import RichHandler

from c3_metrics.commands import TelemetryAction, run_telemetry_command
from c3_metrics.config import metrics_config_path, settings
from c3_metrics.metrics_config import MetricsConfigStore

app = typer.Typer(help="create-cloudflare telemetry tooling")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        handlers=[RichHandler(show_path=False)],
    )


def _build_store() -> MetricsConfigStore:
    return MetricsConfigStore(metrics_config_path(settings), cache_dir=settings.cache_dir)


@app.callback()
def main(log_level: str = typer.Option(None, help="Logging level, defaults to C3_LOG_LEVEL")) -> None:
    _configure_logging(log_level or settings.log_level)


@app.command()
def telemetry(action: TelemetryAction = typer.Argument(..., help="status/enable/disable")) -> None:
    """Show or change whether anonymous usage data is collected."""
    run_telemetry_command(action, _build_store())


if __name__ == "__main__":
    app()
