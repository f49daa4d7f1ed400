"""Runtime configuration for c3 metrics."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

METRICS_CONFIG_FILE = "metrics.json"


class Settings(BaseSettings):
    """Environment-driven runtime settings."""

    model_config = SettingsConfigDict(env_prefix="C3_", env_file=".env", extra="ignore")

    app_name: str = "c3-metrics"
    log_level: str = "WARNING"
    sparrow_source_key: str = Field(
        default="",
        description="Collector credential. Left empty in development builds, which disables delivery.",
    )
    sparrow_url: str = "https://sparrow.cloudflare.com"
    request_timeout_seconds: float = 5.0
    config_dir: Path | None = Field(
        default=None,
        description="Override for the global wrangler configuration directory.",
    )
    cache_dir: Path | None = Field(
        default=None,
        description="Override for the folder holding the cached user id.",
    )


def global_config_dir(config: Settings) -> Path:
    """Directory shared with wrangler for global configuration files."""
    if config.config_dir is not None:
        return config.config_dir.expanduser()

    legacy = Path.home() / ".wrangler"
    if legacy.is_dir():
        return legacy

    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg_config_home) if xdg_config_home else Path.home() / ".config"
    return base / ".wrangler"


def metrics_config_path(config: Settings) -> Path:
    return global_config_dir(config) / METRICS_CONFIG_FILE


settings = Settings()
