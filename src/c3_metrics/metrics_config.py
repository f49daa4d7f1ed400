"""Persistent metrics configuration shared with wrangler.

The file lives in the global wrangler configuration directory and records the
telemetry permission and a stable device id. A missing or unparsable file reads
as an empty record; keys that fail validation are dropped individually.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError

USER_ID_CACHE_PATH = "user-id.json"

_UNRESOLVED = object()


class PermissionRecord(BaseModel):
    enabled: bool
    # Last time ``enabled`` changed value.
    date: datetime


class MetricsConfigFile(BaseModel):
    """On-disk shape of ``metrics.json``. Keys owned by other tools are kept as extras."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    c3_permission: PermissionRecord | None = Field(default=None, alias="c3permission")
    device_id: str | None = Field(default=None, alias="deviceId")


def new_session_id() -> str:
    return str(uuid4())


def find_cache_folder(start: Path | None = None) -> Path | None:
    """Locate ``node_modules/.cache/wrangler`` in the closest ancestor directory."""
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / "node_modules"
        if candidate.is_dir():
            return candidate / ".cache" / "wrangler"
    return None


class MetricsConfigStore:
    """Read/write access to the metrics config file with lazy initialisation."""

    def __init__(
        self,
        path: str | Path,
        *,
        cache_dir: str | Path | None = None,
        now: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._path = Path(path)
        self._cache_dir: object = Path(cache_dir) if cache_dir is not None else _UNRESOLVED
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._logger = logger or logging.getLogger("c3_metrics.metrics_config")

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> MetricsConfigFile:
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return MetricsConfigFile()
        if not isinstance(raw, dict):
            return MetricsConfigFile()

        try:
            return MetricsConfigFile.model_validate(raw)
        except ValidationError as exc:
            # Only the offending keys are dropped; the device id and foreign keys survive.
            invalid = {error["loc"][0] for error in exc.errors() if error["loc"]}
            self._logger.warning(
                "metrics_config_invalid_fields",
                extra={"path": str(self._path), "fields": sorted(map(str, invalid))},
            )
            return MetricsConfigFile.model_validate({k: v for k, v in raw.items() if k not in invalid})

    def write(self, config: MetricsConfigFile) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = config.model_dump(mode="json", by_alias=True, exclude_none=True)
        self._path.write_text(json.dumps(payload, indent="\t"), encoding="utf-8")

    def get_device_id(self, config: MetricsConfigFile | None = None) -> str:
        """Return the persisted device id, generating and storing one on first use."""
        config = config if config is not None else self.read()
        if config.device_id is not None:
            return config.device_id

        device_id = str(uuid4())
        self._write_lazily(config.model_copy(update={"device_id": device_id}), field="deviceId")
        return device_id

    def get_permission(self, config: MetricsConfigFile | None = None) -> PermissionRecord:
        """Return the stored permission, defaulting to enabled and persisting that default."""
        config = config if config is not None else self.read()
        if config.c3_permission is not None:
            return config.c3_permission

        permission = PermissionRecord(enabled=True, date=self._now())
        self._write_lazily(config.model_copy(update={"c3_permission": permission}), field="c3permission")
        return permission

    def set_permission(self, enabled: bool) -> PermissionRecord:
        """Persist ``enabled``; the date only moves when the value actually changes."""
        config = self.read()
        current = config.c3_permission
        if current is not None and current.enabled == enabled:
            return current

        permission = PermissionRecord(enabled=enabled, date=self._now())
        self.write(config.model_copy(update={"c3_permission": permission}))
        self._logger.info("permission_updated", extra={"enabled": enabled})
        return permission

    def get_user_id(self) -> str | None:
        """Return the cached wrangler user id, if any. Never raises."""
        cache_dir = self._resolve_cache_dir()
        if cache_dir is None:
            return None
        try:
            payload = json.loads((cache_dir / USER_ID_CACHE_PATH).read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        if not isinstance(payload, dict):
            return None
        user_id = payload.get("userId")
        return user_id if isinstance(user_id, str) else None

    def _resolve_cache_dir(self) -> Path | None:
        if self._cache_dir is _UNRESOLVED:
            self._cache_dir = find_cache_folder()
        return self._cache_dir  # type: ignore[return-value]

    def _write_lazily(self, config: MetricsConfigFile, *, field: str) -> None:
        try:
            self.write(config)
        except OSError:
            self._logger.warning("metrics_config_write_failed", extra={"path": str(self._path), "field": field})
