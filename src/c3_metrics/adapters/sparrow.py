"""Sparrow collector client.

Delivery is best-effort: each event is posted from its own task, any delivery
failure is logged and dropped, and response statuses are ignored. Sending needs
a running event loop; without one the event is dropped.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from c3_metrics.adapters.delivery import DeliveryClient, EventPayload

SPARROW_URL = "https://sparrow.cloudflare.com"
EVENT_ENDPOINT = "/api/v1/event"


class SparrowClient(DeliveryClient):
    """Posts events to the Sparrow collector when a source key is configured."""

    def __init__(
        self,
        *,
        source_key: str | None,
        base_url: str = SPARROW_URL,
        timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._source_key = source_key or ""
        self._base_url = base_url
        self._timeout_seconds = timeout_seconds
        self._transport = transport
        self._logger = logger or logging.getLogger("c3_metrics.sparrow")

    @property
    def enabled(self) -> bool:
        return bool(self._source_key)

    def send(self, payload: EventPayload) -> asyncio.Task[None] | None:
        # Development builds ship without a source key, which disables delivery entirely.
        if not self._source_key:
            return None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._logger.warning("sparrow_event_dropped", extra={"event": payload.event, "reason": "no running event loop"})
            return None

        self._logger.debug("sparrow_event", extra={"event": payload.event, "payload": payload.to_json()})
        return loop.create_task(self._post(payload), name=f"sparrow:{payload.event}")

    async def _post(self, payload: EventPayload) -> None:
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    EVENT_ENDPOINT,
                    json=payload.to_json(),
                    headers={
                        "Content-Type": "application/json",
                        "Sparrow-Source-Key": self._source_key,
                    },
                )
        except Exception as exc:  # noqa: BLE001 - delivery failures never reach the caller.
            self._logger.debug(
                "sparrow_delivery_failed",
                extra={"event": payload.event, "error": f"{type(exc).__name__}: {exc}"},
            )
            return

        self._logger.debug(
            "sparrow_event_delivered",
            extra={"event": payload.event, "status_code": response.status_code},
        )
