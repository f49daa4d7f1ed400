"""Boundary for outbound telemetry delivery."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Protocol


@dataclass(slots=True)
class EventPayload:
    """Request body sent to the collector for one event."""

    event: str
    device_id: str
    user_id: str | None
    timestamp: int
    properties: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "event": self.event,
            "deviceId": self.device_id,
            "timestamp": self.timestamp,
            "properties": self.properties,
        }
        if self.user_id is not None:
            body["userId"] = self.user_id
        return body


class DeliveryClient(Protocol):
    """Fire-and-forget transport for telemetry events."""

    def send(self, payload: EventPayload) -> Awaitable[object] | None:
        """Start delivering ``payload`` and return a handle for its settlement, or ``None`` when disabled."""
