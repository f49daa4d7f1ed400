"""Delivery adapters (e.g., the Sparrow collector)."""

from .delivery import DeliveryClient, EventPayload
from .sparrow import SPARROW_URL, SparrowClient

__all__ = [
    "DeliveryClient",
    "EventPayload",
    "SPARROW_URL",
    "SparrowClient",
]
