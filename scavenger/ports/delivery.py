"""Port: one message handed to the consumer by the broker. Implementations live in infrastructure."""
from __future__ import annotations

from typing import Protocol


class Delivery(Protocol):
    """Transport-agnostic delivery. Must be settled (acked or nacked) exactly once."""

    @property
    def delivery_tag(self) -> int: ...

    @property
    def consumer_tag(self) -> str | None: ...

    @property
    def body(self) -> bytes: ...
