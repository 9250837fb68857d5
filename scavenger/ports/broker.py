"""Port: broker connection and confirmed channel used by the scavenge loop.

The loop owns what it acquires through these ports: every connection and
channel it opens is closed before ``run()`` returns.
"""
from __future__ import annotations

from typing import Awaitable, Callable, Optional, Protocol

from scavenger.ports.delivery import Delivery

DeliveryCallback = Callable[[Optional[Delivery]], Awaitable[None]]


class BrokerChannel(Protocol):
    async def consume(self, queue_name: str, callback: DeliveryCallback) -> str:
        """Subscribe to queue_name; callback runs per delivery. Returns the consumer tag."""
        ...

    async def ack(self, delivery: Delivery) -> None: ...

    async def nack(
        self,
        delivery: Delivery,
        *,
        multiple: bool = False,
        requeue: bool = True,
    ) -> None: ...

    async def cancel(self, consumer_tag: str) -> None: ...

    async def close(self) -> None: ...


class BrokerConnection(Protocol):
    async def channel(self) -> BrokerChannel:
        """Open a confirmed channel."""
        ...

    async def close(self) -> None: ...


class MessageBroker(Protocol):
    async def connect(self, url: str) -> BrokerConnection: ...
