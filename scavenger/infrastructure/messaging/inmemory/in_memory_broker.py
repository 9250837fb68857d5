"""In-memory broker for local runs and tests.

Each consumer gets deliveries one at a time; the next is pushed once the
callback returns. Requeued messages go to the tail of the queue, the order a
RabbitMQ consumer with unbounded prefetch observes. Deliveries still unsettled
when their channel closes go back to the head in their original order.
"""
from __future__ import annotations

import asyncio
import itertools
import json
from collections import deque
from dataclasses import dataclass
from typing import Any

from scavenger.ports.broker import DeliveryCallback
from scavenger.ports.delivery import Delivery


@dataclass
class InMemoryDelivery:
    delivery_tag: int
    consumer_tag: str | None
    body: bytes
    redelivered: bool = False


class InMemoryBroker:
    def __init__(self) -> None:
        self._queues: dict[str, deque[tuple[bytes, bool]]] = {}
        self._channels: list[InMemoryChannel] = []
        self.connections_opened = 0

    def declare_queue(self, queue_name: str) -> None:
        self._queues.setdefault(queue_name, deque())

    def publish(self, queue_name: str, body: Any) -> None:
        if isinstance(body, str):
            raw = body.encode()
        elif isinstance(body, (bytes, bytearray)):
            raw = bytes(body)
        else:
            raw = json.dumps(body).encode()
        self.declare_queue(queue_name)
        self._queues[queue_name].append((raw, False))
        self._notify()

    def messages(self, queue_name: str) -> list[bytes]:
        return [body for body, _ in self._queues.get(queue_name, ())]

    def _queue(self, queue_name: str) -> deque[tuple[bytes, bool]]:
        queue = self._queues.get(queue_name)
        if queue is None:
            raise LookupError(f"no queue named {queue_name!r}")
        return queue

    def _requeue(self, queue_name: str, body: bytes, *, front: bool = False) -> None:
        queue = self._queue(queue_name)
        if front:
            queue.appendleft((body, True))
        else:
            queue.append((body, True))
        self._notify()

    def _notify(self) -> None:
        for channel in self._channels:
            channel._wake()

    async def connect(self, url: str) -> "InMemoryConnection":
        self.connections_opened += 1
        return InMemoryConnection(self)


class InMemoryConnection:
    def __init__(self, broker: InMemoryBroker) -> None:
        self._broker = broker
        self._channels: list[InMemoryChannel] = []
        self.closed = False

    async def channel(self) -> "InMemoryChannel":
        if self.closed:
            raise RuntimeError("connection is closed")
        channel = InMemoryChannel(self._broker)
        self._channels.append(channel)
        return channel

    async def close(self) -> None:
        for channel in self._channels:
            await channel.close()
        self.closed = True


class InMemoryChannel:
    def __init__(self, broker: InMemoryBroker) -> None:
        self._broker = broker
        self._delivery_tags = itertools.count(1)
        self._consumer_tags = itertools.count(1)
        self._active: dict[str, str] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._unacked: dict[int, tuple[str, InMemoryDelivery]] = {}
        self._wakeup = asyncio.Event()
        self.closed = False
        broker._channels.append(self)

    def _wake(self) -> None:
        self._wakeup.set()

    async def consume(self, queue_name: str, callback: DeliveryCallback) -> str:
        if self.closed:
            raise RuntimeError("channel is closed")
        self._broker._queue(queue_name)
        consumer_tag = f"ctag-{next(self._consumer_tags)}"
        self._active[consumer_tag] = queue_name
        self._tasks[consumer_tag] = asyncio.create_task(self._push(queue_name, consumer_tag, callback))
        return consumer_tag

    async def _push(self, queue_name: str, consumer_tag: str, callback: DeliveryCallback) -> None:
        queue = self._broker._queue(queue_name)
        while consumer_tag in self._active and not self.closed:
            if not queue:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue
            body, redelivered = queue.popleft()
            delivery = InMemoryDelivery(
                delivery_tag=next(self._delivery_tags),
                consumer_tag=consumer_tag,
                body=body,
                redelivered=redelivered,
            )
            self._unacked[delivery.delivery_tag] = (queue_name, delivery)
            await callback(delivery)
            await asyncio.sleep(0)

    def _settle(self, delivery: Delivery) -> tuple[str, InMemoryDelivery]:
        entry = self._unacked.pop(delivery.delivery_tag, None)
        if entry is None:
            raise RuntimeError(f"unknown delivery tag {delivery.delivery_tag}")
        return entry

    async def ack(self, delivery: Delivery) -> None:
        self._settle(delivery)

    async def nack(
        self,
        delivery: Delivery,
        *,
        multiple: bool = False,
        requeue: bool = True,
    ) -> None:
        if multiple:
            raise NotImplementedError("multiple nack is not supported in memory")
        queue_name, settled = self._settle(delivery)
        if requeue:
            self._broker._requeue(queue_name, settled.body)

    async def cancel(self, consumer_tag: str) -> None:
        self._active.pop(consumer_tag, None)
        self._wake()

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._active.clear()
        self._wake()
        current = asyncio.current_task()
        for task in self._tasks.values():
            if task is not current and not task.done():
                task.cancel()
        self._tasks.clear()
        for queue_name, delivery in reversed(list(self._unacked.values())):
            self._broker._requeue(queue_name, delivery.body, front=True)
        self._unacked.clear()
        if self in self._broker._channels:
            self._broker._channels.remove(self)
