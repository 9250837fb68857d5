"""
RabbitMQ broker adapter over aio_pika.

A single connect attempt per call: retry belongs to RetryingBroker, not here.
The connection is plain (not robust) so a dropped link ends the run instead of
silently resubscribing behind the loop's back.

Channel lifecycle:
  channel(publisher_confirms=True) -> set_qos(prefetch) -> passive queue lookup on
  consume -> queue.consume(no_ack=False) -> cancel(tag) -> close.
"""
from __future__ import annotations

from typing import Any

import aio_pika
from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractIncomingMessage, AbstractQueue
from loguru import logger

from scavenger.core import SERVICE_NAME
from scavenger.infrastructure.messaging.rabbitmq.aio_pika_delivery_adapter import AioPikaDelivery
from scavenger.ports.broker import DeliveryCallback
from scavenger.ports.delivery import Delivery


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def _unwrap(delivery: Delivery) -> AioPikaDelivery:
    if not isinstance(delivery, AioPikaDelivery):
        raise TypeError(f"expected an aio_pika delivery, got {type(delivery).__name__}")
    return delivery


class AioPikaChannel:
    """BrokerChannel implementation"""

    def __init__(self, channel: AbstractChannel) -> None:
        self._channel = channel
        self._queues: dict[str, AbstractQueue] = {}
        self._queue_by_tag: dict[str, AbstractQueue] = {}

    async def _get_queue(self, queue_name: str) -> AbstractQueue:
        queue = self._queues.get(queue_name)
        if queue is None:
            # Passive: the queue must already exist; we never create what we scavenge.
            queue = await self._channel.get_queue(queue_name, ensure=True)
            self._queues[queue_name] = queue
        return queue

    async def consume(self, queue_name: str, callback: DeliveryCallback) -> str:
        queue = await self._get_queue(queue_name)

        async def on_message(message: AbstractIncomingMessage | None) -> None:
            await callback(AioPikaDelivery(message) if message is not None else None)

        consumer_tag = await queue.consume(on_message, no_ack=False)
        self._queue_by_tag[consumer_tag] = queue
        _log("rmq_consuming", queue=queue_name, consumer_tag=consumer_tag)
        return consumer_tag

    async def ack(self, delivery: Delivery) -> None:
        await _unwrap(delivery).ack()

    async def nack(
        self,
        delivery: Delivery,
        *,
        multiple: bool = False,
        requeue: bool = True,
    ) -> None:
        await _unwrap(delivery).nack(multiple=multiple, requeue=requeue)

    async def cancel(self, consumer_tag: str) -> None:
        queue = self._queue_by_tag.pop(consumer_tag, None)
        if queue is None:
            logger.warning("cancel requested for unknown consumer tag {}", consumer_tag)
            return
        await queue.cancel(consumer_tag)
        _log("rmq_consumer_cancelled", consumer_tag=consumer_tag)

    async def close(self) -> None:
        self._queue_by_tag.clear()
        self._queues.clear()
        if not self._channel.is_closed:
            await self._channel.close()


class AioPikaConnection:
    """BrokerConnection implementation"""

    def __init__(self, connection: AbstractConnection, *, prefetch_count: int = 0) -> None:
        self._connection = connection
        self._prefetch_count = prefetch_count

    async def channel(self) -> AioPikaChannel:
        channel = await self._connection.channel(publisher_confirms=True)
        if self._prefetch_count > 0:
            await channel.set_qos(prefetch_count=self._prefetch_count)
        _log("rmq_channel_open", prefetch_count=self._prefetch_count)
        return AioPikaChannel(channel)

    async def close(self) -> None:
        if not self._connection.is_closed:
            await self._connection.close()
        _log("rmq_connection_closed")


class AioPikaBroker:
    """MessageBroker implementation"""

    def __init__(self, *, prefetch_count: int = 0) -> None:
        self._prefetch_count = prefetch_count

    async def connect(self, url: str) -> AioPikaConnection:
        _log("rmq_connecting")
        connection = await aio_pika.connect(url)
        _log("rmq_connected")
        return AioPikaConnection(connection, prefetch_count=self._prefetch_count)
