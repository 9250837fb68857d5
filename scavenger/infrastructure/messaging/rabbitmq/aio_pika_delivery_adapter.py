"""Adapter: wrap aio_pika.IncomingMessage to implement ports.Delivery."""
from __future__ import annotations

from aio_pika.abc import AbstractIncomingMessage


class AioPikaDelivery:
    """Implements scavenger.ports.delivery.Delivery for aio_pika."""

    def __init__(self, message: AbstractIncomingMessage) -> None:
        self._message = message

    @property
    def raw(self) -> AbstractIncomingMessage:
        return self._message

    @property
    def delivery_tag(self) -> int:
        return int(self._message.delivery_tag or 0)

    @property
    def consumer_tag(self) -> str | None:
        return self._message.consumer_tag

    @property
    def body(self) -> bytes:
        return self._message.body

    async def ack(self) -> None:
        await self._message.ack()

    async def nack(self, *, multiple: bool = False, requeue: bool = True) -> None:
        await self._message.nack(multiple=multiple, requeue=requeue)
