from __future__ import annotations

from typing import Any

from loguru import logger

from scavenger.core import SERVICE_NAME
from scavenger.ports.broker import BrokerChannel
from scavenger.ports.delivery import Delivery


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class DispositionEngine:
    """
    Settles one delivery: ack when it should be removed, otherwise nack with requeue.

    Requeue is for this delivery only (multiple=False). A failing ack is not
    retried as a requeue; the broker error propagates to the caller as-is.
    """

    def __init__(self, channel: BrokerChannel) -> None:
        self._channel = channel

    async def dispose(self, delivery: Delivery, remove: bool) -> int:
        """Return 1 when the delivery was acked, 0 when it was requeued."""
        if remove:
            logger.debug("acking delivery {}", delivery.delivery_tag)
            await self._channel.ack(delivery)
            _log("message_removed", delivery_tag=delivery.delivery_tag)
            return 1

        logger.debug("nacking delivery {}", delivery.delivery_tag)
        await self._channel.nack(delivery, multiple=False, requeue=True)
        _log("message_requeued", delivery_tag=delivery.delivery_tag)
        return 0
