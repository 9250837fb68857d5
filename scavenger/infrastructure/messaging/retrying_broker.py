"""Connect retry around any MessageBroker. The scavenge loop itself never retries."""
from __future__ import annotations

from typing import Any

from loguru import logger

from scavenger.core import SERVICE_NAME
from scavenger.core.backoff import backoff_delays
from scavenger.ports.broker import BrokerConnection, MessageBroker


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class RetryingBroker:
    """MessageBroker decorator: retries connect() with exponential backoff, re-raises the last error."""

    def __init__(
        self,
        broker: MessageBroker,
        *,
        initial_backoff_seconds: float,
        max_backoff_seconds: float,
        backoff_multiplier: float,
        max_attempts: int,
    ) -> None:
        self._broker = broker
        self._initial_backoff_seconds = initial_backoff_seconds
        self._max_backoff_seconds = max_backoff_seconds
        self._backoff_multiplier = backoff_multiplier
        self._max_attempts = max_attempts

    async def connect(self, url: str) -> BrokerConnection:
        async for attempt, delay in backoff_delays(
            self._initial_backoff_seconds,
            self._max_backoff_seconds,
            self._backoff_multiplier,
            self._max_attempts,
        ):
            _log("broker_connect_attempt", attempt=attempt)
            try:
                return await self._broker.connect(url)
            except Exception as e:
                if attempt >= self._max_attempts:
                    _log("broker_connect_failed", attempt=attempt)
                    raise
                logger.warning("broker connect failed (retrying in {}s): {}", delay, e)
        raise RuntimeError("broker connect failed")
