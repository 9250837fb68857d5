"""Message broker factory: selects implementation from config. Only place that imports concrete brokers."""
from __future__ import annotations

from scavenger.config.settings import Settings
from scavenger.infrastructure.messaging.inmemory.in_memory_broker import InMemoryBroker
from scavenger.infrastructure.messaging.rabbitmq.aio_pika_broker import AioPikaBroker
from scavenger.infrastructure.messaging.retrying_broker import RetryingBroker
from scavenger.ports.broker import MessageBroker


def create_message_broker(settings: Settings) -> MessageBroker:
    backend = settings.consumer_backend.strip().lower()

    if backend == "rabbitmq":
        broker: MessageBroker = AioPikaBroker(prefetch_count=settings.prefetch_count)
    elif backend == "inmemory":
        broker = InMemoryBroker()
    else:
        raise ValueError(f"Unsupported consumer backend: {backend}")

    if settings.max_connection_attempts <= 1:
        return broker
    return RetryingBroker(
        broker,
        initial_backoff_seconds=settings.initial_backoff_seconds,
        max_backoff_seconds=settings.max_backoff_seconds,
        backoff_multiplier=settings.backoff_multiplier,
        max_attempts=settings.max_connection_attempts,
    )
