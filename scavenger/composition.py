"""Scavenger composition root: build the broker, strategy and decoder from settings.

Composition may: import concrete classes, call factories, pick predicates.
The loop itself only sees ports and plain callables.
"""
from __future__ import annotations

from typing import Any, Callable

from loguru import logger

from scavenger.application.predicates import field_equals, field_key, stale_sender, stop_after_removals
from scavenger.application.scavenge_loop import ScavengeLoop
from scavenger.config.settings import Settings
from scavenger.constants import PAYLOAD_FORMAT, STRATEGY
from scavenger.core import SERVICE_NAME
from scavenger.domain.models import CycleDetect, Instructed, LoopStrategy
from scavenger.domain.payload import PayloadDecoder, decode_json, decode_raw
from scavenger.infrastructure.messaging.factory import create_message_broker
from scavenger.ports.broker import MessageBroker


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def build_decoder(settings: Settings) -> PayloadDecoder:
    payload_format = settings.payload_format.strip().lower()
    if payload_format == PAYLOAD_FORMAT.JSON:
        return decode_json
    if payload_format == PAYLOAD_FORMAT.RAW:
        return decode_raw
    raise ValueError(f"Unsupported payload format: {payload_format}")


def build_should_delete(settings: Settings) -> Callable[[Any], bool]:
    if settings.stale_sender:
        return stale_sender(settings.stale_sender, settings.stale_after_minutes)
    if settings.match_field:
        return field_equals(settings.match_field, settings.match_value)
    raise ValueError("No deletion predicate configured: set STALE_SENDER or MATCH_FIELD/MATCH_VALUE")


def build_strategy(settings: Settings) -> LoopStrategy:
    should_delete = build_should_delete(settings)
    strategy = settings.scavenge_strategy.strip().lower()

    if strategy == STRATEGY.CYCLE:
        return CycleDetect(
            should_delete=should_delete,
            extract_key=field_key(settings.cycle_key_field),
            drain_grace_seconds=settings.drain_grace_seconds,
        )

    if strategy == STRATEGY.INSTRUCTED:
        return Instructed(
            check_message=stop_after_removals(should_delete, settings.stop_after_removals),
            idle_timeout_seconds=settings.idle_timeout_seconds,
        )

    raise ValueError(f"Unsupported scavenge strategy: {strategy}")


class ScavengerDependencies:
    """Holds wired dependencies for one scavenge run."""

    def __init__(
        self,
        *,
        settings: Settings,
        broker: MessageBroker,
        strategy: LoopStrategy,
        decoder: PayloadDecoder,
    ) -> None:
        self._settings = settings
        self._broker = broker
        self._strategy = strategy
        self._decoder = decoder

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def broker(self) -> MessageBroker:
        return self._broker

    @property
    def strategy(self) -> LoopStrategy:
        return self._strategy

    def create_loop(self) -> ScavengeLoop:
        _log(
            "loop_configured",
            queue=self._settings.queue_name,
            backend=self._settings.consumer_backend,
            strategy=type(self._strategy).__name__,
        )
        return ScavengeLoop(
            self._broker,
            self._settings.broker_url,
            self._settings.queue_name,
            self._strategy,
            decode=self._decoder,
        )


def create_scavenger_dependencies(settings: Settings | None = None) -> ScavengerDependencies:
    _settings = settings or Settings()
    return ScavengerDependencies(
        settings=_settings,
        broker=create_message_broker(_settings),
        strategy=build_strategy(_settings),
        decoder=build_decoder(_settings),
    )
