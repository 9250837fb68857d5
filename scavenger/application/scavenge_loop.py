"""
Scavenge loop: consume one queue, settle every delivery, stop on the strategy's signal.

Lifecycle:
  STARTING -> CONSUMING -> STOPPING_NORMAL | STOPPING_ERROR | STOPPING_TIMEOUT -> CLOSED.
  STARTING connects, opens a confirmed channel and subscribes. A failure there
  is the run's outcome, raised exactly as the broker client raised it.
  CycleDetect stops after the first message's key is delivered again: cancel the
  subscription, wait the drain grace, close.
  Instructed stops when check_message says keep_going=False, or fails with
  IdleTimeoutError when no delivery arrives within the idle window.

Outcome:
  One asyncio.Future per run. Every path that ends the loop (normal stop, failure,
  idle timeout, caller cancellation) goes through it; only the first one counts.
  The channel and connection are closed once, after the outcome is settled.

Concurrency:
  Delivery callbacks are serialized with an asyncio.Lock, so LoopState is only
  ever mutated by one callback at a time even when the client overlaps them.
  Deliveries that arrive once stopping has begun are left unsettled; closing
  the channel hands them back to the broker.
"""
from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from scavenger.application.disposition import DispositionEngine
from scavenger.constants import LoopPhase
from scavenger.core import SERVICE_NAME
from scavenger.domain.cycle_detector import CycleDetector
from scavenger.domain.errors import IdleTimeoutError, InvalidDeliveryError
from scavenger.domain.idle_timeout import IdleTimeoutGuard
from scavenger.domain.models import (
    CycleDetect,
    Instructed,
    LoopState,
    LoopStrategy,
    ProcessingInstruction,
)
from scavenger.domain.payload import PayloadDecoder, decode_raw
from scavenger.ports.broker import BrokerChannel, BrokerConnection, MessageBroker
from scavenger.ports.delivery import Delivery


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class ScavengeLoop:
    """Runs a single scavenge pass over one queue. Not reusable: build one per run."""

    def __init__(
        self,
        broker: MessageBroker,
        url: str,
        queue_name: str,
        strategy: LoopStrategy,
        *,
        decode: PayloadDecoder = decode_raw,
    ) -> None:
        if not isinstance(strategy, (CycleDetect, Instructed)):
            raise TypeError(f"unsupported loop strategy: {type(strategy).__name__}")
        self._broker = broker
        self._url = url
        self._queue_name = queue_name
        self._strategy = strategy
        self._decode = decode
        self._state = LoopState()
        self._lock = asyncio.Lock()
        self._outcome: asyncio.Future[int] | None = None
        self._connection: BrokerConnection | None = None
        self._channel: BrokerChannel | None = None
        self._consumer_tag: str | None = None
        self._disposition: DispositionEngine | None = None
        self._detector = CycleDetector() if isinstance(strategy, CycleDetect) else None
        self._guard: IdleTimeoutGuard | None = None
        self._started = False

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def strategy(self) -> LoopStrategy:
        return self._strategy

    async def run(self) -> int:
        """Return the number of removed messages, or raise the run's failure."""
        if self._started:
            raise RuntimeError("ScavengeLoop.run() may only be called once")
        self._started = True
        self._outcome = asyncio.get_running_loop().create_future()
        _log(
            "scavenge_starting",
            queue=self._queue_name,
            strategy=type(self._strategy).__name__,
        )
        try:
            try:
                await self._start()
            except Exception as exc:
                logger.warning("scavenge start failed: {}", exc)
                self._fail(exc)
            return await self._outcome
        finally:
            await self._shutdown()

    async def _start(self) -> None:
        self._connection = await self._broker.connect(self._url)
        _log("broker_connected")
        self._channel = await self._connection.channel()
        self._disposition = DispositionEngine(self._channel)
        self._state.phase = LoopPhase.CONSUMING
        if isinstance(self._strategy, Instructed):
            self._guard = IdleTimeoutGuard(self._on_idle_timeout, self._strategy.idle_timeout_seconds)
            self._guard.arm()
        self._consumer_tag = await self._channel.consume(self._queue_name, self._on_delivery)
        _log("consumer_started", queue=self._queue_name, consumer_tag=self._consumer_tag)

    async def _on_delivery(self, delivery: Delivery | None) -> None:
        async with self._lock:
            if self._state.stopped:
                logger.debug("stopped already, ignoring delivery")
                return
            if delivery is None:
                logger.warning("delivery callback invoked without a message")
                self._fail(InvalidDeliveryError("Message is not defined"))
                return
            try:
                await self._handle(delivery)
            except Exception as exc:
                logger.exception("delivery handling failed: {}", exc)
                self._fail(exc)

    async def _handle(self, delivery: Delivery) -> None:
        assert self._disposition is not None
        payload = self._decode(delivery.body)

        if isinstance(self._strategy, CycleDetect):
            assert self._detector is not None
            cycled = self._detector.observe(self._strategy.extract_key(payload))
            remove = bool(self._strategy.should_delete(payload))
            self._state.removed_count += await self._disposition.dispose(delivery, remove)
            if cycled:
                _log("queue_cycled", delivery_tag=delivery.delivery_tag)
                await self._stop_after_cycle(delivery)
            return

        assert self._guard is not None
        self._guard.on_delivery()
        instruction = ProcessingInstruction.coerce(self._strategy.check_message(payload))
        self._state.removed_count += await self._disposition.dispose(delivery, instruction.remove)
        if not instruction.keep_going:
            _log("stop_requested", delivery_tag=delivery.delivery_tag)
            self._resolve()

    async def _stop_after_cycle(self, delivery: Delivery) -> None:
        assert isinstance(self._strategy, CycleDetect)
        self._state.stopped = True
        self._state.phase = LoopPhase.STOPPING_NORMAL
        consumer_tag = delivery.consumer_tag or self._consumer_tag
        if consumer_tag and self._channel is not None:
            try:
                await self._channel.cancel(consumer_tag)
            except Exception as exc:
                logger.warning("consumer cancel failed (channel close will end it): {}", exc)
        await asyncio.sleep(self._strategy.drain_grace_seconds)
        self._resolve()

    def _on_idle_timeout(self) -> None:
        if self._state.stopped:
            return
        assert isinstance(self._strategy, Instructed)
        _log("idle_timeout", timeout_seconds=self._strategy.idle_timeout_seconds)
        self._fail(
            IdleTimeoutError(self._strategy.idle_timeout_seconds),
            phase=LoopPhase.STOPPING_TIMEOUT,
        )

    def _resolve(self) -> None:
        if self._outcome is None or self._outcome.done():
            return
        self._state.stopped = True
        self._state.phase = LoopPhase.STOPPING_NORMAL
        self._outcome.set_result(self._state.removed_count)
        _log("scavenge_finished", removed_count=self._state.removed_count)

    def _fail(self, exc: BaseException, *, phase: LoopPhase = LoopPhase.STOPPING_ERROR) -> None:
        if self._outcome is None or self._outcome.done():
            return
        self._state.stopped = True
        self._state.phase = phase
        self._outcome.set_exception(exc)
        _log(
            "scavenge_failed",
            error=str(exc),
            error_type=type(exc).__name__,
            removed_count=self._state.removed_count,
        )

    async def _shutdown(self) -> None:
        self._state.stopped = True
        if self._guard is not None:
            self._guard.cancel()
        channel, self._channel = self._channel, None
        connection, self._connection = self._connection, None
        if channel is not None:
            try:
                await channel.close()
            except Exception as e:
                logger.warning("channel close failed (continuing to close connection): {}", e)
        if connection is not None:
            try:
                await connection.close()
            except Exception as e:
                logger.warning("connection close failed: {}", e)
        self._state.phase = LoopPhase.CLOSED
        _log("scavenge_closed", removed_count=self._state.removed_count)


async def scavenge_queue(
    broker: MessageBroker,
    url: str,
    queue_name: str,
    strategy: LoopStrategy,
    *,
    decode: PayloadDecoder = decode_raw,
) -> int:
    """Run one scavenge pass and return how many messages were removed."""
    loop = ScavengeLoop(broker, url, queue_name, strategy, decode=decode)
    return await loop.run()
