import json
import os
import uuid

import pytest

from scavenger.application.predicates import field_equals, field_key, stop_after_removals
from scavenger.application.scavenge_loop import scavenge_queue
from scavenger.domain.errors import IdleTimeoutError
from scavenger.domain.models import CycleDetect, Instructed
from scavenger.domain.payload import decode_json
from scavenger.infrastructure.messaging.rabbitmq.aio_pika_broker import AioPikaBroker

AMQP_URL = os.environ.get("INTEGRATION_BROKER_URL", "")

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not AMQP_URL, reason="INTEGRATION_BROKER_URL not set"),
]


async def _seed_queue(queue_name: str, payloads: list[dict]) -> None:
    import aio_pika

    conn = await aio_pika.connect_robust(AMQP_URL)
    ch = await conn.channel()
    await ch.declare_queue(queue_name, auto_delete=False)
    for payload in payloads:
        await ch.default_exchange.publish(
            aio_pika.Message(body=json.dumps(payload).encode(), content_type="application/json"),
            routing_key=queue_name,
        )
    await ch.close()
    await conn.close()


async def _drain_and_delete(queue_name: str) -> list[dict]:
    import aio_pika

    conn = await aio_pika.connect_robust(AMQP_URL)
    ch = await conn.channel()
    q = await ch.declare_queue(queue_name, auto_delete=False)
    left: list[dict] = []
    while True:
        msg = await q.get(fail=False, timeout=1)
        if msg is None:
            break
        left.append(json.loads(msg.body))
        await msg.ack()
    await q.delete(if_unused=False, if_empty=False)
    await ch.close()
    await conn.close()
    return left


@pytest.mark.asyncio
async def test_cycle_scavenge_against_rabbitmq():
    queue_name = f"scavenger-it-{uuid.uuid4()}"
    await _seed_queue(
        queue_name,
        [{"id": 1, "foo": "keep"}, {"id": 2, "foo": "bar"}, {"id": 3, "foo": "keep"}, {"id": 4, "foo": "bar"}],
    )
    try:
        removed = await scavenge_queue(
            AioPikaBroker(),
            AMQP_URL,
            queue_name,
            CycleDetect(
                should_delete=field_equals("foo", "bar"),
                extract_key=field_key("id"),
                drain_grace_seconds=0.5,
            ),
            decode=decode_json,
        )
    finally:
        left = await _drain_and_delete(queue_name)

    assert removed == 2
    assert sorted(m["id"] for m in left) == [1, 3]


@pytest.mark.asyncio
async def test_instructed_scavenge_times_out_after_removing_everything():
    queue_name = f"scavenger-it-{uuid.uuid4()}"
    await _seed_queue(queue_name, [{"foo": "bar"}, {"foo": "bar"}])
    try:
        with pytest.raises(IdleTimeoutError):
            await scavenge_queue(
                AioPikaBroker(),
                AMQP_URL,
                queue_name,
                Instructed(
                    check_message=stop_after_removals(field_equals("foo", "bar")),
                    idle_timeout_seconds=1.0,
                ),
                decode=decode_json,
            )
    finally:
        left = await _drain_and_delete(queue_name)

    assert left == []
