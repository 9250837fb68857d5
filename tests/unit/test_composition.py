from __future__ import annotations

import pytest

from scavenger.composition import (
    build_decoder,
    build_should_delete,
    build_strategy,
    create_scavenger_dependencies,
)
from scavenger.config.settings import Settings
from scavenger.domain.models import CycleDetect, Instructed
from scavenger.domain.payload import decode_json, decode_raw
from scavenger.infrastructure.messaging.factory import create_message_broker
from scavenger.infrastructure.messaging.inmemory.in_memory_broker import InMemoryBroker
from scavenger.infrastructure.messaging.rabbitmq.aio_pika_broker import AioPikaBroker
from scavenger.infrastructure.messaging.retrying_broker import RetryingBroker


@pytest.fixture()
def env(monkeypatch):
    monkeypatch.setenv("QUEUE_NAME", "sendqueue")
    monkeypatch.setenv("MATCH_FIELD", "foo")
    monkeypatch.setenv("MATCH_VALUE", "bar")
    monkeypatch.setenv("CONSUMER_BACKEND", "inmemory")
    return monkeypatch


def _settings() -> Settings:
    return Settings(_env_file=None)


def test_settings_defaults(env):
    settings = _settings()

    assert settings.queue_name == "sendqueue"
    assert settings.idle_timeout_seconds == 1.5
    assert settings.drain_grace_seconds == 1.0
    assert settings.scavenge_strategy == "instructed"
    assert settings.max_connection_attempts == 1


def test_build_strategy_instructed(env):
    env.setenv("IDLE_TIMEOUT_SECONDS", "3")

    strategy = build_strategy(_settings())

    assert isinstance(strategy, Instructed)
    assert strategy.idle_timeout_seconds == 3.0


def test_build_strategy_cycle(env):
    env.setenv("SCAVENGE_STRATEGY", "Cycle")
    env.setenv("CYCLE_KEY_FIELD", "content.id")
    env.setenv("DRAIN_GRACE_SECONDS", "0.25")

    strategy = build_strategy(_settings())

    assert isinstance(strategy, CycleDetect)
    assert strategy.drain_grace_seconds == 0.25
    assert strategy.extract_key({"content": {"id": "m-1"}}) == "m-1"
    assert strategy.should_delete({"foo": "bar"}) is True


def test_build_strategy_rejects_unknown(env):
    env.setenv("SCAVENGE_STRATEGY", "forever")

    with pytest.raises(ValueError, match="Unsupported scavenge strategy"):
        build_strategy(_settings())


def test_build_decoder(env):
    assert build_decoder(_settings()) is decode_json
    env.setenv("PAYLOAD_FORMAT", "raw")
    assert build_decoder(_settings()) is decode_raw
    env.setenv("PAYLOAD_FORMAT", "xml")
    with pytest.raises(ValueError):
        build_decoder(_settings())


def test_broker_factory_backends(env):
    assert isinstance(create_message_broker(_settings()), InMemoryBroker)

    env.setenv("CONSUMER_BACKEND", "rabbitmq")
    assert isinstance(create_message_broker(_settings()), AioPikaBroker)

    env.setenv("MAX_CONNECTION_ATTEMPTS", "3")
    assert isinstance(create_message_broker(_settings()), RetryingBroker)

    env.setenv("CONSUMER_BACKEND", "kafka")
    with pytest.raises(ValueError, match="Unsupported consumer backend"):
        create_message_broker(_settings())


@pytest.mark.asyncio
async def test_dependencies_build_a_runnable_loop(env):
    env.setenv("STOP_AFTER_REMOVALS", "1")
    dependencies = create_scavenger_dependencies(_settings())
    broker = dependencies.broker
    assert isinstance(broker, InMemoryBroker)
    broker.publish("sendqueue", {"foo": "baz"})
    broker.publish("sendqueue", {"foo": "bar"})

    removed = await dependencies.create_loop().run()

    assert removed == 1
    assert broker.messages("sendqueue") == [b'{"foo": "baz"}']


def test_stale_sender_predicate_takes_precedence(env):
    env.setenv("STALE_SENDER", "fake_outbound_mms")
    env.setenv("STALE_AFTER_MINUTES", "15")

    should_delete = build_should_delete(_settings())

    old = {"foo": "bar", "notification": [{"sender": "fake_outbound_mms"}, 0, 0, 0, "2000-01-01T00:00:00Z"]}
    assert should_delete(old) is True
    assert should_delete({"foo": "bar"}) is False


def test_missing_predicate_configuration_is_rejected(env):
    env.delenv("MATCH_FIELD")

    with pytest.raises(ValueError, match="No deletion predicate configured"):
        build_should_delete(_settings())
