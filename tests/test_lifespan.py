from types import SimpleNamespace

import pytest
from aiokafka.errors import KafkaConnectionError

from order_service import main


class FakeComponent:
    def __init__(self, *args, **kwargs):
        self.started = False
        self.stopped = False

    async def start(self):
        self.started = True

    async def stop(self):
        self.stopped = True


class UnreachableBroker(FakeComponent):
    async def start(self):
        raise KafkaConnectionError("no brokers")


class FakeRelay(FakeComponent):
    def start(self):
        self.started = True


def _track(created):
    def track(cls, name):
        def factory(*args, **kwargs):
            instance = cls(*args, **kwargs)
            setattr(created, name, instance)
            return instance
        return factory
    return track


@pytest.fixture
def components(monkeypatch):
    created = SimpleNamespace(disposed=False)
    created.track = _track(created)
    monkeypatch.setattr(main.settings, "CONSUMER_ENABLED", True)
    monkeypatch.setattr(main.settings, "RELAY_ENABLED", True)

    async def dispose():
        created.disposed = True

    monkeypatch.setattr(main, "KafkaProducerService", created.track(FakeComponent, "producer"))
    monkeypatch.setattr(main, "KafkaConsumerService", created.track(FakeComponent, "consumer"))
    monkeypatch.setattr(main, "OutboxRelayService", created.track(FakeRelay, "relay"))
    monkeypatch.setattr(main, "engine", SimpleNamespace(dispose=dispose))
    return created


async def test_lifespan_starts_and_stops_everything(components):
    async with main.lifespan(main.app):
        assert components.producer.started
        assert components.consumer.started
        assert components.relay.started

    assert components.relay.stopped
    assert components.consumer.stopped
    assert components.producer.stopped
    assert components.disposed


async def test_producer_is_stopped_when_consumer_fails_to_start(components, monkeypatch):
    monkeypatch.setattr(main, "KafkaConsumerService", components.track(UnreachableBroker, "consumer"))

    with pytest.raises(KafkaConnectionError):
        async with main.lifespan(main.app):
            pass

    assert components.producer.stopped
    assert components.disposed


async def test_shutdown_runs_every_step_even_if_one_fails():
    calls = []

    async def broken():
        calls.append("consumer")
        raise RuntimeError("consumer stop failed")

    async def ok(name):
        calls.append(name)

    await main.shutdown(
        ("relay", lambda: ok("relay")),
        ("consumer", broken),
        ("producer", lambda: ok("producer")),
        ("database", lambda: ok("database")),
    )

    assert calls == ["relay", "consumer", "producer", "database"]
