"""Tests for EventBus dispatch, isolation and channel fan-in."""

import queue

import pytest

from pi_governor.events import (
    CpuPressure,
    EventBus,
    MemoryPressure,
    StoragePressure,
    WriteOptimized,
)
from pi_governor.resources import PressureLevel


@pytest.fixture
def bus():
    return EventBus("collector")


class TestSubscribe:

    def test_typed_subscription_receives_only_its_kind(self, bus):
        received = []
        bus.subscribe(CpuPressure, received.append)

        bus.publish(CpuPressure(usage=91.0))
        bus.publish(StoragePressure(usage=0.9))

        assert [e.usage for e in received] == [91.0]

    def test_subscription_by_name(self, bus):
        received = []
        bus.subscribe("storage_pressure", received.append)
        bus.publish(StoragePressure(usage=0.85))
        assert len(received) == 1

    def test_registration_order(self, bus):
        calls = []
        bus.subscribe(CpuPressure, lambda e: calls.append("first"))
        bus.subscribe_all(lambda e: calls.append("second"))
        bus.publish(CpuPressure(usage=90.0))
        assert calls == ["first", "second"]

    def test_failing_subscriber_is_isolated(self, bus):
        received = []

        def broken(event):
            raise RuntimeError("subscriber bug")

        bus.subscribe(CpuPressure, broken)
        bus.subscribe(CpuPressure, received.append)

        delivered = bus.publish(CpuPressure(usage=90.0))

        assert delivered == 1
        assert len(received) == 1

    def test_unsubscribe(self, bus):
        received = []
        subscription = bus.subscribe(CpuPressure, received.append)

        assert bus.unsubscribe(subscription)
        assert not bus.unsubscribe(subscription)
        bus.publish(CpuPressure(usage=90.0))
        assert received == []

    def test_subscriber_count(self, bus):
        bus.subscribe(CpuPressure, lambda e: None)
        bus.subscribe_all(lambda e: None)
        assert bus.subscriber_count() == 2
        assert bus.subscriber_count(CpuPressure) == 2
        assert bus.subscriber_count(StoragePressure) == 1
        bus.clear()
        assert bus.subscriber_count() == 0

    def test_buses_are_independent(self, bus):
        other = EventBus("storage")
        received = []
        other.subscribe_all(received.append)
        bus.publish(CpuPressure(usage=90.0))
        assert received == []


class TestChannel:

    def test_channel_tags_events_with_source(self, bus):
        inbox = bus.channel()
        event = CpuPressure(usage=90.0)
        bus.publish(event)
        assert inbox.get_nowait() == ("collector", event)

    def test_connect_fans_in_several_buses(self, bus):
        storage = EventBus("storage")
        inbox = queue.Queue()
        bus.connect(inbox)
        storage.connect(inbox)

        bus.publish(CpuPressure(usage=90.0))
        storage.publish(WriteOptimized(write_count=1, next_write_path="/data1"))

        assert [inbox.get_nowait()[0] for _ in range(2)] == ["collector", "storage"]

    def test_full_channel_drops_instead_of_blocking(self, bus):
        inbox = bus.channel(maxsize=1)
        bus.publish(CpuPressure(usage=90.0))
        bus.publish(CpuPressure(usage=95.0))

        assert inbox.qsize() == 1
        assert inbox.get_nowait()[1].usage == 90.0


class TestEventPayload:

    def test_payload_excludes_timestamp(self):
        event = MemoryPressure(level=PressureLevel.GC, usage=0.82)
        assert event.payload() == {"level": PressureLevel.GC, "usage": 0.82}
        assert event.timestamp > 0

    def test_events_are_immutable(self):
        event = CpuPressure(usage=90.0)
        with pytest.raises(AttributeError):
            event.usage = 10.0
