"""Tests for the async event bus and the bus-backed emitter."""

import asyncio
import pytest
from waha_relay.core.bus import Event, EventBus, EventType, NotificationReady
from waha_relay.webhooks.emitter import BusEmitter
from waha_relay.webhooks.models import NormalizedNotification


@pytest.fixture
def bus():
    return EventBus()


def notification(text="hello"):
    return NormalizedNotification(
        channel="message", session_id="default", payload={"body": text}
    )


class TestEventBus:
    async def test_publish_subscribe(self, bus):
        received = []

        async def handler(event: Event):
            received.append(event)

        bus.subscribe(EventType.NOTIFICATION_READY, handler)
        await bus.start()

        await bus.publish(NotificationReady(notification=notification()))

        # Give consumer time to process
        await asyncio.sleep(0.1)

        assert len(received) == 1
        assert received[0].notification.payload["body"] == "hello"
        assert received[0].type == EventType.NOTIFICATION_READY

        await bus.stop()

    async def test_multiple_subscribers(self, bus):
        received_a = []
        received_b = []

        async def handler_a(event: Event):
            received_a.append(event)

        async def handler_b(event: Event):
            received_b.append(event)

        bus.subscribe(EventType.NOTIFICATION_READY, handler_a)
        bus.subscribe(EventType.NOTIFICATION_READY, handler_b)
        await bus.start()

        await bus.publish(NotificationReady(notification=notification()))
        await asyncio.sleep(0.1)

        assert len(received_a) == 1
        assert len(received_b) == 1

        await bus.stop()

    async def test_handler_error_doesnt_crash_bus(self, bus):
        good_received = []

        async def bad_handler(event: Event):
            raise RuntimeError("boom")

        async def good_handler(event: Event):
            good_received.append(event)

        bus.subscribe(EventType.NOTIFICATION_READY, bad_handler)
        bus.subscribe(EventType.NOTIFICATION_READY, good_handler)
        await bus.start()

        await bus.publish(NotificationReady(notification=notification()))
        await asyncio.sleep(0.1)

        assert len(good_received) == 1

        await bus.stop()

    async def test_event_has_id_and_timestamp(self):
        event = NotificationReady()
        assert event.id
        assert event.timestamp is not None

    async def test_queue_overflow_doesnt_crash(self):
        bus = EventBus(max_queue_size=2)

        async def slow_handler(event: Event):
            await asyncio.sleep(1)

        bus.subscribe(EventType.NOTIFICATION_READY, slow_handler)
        await bus.start()

        for i in range(5):
            await bus.publish(NotificationReady(notification=notification(str(i))))

        await asyncio.sleep(0.1)
        await bus.stop()


class TestBusEmitter:
    async def test_emit_publishes_notification(self, bus):
        received = []

        async def handler(event: Event):
            received.append(event)

        bus.subscribe(EventType.NOTIFICATION_READY, handler)
        await bus.start()

        n = notification()
        await BusEmitter(bus).emit(n)
        await asyncio.sleep(0.1)

        assert len(received) == 1
        assert received[0].notification is n
        assert received[0].data == {"type": "waha/message", "data": {"body": "hello"}}

        await bus.stop()

    async def test_emit_failure_propagates(self):
        class BrokenBus:
            async def publish(self, event):
                raise RuntimeError("bus down")

        with pytest.raises(RuntimeError, match="bus down"):
            await BusEmitter(BrokenBus()).emit(notification())
