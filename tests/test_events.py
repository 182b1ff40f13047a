"""Unit tests for reconciliation events."""

import asyncio
import json

import pytest

from events import EventBus, EventType, ReconcileEvent


def make_event(event_type=EventType.RECONCILED, resource="coredns"):
    return ReconcileEvent(
        event_type=event_type,
        tenant="tenants/tenant-a",
        resource_name=resource,
        operation="created",
    )


class TestReconcileEvent:
    """Tests for the ReconcileEvent dataclass."""

    def test_timestamp_defaults_to_now(self):
        assert make_event().timestamp != ""

    def test_explicit_timestamp_kept(self):
        event = ReconcileEvent(
            EventType.FAILED, "ns/t", "datastore-setup", timestamp="2024-01-15T10:30:00Z"
        )
        assert event.timestamp == "2024-01-15T10:30:00Z"

    def test_to_json(self):
        parsed = json.loads(make_event().to_json())
        assert parsed["event_type"] == "RECONCILED"
        assert parsed["tenant"] == "tenants/tenant-a"
        assert parsed["resource_name"] == "coredns"
        assert parsed["operation"] == "created"


@pytest.mark.asyncio
class TestEventBus:
    """Tests for EventBus publish/subscribe."""

    async def test_subscriber_receives_event(self):
        bus = EventBus()
        subscription = bus.subscribe()

        event = make_event()
        assert bus.publish(event) == 1

        assert await asyncio.wait_for(subscription.get(), timeout=1) is event

    async def test_no_subscribers(self):
        assert EventBus().publish(make_event()) == 0

    async def test_filter_applied_at_publish(self):
        bus = EventBus(queue_size=1)
        subscription = bus.subscribe(
            filter_fn=lambda e: e.event_type == EventType.FAILED
        )

        assert bus.publish(make_event()) == 0
        failed = make_event(EventType.FAILED)
        assert bus.publish(failed) == 1

        assert await asyncio.wait_for(subscription.get(), timeout=1) is failed

    async def test_full_queue_drops_events(self):
        bus = EventBus(queue_size=1)
        subscription = bus.subscribe()

        first = make_event(resource="first")
        bus.publish(first)
        assert bus.publish(make_event(resource="second")) == 0

        assert subscription.dropped == 1
        assert await asyncio.wait_for(subscription.get(), timeout=1) is first

    async def test_unsubscribe_drains_pending_events(self):
        bus = EventBus()
        subscription = bus.subscribe()
        event = make_event()
        bus.publish(event)

        bus.unsubscribe(subscription.id)

        assert bus.subscriber_count() == 0
        assert [e async for e in subscription] == [event]

    async def test_unsubscribe_wakes_blocked_reader(self):
        bus = EventBus()
        subscription = bus.subscribe()
        reader = asyncio.create_task(subscription.get())
        await asyncio.sleep(0)

        bus.unsubscribe(subscription.id)

        assert await asyncio.wait_for(reader, timeout=1) is None

    async def test_unsubscribe_unknown_is_noop(self):
        bus = EventBus()
        bus.unsubscribe("missing")
        assert bus.subscriber_count() == 0
