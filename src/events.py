"""
Reconciliation Events - in-memory pub/sub of per-resource outcomes.

The controller publishes one event for every resource it handles and one
when a pass fails, so status sync and observers can follow a tenant
without polling.
"""

import asyncio
import json
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Types of reconciliation events."""

    RECONCILED = "RECONCILED"
    CLEANED_UP = "CLEANED_UP"
    FAILED = "FAILED"


@dataclass
class ReconcileEvent:
    """Outcome of handling one resource for one tenant."""

    event_type: EventType
    tenant: str  # namespace/name
    resource_name: str
    operation: str = ""
    message: str = ""
    timestamp: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_json(self) -> str:
        data = asdict(self)
        data["event_type"] = self.event_type.value
        return json.dumps(data)


@dataclass
class Subscription:
    """
    One subscriber: a bounded queue of matching events.

    Iterating yields events until the subscription is closed.
    """

    id: str
    queue: asyncio.Queue
    filter_fn: Optional[Callable[[ReconcileEvent], bool]] = None
    dropped: int = 0
    closed: bool = field(default=False, init=False)

    def accepts(self, event: ReconcileEvent) -> bool:
        return self.filter_fn is None or self.filter_fn(event)

    async def get(self) -> Optional[ReconcileEvent]:
        """Wait for the next event; None once the subscription is closed."""
        if self.closed and self.queue.empty():
            return None
        return await self.queue.get()

    async def __aiter__(self) -> AsyncIterator[ReconcileEvent]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event


class EventBus:
    """
    In-memory pub/sub event bus.

    Events are filtered per subscriber at publish time. When a subscriber's
    queue is full the event is dropped for it and counted, so publishing
    never blocks reconciliation.
    """

    def __init__(self, queue_size: int = 256):
        self._queue_size = queue_size
        self._subscriptions: Dict[str, Subscription] = {}

    def publish(self, event: ReconcileEvent) -> int:
        """
        Deliver an event to every matching subscriber.

        Returns:
            The number of subscribers the event was queued for.
        """
        delivered = 0
        for subscription in list(self._subscriptions.values()):
            if not subscription.accepts(event):
                continue
            try:
                subscription.queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                subscription.dropped += 1
                logger.warning(
                    f"Dropped {event.event_type.value} event for subscriber "
                    f"{subscription.id}: queue full ({subscription.dropped} dropped)"
                )
        return delivered

    def subscribe(
        self, filter_fn: Optional[Callable[[ReconcileEvent], bool]] = None
    ) -> Subscription:
        """
        Subscribe to events.

        Args:
            filter_fn: Optional predicate; only matching events are queued.
        """
        subscription = Subscription(
            id=str(uuid.uuid4()),
            queue=asyncio.Queue(maxsize=self._queue_size),
            filter_fn=filter_fn,
        )
        self._subscriptions[subscription.id] = subscription
        logger.debug(f"New event subscriber: {subscription.id}")
        return subscription

    def unsubscribe(self, subscription_id: str) -> None:
        """Remove a subscriber; its iteration ends once pending events are read."""
        subscription = self._subscriptions.pop(subscription_id, None)
        if subscription is None:
            return
        subscription.closed = True
        if subscription.queue.empty():
            # Wakes a reader blocked on the empty queue
            subscription.queue.put_nowait(None)

    def subscriber_count(self) -> int:
        return len(self._subscriptions)
