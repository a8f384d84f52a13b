import asyncio
import logging

from pickup_orders.domain.models import Order, Topic
from pickup_orders.domain.exceptions import TransportUnavailable
from pickup_orders.application.interfaces import StatusChannel

logger = logging.getLogger(__name__)


class OrderBroadcaster:
    """Publishes committed orders to the vendor topic and the order topic.

    Use cases hold `lock_for(public_id)` from reading the order until the broadcast
    is sent, so events of one order leave in commit order. Different orders do not
    wait for each other.
    """

    def __init__(self, channel: StatusChannel):
        self._channel = channel
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, public_id: str) -> asyncio.Lock:
        lock = self._locks.get(public_id)
        if lock is None:
            lock = self._locks[public_id] = asyncio.Lock()
        return lock

    async def publish(self, order: Order) -> bool:
        payload = order.to_payload()
        delivered = True
        for topic in (Topic.vendor(order.vendor_id), Topic.order(order.public_id)):
            try:
                await self._channel.publish(topic, payload)
            except TransportUnavailable as e:
                # The transition is committed; subscribers recover on their next snapshot
                logger.error(f"Broadcast of {order.public_id} to {topic.destination} failed: {e}")
                delivered = False
        return delivered
