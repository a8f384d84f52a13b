import asyncio
import logging
from collections import defaultdict
from typing import Optional

from pickup_orders.application.interfaces import (
    StatusChannel, Subscription, Handler, ConnectCallback, Destination, destination_of
)
from pickup_orders.domain.exceptions import TransportUnavailable

logger = logging.getLogger(__name__)

_STOP = object()


class _QueuedSubscription(Subscription):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.queue: asyncio.Queue = asyncio.Queue()
        self.worker: asyncio.Task | None = None


class InMemoryStatusChannel(StatusChannel):
    """In-process broker.

    Every subscription has its own queue drained by one task, so deliveries on a
    destination reach a subscriber in publish order. Nothing is retained for late
    subscribers.
    """

    def __init__(self, connected: bool = True):
        self._connected = connected
        self._subscriptions: dict[str, list[_QueuedSubscription]] = defaultdict(list)

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self):
        if self._connected:
            return
        self._connected = True
        logger.info("In-memory channel connected")
        for subs in list(self._subscriptions.values()):
            for sub in list(subs):
                await self._go_live(sub)

    async def disconnect(self):
        """Drops the link; subscriptions stay registered and go live again on connect()"""
        self._connected = False
        for subs in self._subscriptions.values():
            for sub in subs:
                sub.live = False
                _drain(sub.queue)
        logger.info("In-memory channel disconnected")

    async def publish(self, topic: Destination, event: dict) -> None:
        destination = destination_of(topic)
        if not self._connected:
            raise TransportUnavailable(f"Channel is not connected, cannot publish to {destination}")

        receivers = [sub for sub in self._subscriptions.get(destination, []) if sub.live]
        for sub in receivers:
            sub.queue.put_nowait(event)
        logger.debug(f"Published to {destination} ({len(receivers)} subscribers)")

    async def subscribe(self, topic: Destination, handler: Handler,
                        on_connect: Optional[ConnectCallback] = None) -> Subscription:
        destination = destination_of(topic)
        sub = _QueuedSubscription(self, destination, handler, on_connect)
        sub.worker = asyncio.create_task(self._deliver(sub))
        self._subscriptions[destination].append(sub)

        if self._connected:
            await self._go_live(sub)
        else:
            logger.info(f"Channel offline, subscription to {destination} queued")
        return sub

    async def unsubscribe(self, subscription: Subscription) -> None:
        if subscription.closed:
            return
        subscription.closed = True
        subscription.live = False

        subs = self._subscriptions.get(subscription.destination, [])
        if subscription in subs:
            subs.remove(subscription)
        if not subs:
            self._subscriptions.pop(subscription.destination, None)

        if isinstance(subscription, _QueuedSubscription):
            # A handler already running finishes, queued deliveries are dropped
            _drain(subscription.queue)
            subscription.queue.put_nowait(_STOP)
        logger.debug(f"Unsubscribed from {subscription.destination}")

    async def flush(self):
        """Waits until every delivery queued so far has been handled"""
        for subs in list(self._subscriptions.values()):
            for sub in list(subs):
                await sub.queue.join()

    async def close(self):
        workers = []
        for subs in list(self._subscriptions.values()):
            for sub in list(subs):
                await self.unsubscribe(sub)
                workers.append(sub.worker)
        await asyncio.gather(*workers, return_exceptions=True)

    async def _go_live(self, sub: _QueuedSubscription):
        if sub.closed or sub.live:
            return
        sub.live = True
        logger.info(f"Subscription to {sub.destination} is live")
        if sub.on_connect:
            try:
                await sub.on_connect()
            except Exception as e:
                logger.error(f"on_connect for {sub.destination} failed: {e}", exc_info=True)

    async def _deliver(self, sub: _QueuedSubscription):
        while True:
            event = await sub.queue.get()
            if event is _STOP:
                sub.queue.task_done()
                return
            try:
                if not sub.closed:
                    await sub.handler(event)
            except Exception as e:
                logger.error(f"Handler for {sub.destination} failed: {e}", exc_info=True)
            finally:
                sub.queue.task_done()


def _drain(queue: asyncio.Queue):
    while True:
        try:
            queue.get_nowait()
        except asyncio.QueueEmpty:
            return
        queue.task_done()
