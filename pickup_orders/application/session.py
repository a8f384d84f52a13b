import logging
from abc import ABC, abstractmethod
from typing import List, Optional
from pydantic import ValidationError

from pickup_orders.domain.models import Order, Topic
from pickup_orders.domain.exceptions import OrderNotFoundError, TransportUnavailable
from pickup_orders.application.context import ViewerContext
from pickup_orders.application.dispatcher import CommandDispatcher
from pickup_orders.application.interfaces import (
    OrderCommandService, OrderSnapshotService, StatusChannel, Subscription
)
from pickup_orders.application.notifications import NotificationCenter
from pickup_orders.application.order_store import ClientOrderStore

logger = logging.getLogger(__name__)


class ViewerSession(ABC):
    """Owns the store, the subscriptions and the notifications of one viewer.

    open() subscribes first and loads the snapshot when the subscription goes live,
    so no delta published after the snapshot read is lost. Every reconnect reloads
    the snapshot because the channel keeps no backlog.
    """

    def __init__(
        self,
        context: ViewerContext,
        channel: StatusChannel,
        snapshots: OrderSnapshotService,
        store: Optional[ClientOrderStore] = None,
        notifications: Optional[NotificationCenter] = None
    ):
        self.context = context
        self.store = store if store is not None else ClientOrderStore()
        self.notifications = notifications if notifications is not None else NotificationCenter()
        self._channel = channel
        self._snapshots = snapshots
        self._subscriptions: List[Subscription] = []

    @property
    @abstractmethod
    def topic(self) -> Topic:
        pass

    @property
    def is_live(self) -> bool:
        return self.context.is_live

    async def open(self) -> "ViewerSession":
        subscription = await self._channel.subscribe(self.topic, self._on_event, on_connect=self.refresh)
        self._subscriptions.append(subscription)
        return self

    async def close(self):
        self.context.close()
        for subscription in self._subscriptions:
            await subscription.close()
        self._subscriptions.clear()
        logger.info(f"Session {self.context.viewer_id} closed")

    async def __aenter__(self):
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def refresh(self):
        try:
            orders = await self._fetch_snapshot()
        except (TransportUnavailable, OrderNotFoundError) as e:
            logger.error(f"Snapshot for {self.topic.destination} failed: {e}")
            if self.is_live:
                self.notifications.error("Error", "Failed to load current orders.")
            return

        if not self.is_live:
            return
        applied = self.store.load_snapshot(orders)
        logger.info(f"Snapshot for {self.topic.destination}: {applied}/{len(orders)} orders applied")

    async def _on_event(self, payload: dict):
        if not self.is_live:
            return
        try:
            order = Order.from_payload(payload)
        except ValidationError as e:
            logger.warning(f"Dropped malformed event on {self.topic.destination}: {e}")
            return

        known = self.store.confirmed(order.public_id)
        if self.store.ingest(order) and (known is None or known.status != order.status):
            self._announce(order)

    @abstractmethod
    async def _fetch_snapshot(self) -> List[Order]:
        pass

    @abstractmethod
    def _announce(self, order: Order):
        pass


class VendorSession(ViewerSession):
    def __init__(
        self,
        vendor_id: str,
        channel: StatusChannel,
        snapshots: OrderSnapshotService,
        commands: OrderCommandService,
        store: Optional[ClientOrderStore] = None,
        notifications: Optional[NotificationCenter] = None
    ):
        super().__init__(
            ViewerContext(viewer_id=f"vendor:{vendor_id}", vendor_id=str(vendor_id)),
            channel, snapshots, store, notifications
        )
        self.dispatcher = CommandDispatcher(self.context, self.store, commands, channel, self.notifications)

    @property
    def topic(self) -> Topic:
        return Topic.vendor(self.context.vendor_id)

    async def _fetch_snapshot(self) -> List[Order]:
        return await self._snapshots.fetch_vendor_orders(self.context.vendor_id)

    def _announce(self, order: Order):
        self.notifications.order_update_for_vendor(order)


class TrackingSession(ViewerSession):
    def __init__(
        self,
        public_id: str,
        channel: StatusChannel,
        snapshots: OrderSnapshotService,
        store: Optional[ClientOrderStore] = None,
        notifications: Optional[NotificationCenter] = None
    ):
        super().__init__(ViewerContext(viewer_id=f"order:{public_id}"), channel, snapshots, store, notifications)
        self.public_id = public_id

    @property
    def topic(self) -> Topic:
        return Topic.order(self.public_id)

    async def _fetch_snapshot(self) -> List[Order]:
        return [await self._snapshots.fetch_order(self.public_id)]

    def _announce(self, order: Order):
        self.notifications.order_update_for_customer(order)
