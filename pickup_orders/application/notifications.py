import itertools
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import List
from pydantic import BaseModel, Field

from pickup_orders.domain.models import Order, OrderStatus

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


class Notification(BaseModel):
    id: int
    level: NotificationLevel
    title: str
    message: str
    dismissed: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


VENDOR_MESSAGES = {
    OrderStatus.PLACED: "New order #{short_id} received!",
    OrderStatus.PREPARING: "Order #{short_id} is now being prepared.",
    OrderStatus.READY_FOR_PICKUP: "Order #{short_id} is ready for pickup!",
    OrderStatus.COMPLETED: "Order #{short_id} completed.",
    OrderStatus.REJECTED: "Order #{short_id} has been rejected.",
}

CUSTOMER_LABELS = {
    OrderStatus.PLACED: "Order Confirmed",
    OrderStatus.PREPARING: "Preparing Food",
    OrderStatus.READY_FOR_PICKUP: "Ready for Pickup",
    OrderStatus.COMPLETED: "Order Completed",
    OrderStatus.REJECTED: "Order Rejected",
}


def status_label(status: OrderStatus) -> str:
    return OrderStatus(status).value.replace("_", " ")


class NotificationCenter:
    """Dismissible user-facing messages of one viewer session, newest last"""

    def __init__(self, limit: int = 50):
        self._limit = limit
        self._items: List[Notification] = []
        self._ids = itertools.count(1)

    def push(self, level: NotificationLevel, title: str, message: str) -> Notification:
        notification = Notification(id=next(self._ids), level=level, title=title, message=message)
        self._items.append(notification)
        del self._items[:-self._limit]
        logger.info(f"[{level.value}] {title}: {message}")
        return notification

    def info(self, title: str, message: str) -> Notification:
        return self.push(NotificationLevel.INFO, title, message)

    def success(self, title: str, message: str) -> Notification:
        return self.push(NotificationLevel.SUCCESS, title, message)

    def error(self, title: str, message: str) -> Notification:
        return self.push(NotificationLevel.ERROR, title, message)

    def order_update_for_vendor(self, order: Order) -> Notification:
        return self.info("Order Update", VENDOR_MESSAGES[order.status].format(short_id=order.short_id))

    def order_update_for_customer(self, order: Order) -> Notification:
        return self.info("Order Update!", f"Your order is now: {CUSTOMER_LABELS[order.status]}")

    def dismiss(self, notification_id: int) -> bool:
        for notification in self._items:
            if notification.id == notification_id and not notification.dismissed:
                notification.dismissed = True
                return True
        return False

    @property
    def active(self) -> List[Notification]:
        return [n for n in self._items if not n.dismissed]

    @property
    def all(self) -> List[Notification]:
        return list(self._items)
