from datetime import datetime, timezone
from typing import List, Optional
from pydantic import BaseModel

from pickup_orders.domain.models import Ack, Order, OrderStatus
from pickup_orders.domain.exceptions import OrderNotFoundError
from pickup_orders.application.notifications import CUSTOMER_LABELS
from pickup_orders.application.order_store import QueueBuckets
from pickup_orders.application.session import TrackingSession, VendorSession

TRACKED_STEPS = [
    OrderStatus.PLACED,
    OrderStatus.PREPARING,
    OrderStatus.READY_FOR_PICKUP,
    OrderStatus.COMPLETED,
]


class VendorQueueView:
    """Order queue of a vendor: four columns and the actions available in each"""

    def __init__(self, session: VendorSession):
        self._session = session

    def buckets(self) -> QueueBuckets:
        return self._session.store.view()

    async def accept(self, public_id: str) -> Ack:
        return await self._move(public_id, OrderStatus.PREPARING)

    async def reject(self, public_id: str) -> Ack:
        return await self._move(public_id, OrderStatus.REJECTED)

    async def mark_ready(self, public_id: str) -> Ack:
        return await self._move(public_id, OrderStatus.READY_FOR_PICKUP)

    async def mark_completed(self, public_id: str) -> Ack:
        return await self._move(public_id, OrderStatus.COMPLETED)

    async def scan_qr(self, code: str) -> Ack:
        # The QR code carries the public order id
        return await self._session.dispatcher.complete_scanned(code.strip())

    async def _move(self, public_id: str, target: OrderStatus) -> Ack:
        order = self._session.store.get(public_id)
        if order is None:
            error = OrderNotFoundError(f"Order {public_id} is not in the queue")
            self._session.notifications.error("Error", str(error))
            return Ack(order_id=public_id, target=target, ok=False, error=str(error))
        return await self._session.dispatcher.request_transition(public_id, order.status, target)


class TrackerStep(BaseModel):
    status: OrderStatus
    label: str
    done: bool
    current: bool


class TrackerView:
    """Customer-side progress of a single order, derived only from its server status"""

    def __init__(self, session: TrackingSession):
        self._session = session

    @property
    def order(self) -> Optional[Order]:
        return self._session.store.get(self._session.public_id)

    @property
    def is_rejected(self) -> bool:
        order = self.order
        return order is not None and order.status == OrderStatus.REJECTED

    def steps(self) -> List[TrackerStep]:
        index = self._current_index()
        return [
            TrackerStep(status=status, label=CUSTOMER_LABELS[status], done=i <= index, current=i == index)
            for i, status in enumerate(TRACKED_STEPS)
        ]

    def progress_percent(self) -> float:
        index = self._current_index()
        if index < 0:
            return 0.0
        return (index + 1) * 100 / len(TRACKED_STEPS)

    def minutes_remaining(self, now: Optional[datetime] = None) -> Optional[int]:
        order = self.order
        if order is None:
            return None
        now = now or datetime.now(timezone.utc)
        minutes = round((order.estimated_ready_at - now).total_seconds() / 60)
        return max(minutes, 0)

    def _current_index(self) -> int:
        order = self.order
        if order is None or order.status not in TRACKED_STEPS:
            return -1
        return TRACKED_STEPS.index(order.status)
