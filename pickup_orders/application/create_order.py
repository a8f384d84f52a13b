import logging
from pydantic import BaseModel, Field
from datetime import datetime, timedelta, timezone
from typing import Optional
import uuid

from pickup_orders.domain.models import Customer, LineItem, Order, OrderStatus
from pickup_orders.application.broadcast import OrderBroadcaster
from pickup_orders.application.interfaces import OrderRepository


logger = logging.getLogger(__name__)


class CreateOrderDTO(BaseModel):
    customer: Customer
    vendor_id: str
    shop_id: str
    shop_name: Optional[str] = None
    vendor_name: Optional[str] = None
    items: list[LineItem] = Field(min_length=1)
    idempotency_key: Optional[str] = None


class CreateOrderUseCase:
    def __init__(self, repository: OrderRepository, broadcaster: OrderBroadcaster, prep_minutes: int):
        self._orders = repository
        self._broadcaster = broadcaster
        self._prep_minutes = prep_minutes

    async def __call__(self, order_data: CreateOrderDTO) -> Order:
        logger.info(f"Creating order for vendor {order_data.vendor_id}, shop {order_data.shop_id}")

        # 1. Idempotency
        if order_data.idempotency_key:
            existing = await self._orders.get_by_idempotency_key(order_data.idempotency_key)
            if existing:
                logger.info(f"Order already exists: {existing.public_id}")
                return existing

        # 2. Total from the price snapshots, fixed from now on
        total = round(sum(item.subtotal for item in order_data.items), 2)

        # 3. Create
        now = datetime.now(timezone.utc)
        order = Order(
            id=str(uuid.uuid4()),
            public_id=str(uuid.uuid4()),
            status=OrderStatus.PLACED,
            customer=order_data.customer,
            vendor_id=str(order_data.vendor_id),
            shop_id=str(order_data.shop_id),
            shop_name=order_data.shop_name,
            vendor_name=order_data.vendor_name,
            items=order_data.items,
            total_amount=total,
            placed_at=now,
            estimated_ready_at=now + timedelta(minutes=self._prep_minutes),
            updated_at=now
        )

        async with self._broadcaster.lock_for(order.public_id):
            await self._orders.create(order, idempotency_key=order_data.idempotency_key)
            logger.info(f"Order created: {order.public_id}")
            # New order reaches the vendor queue and the customer tracker
            await self._broadcaster.publish(order)

        return order
