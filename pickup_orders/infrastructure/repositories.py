from typing import Optional, List

from pickup_orders.domain.models import Order
from pickup_orders.application.interfaces import OrderRepository


class InMemoryOrderRepository(OrderRepository):
    """Server of record for orders, kept in process memory"""

    def __init__(self):
        self._orders: dict[str, Order] = {}
        self._by_public_id: dict[str, str] = {}
        self._by_idempotency_key: dict[str, str] = {}

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        return self._orders.get(order_id)

    async def get_by_public_id(self, public_id: str) -> Optional[Order]:
        order_id = self._by_public_id.get(public_id)
        return self._orders.get(order_id) if order_id else None

    async def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        order_id = self._by_idempotency_key.get(key)
        return self._orders.get(order_id) if order_id else None

    async def list_by_vendor(self, vendor_id: str) -> List[Order]:
        return [order for order in self._orders.values() if order.vendor_id == str(vendor_id)]

    async def create(self, order: Order, idempotency_key: Optional[str] = None) -> None:
        if order.id in self._orders:
            raise ValueError(f"Order {order.id} already exists")
        self._orders[order.id] = order
        self._by_public_id[order.public_id] = order.id
        if idempotency_key:
            self._by_idempotency_key[idempotency_key] = order.id

    async def save(self, order: Order) -> None:
        if order.id not in self._orders:
            raise ValueError(f"Order {order.id} does not exist")
        self._orders[order.id] = order
