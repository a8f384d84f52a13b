from typing import List

from pickup_orders.domain.models import Order
from pickup_orders.domain.exceptions import OrderNotFoundError
from pickup_orders.application.interfaces import OrderRepository


class GetOrderUseCase:
    def __init__(self, repository: OrderRepository):
        self._orders = repository

    async def __call__(self, public_id: str) -> Order:
        order = await self._orders.get_by_public_id(public_id)
        if not order:
            raise OrderNotFoundError(f"Order {public_id} not found")
        return order


class ListVendorOrdersUseCase:
    def __init__(self, repository: OrderRepository):
        self._orders = repository

    async def __call__(self, vendor_id: str) -> List[Order]:
        return await self._orders.list_by_vendor(vendor_id)
