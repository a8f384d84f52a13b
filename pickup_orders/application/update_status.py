import logging
from pydantic import BaseModel

from pickup_orders.domain.models import Order, OrderStatus
from pickup_orders.domain.exceptions import OrderNotFoundError
from pickup_orders.domain.transitions import apply_transition
from pickup_orders.application.broadcast import OrderBroadcaster
from pickup_orders.application.interfaces import OrderRepository

logger = logging.getLogger(__name__)


class UpdateStatusDTO(BaseModel):
    public_id: str
    new_status: OrderStatus
    vendor_id: str


class UpdateOrderStatusUseCase:
    """Server side of every status change: the HTTP endpoint, the command consumer and QR pickup"""

    def __init__(self, repository: OrderRepository, broadcaster: OrderBroadcaster):
        self._orders = repository
        self._broadcaster = broadcaster

    async def __call__(self, dto: UpdateStatusDTO) -> Order:
        logger.info(f"Status change {dto.public_id} -> {dto.new_status.value} from vendor {dto.vendor_id}")

        async with self._broadcaster.lock_for(dto.public_id):
            order = await self._orders.get_by_public_id(dto.public_id)
            if not order:
                raise OrderNotFoundError(f"Order {dto.public_id} not found")

            updated = apply_transition(order, dto.new_status, actor=f"vendor:{dto.vendor_id}")
            await self._orders.save(updated)
            await self._broadcaster.publish(updated)

        return updated
