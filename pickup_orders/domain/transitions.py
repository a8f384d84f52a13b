"""
Order status state machine.

PLACED -> PREPARING -> READY_FOR_PICKUP -> COMPLETED, with REJECTED reachable
only from PLACED. Authorization of the actor is not checked here.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from pickup_orders.domain.models import Order, OrderStatus
from pickup_orders.domain.exceptions import InvalidTransition

logger = logging.getLogger(__name__)


TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset({OrderStatus.COMPLETED, OrderStatus.REJECTED})

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PLACED: frozenset({OrderStatus.PREPARING, OrderStatus.REJECTED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY_FOR_PICKUP}),
    OrderStatus.READY_FOR_PICKUP: frozenset({OrderStatus.COMPLETED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.REJECTED: frozenset(),
}

# Terminal states share the last rank
_RANKS: dict[OrderStatus, int] = {
    OrderStatus.PLACED: 0,
    OrderStatus.PREPARING: 1,
    OrderStatus.READY_FOR_PICKUP: 2,
    OrderStatus.COMPLETED: 3,
    OrderStatus.REJECTED: 3,
}


def is_terminal(status: OrderStatus) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def can_transition(current: OrderStatus, requested: OrderStatus) -> bool:
    """True only for the four legal edges of the state machine"""
    return OrderStatus(requested) in ALLOWED_TRANSITIONS[OrderStatus(current)]


def status_rank(status: OrderStatus) -> int:
    return _RANKS[OrderStatus(status)]


def apply_transition(
    order: Order,
    requested: OrderStatus,
    actor: str,
    now: Optional[datetime] = None
) -> Order:
    """Returns a copy of the order in the requested status, stamped with the event time.

    Raises InvalidTransition for any edge outside the table, terminal states included.
    """
    requested = OrderStatus(requested)
    if not can_transition(order.status, requested):
        logger.warning(
            f"Rejected transition {order.status.value} -> {requested.value} "
            f"for order {order.public_id} requested by {actor}"
        )
        raise InvalidTransition(order.status, requested)

    stamped_at = now or datetime.now(timezone.utc)
    logger.info(f"Order {order.public_id}: {order.status.value} -> {requested.value} by {actor}")
    return order.model_copy(update={"status": requested, "updated_at": stamped_at})
