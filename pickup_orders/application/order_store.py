import itertools
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional
from pydantic import BaseModel

from pickup_orders.domain.models import Order, OrderStatus
from pickup_orders.domain.exceptions import OrderNotFoundError
from pickup_orders.domain.transitions import status_rank

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotToken:
    """Handle of one optimistic mutation; previous is the last known good order"""
    id: int
    order_id: str
    previous: Order
    status: OrderStatus


class QueueBuckets(BaseModel):
    placed: List[Order] = []
    preparing: List[Order] = []
    ready_for_pickup: List[Order] = []
    historical: List[Order] = []

    @property
    def sizes(self) -> List[int]:
        return [len(self.placed), len(self.preparing), len(self.ready_for_pickup), len(self.historical)]


class ClientOrderStore:
    """Per-viewer copy of the orders it can see, keyed by public id.

    Visible state is the server state plus any optimistic mutation not yet resolved.
    Events ingested from the channel always replace optimistic state.
    """

    def __init__(self):
        self._orders: dict[str, Order] = {}
        self._server: dict[str, Order] = {}
        self._pending: dict[str, dict[int, SnapshotToken]] = {}
        self._token_ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._orders)

    def __contains__(self, order_id: str) -> bool:
        return order_id in self._orders

    def get(self, order_id: str) -> Optional[Order]:
        return self._orders.get(order_id)

    def orders(self) -> List[Order]:
        return list(self._orders.values())

    def confirmed(self, order_id: str) -> Optional[Order]:
        """Last state received from the server, without optimistic changes"""
        return self._server.get(order_id)

    def has_pending(self, order_id: str) -> bool:
        return bool(self._pending.get(order_id))

    def apply_optimistic(self, order_id: str, new_status: OrderStatus) -> SnapshotToken:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} is not in the local store")

        pending = self._pending.setdefault(order_id, {})
        if pending:
            # Nested mutation: keep the state from before the first one
            previous = next(iter(pending.values())).previous
        else:
            previous = order

        token = SnapshotToken(
            id=next(self._token_ids),
            order_id=order_id,
            previous=previous,
            status=OrderStatus(new_status)
        )
        pending[token.id] = token
        self._orders[order_id] = order.model_copy(update={"status": token.status})
        logger.debug(f"Optimistic {order.status.value} -> {token.status.value} for {order_id} (token {token.id})")
        return token

    def confirm(self, token: SnapshotToken) -> bool:
        if not self._discard(token):
            return False
        logger.debug(f"Confirmed token {token.id} for {token.order_id}")
        return True

    def rollback(self, token: SnapshotToken) -> bool:
        """Restores the order captured by the token; no-op once resolved or superseded"""
        if not self._discard(token):
            logger.debug(f"Rollback of token {token.id} for {token.order_id} skipped, already resolved")
            return False
        self._orders[token.order_id] = token.previous
        logger.info(f"Rolled back {token.order_id} to {token.previous.status.value}")
        return True

    def ingest(self, order: Order) -> bool:
        """Applies server truth. Returns False when the event is older than what we have."""
        order_id = order.public_id
        known = self._server.get(order_id)
        if known is not None and status_rank(order.status) < status_rank(known.status):
            logger.info(f"Dropped stale {order.status.value} for {order_id}, already at {known.status.value}")
            return False

        self._server[order_id] = order
        self._orders[order_id] = order
        superseded = self._pending.pop(order_id, None)
        if superseded:
            logger.debug(f"Server event for {order_id} superseded {len(superseded)} optimistic update(s)")
        return True

    def load_snapshot(self, orders: Iterable[Order]) -> int:
        applied = 0
        for order in orders:
            if self.ingest(order):
                applied += 1
        return applied

    def view(self) -> QueueBuckets:
        """Vendor queue buckets; PLACED newest first, every other bucket in arrival order"""
        buckets = QueueBuckets()
        for order in self._orders.values():
            if order.status == OrderStatus.PLACED:
                buckets.placed.append(order)
            elif order.status == OrderStatus.PREPARING:
                buckets.preparing.append(order)
            elif order.status == OrderStatus.READY_FOR_PICKUP:
                buckets.ready_for_pickup.append(order)
            else:
                buckets.historical.append(order)
        buckets.placed.sort(key=lambda o: o.placed_at, reverse=True)
        return buckets

    def _discard(self, token: SnapshotToken) -> bool:
        pending = self._pending.get(token.order_id)
        if not pending or token.id not in pending:
            return False
        del pending[token.id]
        if not pending:
            del self._pending[token.order_id]
        return True
