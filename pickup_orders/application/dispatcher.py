import logging
from typing import Optional

from pickup_orders.config import settings
from pickup_orders.domain.models import Ack, OrderStatus, TransitionCommand
from pickup_orders.domain.exceptions import InvalidTransition, OrderNotFoundError, TransportUnavailable
from pickup_orders.domain.transitions import can_transition
from pickup_orders.application.context import ViewerContext
from pickup_orders.application.interfaces import OrderCommandService, StatusChannel
from pickup_orders.application.notifications import NotificationCenter, status_label
from pickup_orders.application.order_store import ClientOrderStore, SnapshotToken

logger = logging.getLogger(__name__)

VIA_REQUEST = "request"
VIA_PUBLISH = "publish"


class CommandDispatcher:
    """Sends status changes for one vendor session.

    Leaving PLACED (accept/reject) goes through the synchronous request so the vendor
    gets an authoritative answer; every later step is published and confirmed by the
    broadcast. Failures roll the store back and are never retried.
    """

    def __init__(
        self,
        context: ViewerContext,
        store: ClientOrderStore,
        commands: OrderCommandService,
        channel: StatusChannel,
        notifications: NotificationCenter,
        command_destination: str = settings.COMMAND_TOPIC
    ):
        self._context = context
        self._store = store
        self._commands = commands
        self._channel = channel
        self._notifications = notifications
        self._command_destination = command_destination

    async def request_transition(self, order_id: str, current_status: OrderStatus, target_status: OrderStatus) -> Ack:
        current = OrderStatus(current_status)
        target = OrderStatus(target_status)

        if not can_transition(current, target):
            return self._invalid(order_id, InvalidTransition(current, target))

        if current == OrderStatus.PLACED:
            return await self._via_request(order_id, target)
        return await self._via_publish(order_id, target)

    async def complete_scanned(self, public_id: str) -> Ack:
        """QR pickup: READY_FOR_PICKUP -> COMPLETED, always confirmed synchronously"""
        known = self._store.get(public_id)
        if known is not None and not can_transition(known.status, OrderStatus.COMPLETED):
            return self._invalid(public_id, InvalidTransition(known.status, OrderStatus.COMPLETED))
        logger.info(f"QR scan for order {public_id}")
        return await self._via_request(public_id, OrderStatus.COMPLETED)

    async def _via_request(self, order_id: str, target: OrderStatus) -> Ack:
        token = self._apply(order_id, target)
        try:
            order = await self._commands.update_status(order_id, target, self._context.vendor_id)
        except InvalidTransition as e:
            return self._refused(order_id, token, e)
        except (TransportUnavailable, OrderNotFoundError) as e:
            return self._fail(order_id, target, token, e, VIA_REQUEST)

        if not self._context.is_live:
            logger.info(f"Session closed before response for {order_id}, store left untouched")
            return Ack(order_id=order_id, target=target, ok=True, via=VIA_REQUEST, confirmed=True, order=order)

        if token:
            self._store.confirm(token)
        self._store.ingest(order)
        self._notifications.success(
            "Order Updated",
            f"Order #{order_id[:8]} status changed to {status_label(order.status)}."
        )
        return Ack(order_id=order_id, target=target, ok=True, via=VIA_REQUEST, confirmed=True, order=order)

    async def _via_publish(self, order_id: str, target: OrderStatus) -> Ack:
        token = self._apply(order_id, target)
        command = TransitionCommand(order_id=order_id, new_status=target, vendor_id=self._context.vendor_id)
        try:
            await self._channel.publish(self._command_destination, command.to_payload())
        except TransportUnavailable as e:
            return self._fail(order_id, target, token, e, VIA_PUBLISH)

        if token and self._context.is_live:
            self._store.confirm(token)
        logger.info(f"Published {target.value} for {order_id}, waiting for broadcast")
        return Ack(order_id=order_id, target=target, ok=True, via=VIA_PUBLISH)

    def _apply(self, order_id: str, target: OrderStatus) -> Optional[SnapshotToken]:
        if order_id not in self._store:
            return None
        return self._store.apply_optimistic(order_id, target)

    def _fail(self, order_id: str, target: OrderStatus, token: Optional[SnapshotToken],
              error: Exception, via: str) -> Ack:
        logger.error(f"Failed to update order status for {order_id} via {via}: {error}")
        if self._context.is_live:
            if token:
                self._store.rollback(token)
            self._notifications.error(
                "Error",
                f"Failed to update order status for #{order_id[:8]}. Please try again."
            )
        return Ack(order_id=order_id, target=target, ok=False, via=via, error=str(error))

    def _refused(self, order_id: str, token: Optional[SnapshotToken], error: InvalidTransition) -> Ack:
        """The server rejected the edge; retrying cannot succeed"""
        if token and self._context.is_live:
            self._store.rollback(token)
        ack = self._invalid(order_id, error)
        return ack.model_copy(update={"via": VIA_REQUEST})

    def _invalid(self, order_id: str, error: InvalidTransition) -> Ack:
        logger.warning(f"Ignored status change for {order_id}: {error}")
        if self._context.is_live:
            self._notifications.error("Invalid status change", f"Order #{order_id[:8]}: {error}")
        return Ack(order_id=order_id, target=error.requested, ok=False, error=str(error))
