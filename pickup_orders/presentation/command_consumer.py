import logging
from pydantic import ValidationError

from pickup_orders.config import settings
from pickup_orders.domain.models import TransitionCommand
from pickup_orders.domain.exceptions import InvalidTransition, OrderNotFoundError
from pickup_orders.application.broadcast import OrderBroadcaster
from pickup_orders.application.interfaces import OrderRepository, StatusChannel, Subscription
from pickup_orders.application.update_status import UpdateOrderStatusUseCase, UpdateStatusDTO

logger = logging.getLogger(__name__)


class StatusCommandConsumer:
    """Applies fire-and-forget status commands.

    There is no reply channel: an accepted command is visible to everyone through
    the broadcast, a rejected one is only logged.
    """

    def __init__(self, channel: StatusChannel, repository: OrderRepository, broadcaster: OrderBroadcaster,
                 destination: str = settings.COMMAND_TOPIC):
        self._channel = channel
        self._use_case = UpdateOrderStatusUseCase(repository, broadcaster)
        self._destination = destination
        self._subscription: Subscription | None = None

    async def start(self):
        self._subscription = await self._channel.subscribe(self._destination, self.handle)
        logger.info(f"Command consumer listening on {self._destination}")

    async def stop(self):
        if self._subscription:
            await self._subscription.close()
            self._subscription = None
            logger.info("Command consumer stopped")

    async def handle(self, event_data: dict):
        try:
            command = TransitionCommand.model_validate(event_data)
        except ValidationError as e:
            logger.error(f"Malformed status command dropped: {e}")
            return

        logger.info(f"Received {command.new_status.value} for order {command.order_id}")
        try:
            await self._use_case(UpdateStatusDTO(
                public_id=command.order_id,
                new_status=command.new_status,
                vendor_id=command.vendor_id
            ))
        except OrderNotFoundError:
            logger.error(f"Status command for unknown order {command.order_id}")
        except InvalidTransition as e:
            logger.warning(f"Status command for {command.order_id} rejected: {e}")
