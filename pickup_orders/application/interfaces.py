from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, List, Union

from pickup_orders.domain.models import Order, OrderStatus, Topic


Handler = Callable[[dict], Awaitable[None]]
ConnectCallback = Callable[[], Awaitable[None]]
Destination = Union[Topic, str]


def destination_of(topic: Destination) -> str:
    return topic.destination if isinstance(topic, Topic) else topic


class OrderRepository(ABC):
    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_by_public_id(self, public_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def list_by_vendor(self, vendor_id: str) -> List[Order]:
        pass

    @abstractmethod
    async def create(self, order: Order, idempotency_key: Optional[str] = None) -> None:
        pass

    @abstractmethod
    async def save(self, order: Order) -> None:
        pass


class Subscription:
    """Owned handle for one subscriber on one destination"""

    def __init__(self, channel: "StatusChannel", destination: str, handler: Handler,
                 on_connect: Optional[ConnectCallback] = None):
        self.channel = channel
        self.destination = destination
        self.handler = handler
        self.on_connect = on_connect
        self.live = False
        self.closed = False

    async def close(self) -> None:
        await self.channel.unsubscribe(self)


class StatusChannel(ABC):
    """Publish/subscribe transport keyed by destination.

    Ordering holds within one destination only. publish raises TransportUnavailable
    when the transport is down; subscribe never does, the subscription goes live later.
    """

    @abstractmethod
    async def publish(self, topic: Destination, event: dict) -> None:
        pass

    @abstractmethod
    async def subscribe(self, topic: Destination, handler: Handler,
                        on_connect: Optional[ConnectCallback] = None) -> Subscription:
        pass

    @abstractmethod
    async def unsubscribe(self, subscription: Subscription) -> None:
        pass


class OrderSnapshotService(ABC):
    @abstractmethod
    async def fetch_vendor_orders(self, vendor_id: str) -> List[Order]:
        pass

    @abstractmethod
    async def fetch_order(self, public_id: str) -> Order:
        pass


class OrderCommandService(ABC):
    @abstractmethod
    async def update_status(self, public_id: str, new_status: OrderStatus, vendor_id: str) -> Order:
        pass
