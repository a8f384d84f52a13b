import json
import logging
import asyncio
from typing import Optional
from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from aiokafka.errors import KafkaError

from pickup_orders.application.interfaces import (
    StatusChannel, Subscription, Handler, ConnectCallback, Destination, destination_of
)
from pickup_orders.domain.exceptions import TransportUnavailable
from pickup_orders.domain.models import Topic

logger = logging.getLogger(__name__)

_ORDER_PREFIX = Topic.order("").destination


class _KafkaSubscription(Subscription):
    def __init__(self, *args, key: Optional[str] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.key = key
        self.task: asyncio.Task | None = None
        self.consumer: AIOKafkaConsumer | None = None


class KafkaStatusChannel(StatusChannel):
    """Status channel over Kafka.

    Order destinations share one Kafka topic; subscribers keep only the messages
    keyed by their order's public id. Every other destination is its own Kafka
    topic. Messages are keyed by the order public id, which keeps one order's
    events on one partition.

    Each subscription owns a consumer without a group that starts from the latest
    offset, so reconnecting never replays a backlog. The producer is started
    lazily and again after a failed start, so publishing recovers with the broker.
    """

    def __init__(self, bootstrap_servers: str, client_id: str = "pickup-orders",
                 reconnect_delay: float = 5.0, order_events_topic: str = "orders.order-events",
                 producer_factory=AIOKafkaProducer, consumer_factory=AIOKafkaConsumer):
        self._bootstrap_servers = bootstrap_servers
        self._client_id = client_id
        self._reconnect_delay = reconnect_delay
        self._order_events_topic = order_events_topic
        self._producer_factory = producer_factory
        self._consumer_factory = consumer_factory
        self._producer: AIOKafkaProducer | None = None
        self._start_lock = asyncio.Lock()
        self._stopped = False
        self._subscriptions: list[_KafkaSubscription] = []

    async def start(self) -> bool:
        async with self._start_lock:
            self._stopped = False
            if self._producer:
                return True
            producer = self._producer_factory(
                bootstrap_servers=self._bootstrap_servers,
                client_id=self._client_id
            )
            try:
                await producer.start()
            except KafkaError as e:
                logger.error(f"Kafka producer could not start: {e}")
                await producer.stop()
                return False
            self._producer = producer
            logger.info("Kafka producer started")
            return True

    async def stop(self):
        self._stopped = True
        tasks = [sub.task for sub in self._subscriptions if sub.task and sub.task is not asyncio.current_task()]
        for sub in list(self._subscriptions):
            await self.unsubscribe(sub)
        await asyncio.gather(*tasks, return_exceptions=True)
        if self._producer:
            await self._producer.stop()
            self._producer = None
            logger.info("Kafka producer stopped")

    async def publish(self, topic: Destination, event: dict) -> None:
        destination = destination_of(topic)
        if self._stopped:
            raise TransportUnavailable("Kafka channel is stopped")
        if not self._producer and not await self.start():
            raise TransportUnavailable(f"Kafka producer not available, cannot publish to {destination}")

        kafka_topic, _ = self._route(destination)
        key = event.get("publicId") or event.get("orderId")
        try:
            await self._producer.send_and_wait(
                topic=kafka_topic,
                key=key.encode() if key else None,
                value=json.dumps(event).encode()
            )
        except KafkaError as e:
            logger.error(f"Failed to publish to {destination}: {e}")
            raise TransportUnavailable(f"Kafka unavailable: {e}") from e
        logger.info(f"Published to {destination}")

    async def subscribe(self, topic: Destination, handler: Handler,
                        on_connect: Optional[ConnectCallback] = None) -> Subscription:
        destination = destination_of(topic)
        _, key = self._route(destination)
        sub = _KafkaSubscription(self, destination, handler, on_connect, key=key)
        self._subscriptions.append(sub)
        sub.task = asyncio.create_task(self._run(sub))
        return sub

    async def unsubscribe(self, subscription: Subscription) -> None:
        if subscription.closed:
            return
        subscription.closed = True
        subscription.live = False
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
        if isinstance(subscription, _KafkaSubscription):
            if subscription.task and subscription.task is not asyncio.current_task():
                subscription.task.cancel()
            await self._stop_consumer(subscription)
        logger.info(f"Unsubscribed from {subscription.destination}")

    def _route(self, destination: str) -> tuple[str, Optional[str]]:
        """Kafka topic of a destination and the message key its subscribers keep"""
        if destination.startswith(_ORDER_PREFIX):
            return self._order_events_topic, destination[len(_ORDER_PREFIX):]
        return destination, None

    async def _run(self, sub: _KafkaSubscription):
        """Connects, consumes, and reconnects until the subscription is closed"""
        kafka_topic, _ = self._route(sub.destination)
        while not sub.closed:
            try:
                sub.consumer = self._consumer_factory(
                    kafka_topic,
                    bootstrap_servers=self._bootstrap_servers,
                    client_id=self._client_id,
                    group_id=None,
                    auto_offset_reset="latest",
                    enable_auto_commit=False,
                    value_deserializer=lambda v: json.loads(v.decode())
                )
                await sub.consumer.start()
                sub.live = True
                logger.info(f"Kafka subscription to {sub.destination} is live")
                if sub.on_connect:
                    await sub.on_connect()

                async for msg in sub.consumer:
                    if sub.closed:
                        break
                    if sub.key is not None and (msg.key or b"").decode() != sub.key:
                        continue
                    try:
                        await sub.handler(msg.value)
                    except Exception as e:
                        logger.error(f"Handler for {sub.destination} failed: {e}", exc_info=True)

            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Subscription to {sub.destination} lost: {e}. Retrying in {self._reconnect_delay}s")
            finally:
                sub.live = False
                await self._stop_consumer(sub)

            if not sub.closed:
                await asyncio.sleep(self._reconnect_delay)

    async def _stop_consumer(self, sub: _KafkaSubscription):
        consumer, sub.consumer = sub.consumer, None
        if consumer:
            try:
                await consumer.stop()
            except KafkaError as e:
                logger.warning(f"Error stopping consumer for {sub.destination}: {e}")
