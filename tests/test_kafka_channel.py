import asyncio
import json
from types import SimpleNamespace

import pytest
import pytest_asyncio
from aiokafka.errors import KafkaConnectionError

from pickup_orders.application.session import VendorSession
from pickup_orders.domain.exceptions import TransportUnavailable
from pickup_orders.domain.models import OrderStatus, Topic
from pickup_orders.infrastructure.kafka_channel import KafkaStatusChannel
from pickup_orders.infrastructure.memory_channel import InMemoryStatusChannel
from tests.factories import LocalOrderService, make_order


class FakeBroker:
    """Stands in for the Kafka cluster: producers and consumers share it in process"""

    def __init__(self, producer_failures=0, consumer_failures=0):
        self.producer_failures = producer_failures
        self.consumer_failures = consumer_failures
        self.producer_starts = 0
        self.consumer_starts = 0
        self.sent = []
        self.consumers = []

    def producer(self, **config):
        return FakeProducer(self)

    def consumer(self, topic, **config):
        return FakeConsumer(self, topic, config)

    def deliver(self, topic, key, value: bytes):
        for consumer in list(self.consumers):
            if consumer.topic == topic:
                consumer.queue.put_nowait(SimpleNamespace(key=key, value=consumer.deserialize(value)))

    def drop_connections(self):
        for consumer in list(self.consumers):
            consumer.queue.put_nowait(KafkaConnectionError("connection reset"))


class FakeProducer:
    def __init__(self, broker):
        self.broker = broker

    async def start(self):
        self.broker.producer_starts += 1
        if self.broker.producer_failures:
            self.broker.producer_failures -= 1
            raise KafkaConnectionError("broker unreachable")

    async def send_and_wait(self, topic, key=None, value=None):
        self.broker.sent.append((topic, key, value))
        self.broker.deliver(topic, key, value)

    async def stop(self):
        pass


class FakeConsumer:
    def __init__(self, broker, topic, config):
        self.broker = broker
        self.topic = topic
        self.deserialize = config["value_deserializer"]
        self.queue = asyncio.Queue()
        self.stopped = False

    async def start(self):
        self.broker.consumer_starts += 1
        if self.broker.consumer_failures:
            self.broker.consumer_failures -= 1
            raise KafkaConnectionError("broker unreachable")
        self.broker.consumers.append(self)

    async def stop(self):
        self.stopped = True
        if self in self.broker.consumers:
            self.broker.consumers.remove(self)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.queue.get()
        if isinstance(item, Exception):
            raise item
        return item


async def until(predicate, timeout=1.0):
    async def wait():
        while not predicate():
            await asyncio.sleep(0.001)
    await asyncio.wait_for(wait(), timeout)


def _channel(broker):
    return KafkaStatusChannel(
        "localhost:9092",
        reconnect_delay=0,
        producer_factory=broker.producer,
        consumer_factory=broker.consumer
    )


@pytest.fixture
def broker():
    return FakeBroker()


@pytest_asyncio.fixture
async def kafka(broker):
    channel = _channel(broker)
    yield channel
    await channel.stop()


def _recorder():
    received = []

    async def handler(event):
        received.append(event)

    return received, handler


class TestPublish:
    @pytest.mark.asyncio
    async def test_failed_start_is_retried_on_publish(self):
        broker = FakeBroker(producer_failures=2)
        channel = _channel(broker)

        assert await channel.start() is False
        with pytest.raises(TransportUnavailable):
            await channel.publish(Topic.vendor("v1"), {"publicId": "o1"})

        await channel.publish(Topic.vendor("v1"), {"publicId": "o1"})

        assert broker.producer_starts == 3
        assert [topic for topic, _, _ in broker.sent] == ["orders.vendor.v1"]
        await channel.stop()

    @pytest.mark.asyncio
    async def test_publish_after_stop_fails(self, kafka):
        await kafka.start()
        await kafka.stop()

        with pytest.raises(TransportUnavailable):
            await kafka.publish(Topic.vendor("v1"), {"publicId": "o1"})

    @pytest.mark.asyncio
    async def test_order_events_share_one_topic_keyed_by_order(self, kafka, broker):
        await kafka.publish(Topic.order("o1"), {"publicId": "o1", "status": "PREPARING"})
        await kafka.publish(Topic.order("o2"), {"publicId": "o2", "status": "PLACED"})
        await kafka.publish("orders.commands.update-status", {"orderId": "o3", "newStatus": "READY_FOR_PICKUP"})

        assert [(topic, key) for topic, key, _ in broker.sent] == [
            ("orders.order-events", b"o1"),
            ("orders.order-events", b"o2"),
            ("orders.commands.update-status", b"o3"),
        ]
        assert json.loads(broker.sent[0][2]) == {"publicId": "o1", "status": "PREPARING"}

    @pytest.mark.asyncio
    async def test_broker_error_is_transport_failure(self, kafka, broker):
        async def failing_send(topic, key=None, value=None):
            raise KafkaConnectionError("broker down")

        await kafka.start()
        kafka._producer.send_and_wait = failing_send

        with pytest.raises(TransportUnavailable):
            await kafka.publish(Topic.vendor("v1"), {"publicId": "o1"})


class TestSubscribe:
    @pytest.mark.asyncio
    async def test_subscribe_while_broker_down_connects_later(self, kafka, broker):
        broker.consumer_failures = 2
        received, handler = _recorder()
        connects = []

        async def on_connect():
            connects.append(True)

        subscription = await kafka.subscribe(Topic.vendor("v1"), handler, on_connect=on_connect)
        assert subscription.live is False

        await until(lambda: subscription.live)
        assert broker.consumer_starts == 3
        assert connects == [True]

        await kafka.publish(Topic.vendor("v1"), {"publicId": "o1", "status": "PLACED"})
        await until(lambda: received)
        assert received == [{"publicId": "o1", "status": "PLACED"}]

    @pytest.mark.asyncio
    async def test_order_subscriber_keeps_only_its_order(self, kafka):
        received, handler = _recorder()
        subscription = await kafka.subscribe(Topic.order("o1"), handler)
        await until(lambda: subscription.live)

        await kafka.publish(Topic.order("o2"), {"publicId": "o2", "status": "PREPARING"})
        await kafka.publish(Topic.order("o1"), {"publicId": "o1", "status": "PREPARING"})
        await kafka.publish(Topic.order("o1"), {"publicId": "o1", "status": "READY_FOR_PICKUP"})
        await until(lambda: len(received) == 2)

        assert [e["status"] for e in received] == ["PREPARING", "READY_FOR_PICKUP"]
        assert all(e["publicId"] == "o1" for e in received)

    @pytest.mark.asyncio
    async def test_lost_connection_reconnects_and_calls_on_connect_again(self, kafka, broker):
        connects = []

        async def on_connect():
            connects.append(True)

        _, handler = _recorder()
        subscription = await kafka.subscribe(Topic.vendor("v1"), handler, on_connect=on_connect)
        await until(lambda: len(connects) == 1)

        broker.drop_connections()

        await until(lambda: len(connects) == 2 and subscription.live)
        assert len(broker.consumers) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe_cancels_the_consumer_task(self, kafka, broker):
        _, handler = _recorder()
        subscription = await kafka.subscribe(Topic.vendor("v1"), handler)
        await until(lambda: subscription.live)
        consumer = broker.consumers[0]

        await subscription.close()
        await asyncio.gather(subscription.task, return_exceptions=True)

        assert subscription.task.cancelled()
        assert subscription.closed and not subscription.live
        assert consumer.stopped
        assert broker.consumers == []

    @pytest.mark.asyncio
    async def test_reconnect_refreshes_the_vendor_snapshot(self, kafka, broker):
        server = LocalOrderService(InMemoryStatusChannel())
        order = await server.seed(make_order(status=OrderStatus.PLACED))
        broker.consumer_failures = 1

        session = await VendorSession("vendor-1", kafka, snapshots=server, commands=server).open()
        await until(lambda: order.public_id in session.store)

        # changed while the subscription is down; the broadcast never reaches Kafka
        await server.update_status(order.public_id, OrderStatus.PREPARING, "vendor-1")
        broker.drop_connections()

        await until(lambda: session.store.get(order.public_id).status == OrderStatus.PREPARING)
        await session.close()
