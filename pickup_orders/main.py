import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI

from pickup_orders.config import settings
from pickup_orders.application.broadcast import OrderBroadcaster
from pickup_orders.application.interfaces import StatusChannel
from pickup_orders.infrastructure.kafka_channel import KafkaStatusChannel
from pickup_orders.infrastructure.repositories import InMemoryOrderRepository
from pickup_orders.presentation.api import router
from pickup_orders.presentation.command_consumer import StatusCommandConsumer

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(channel: Optional[StatusChannel] = None) -> FastAPI:
    """Builds the order service; without a channel it broadcasts over Kafka"""
    kafka = None
    if channel is None:
        kafka = KafkaStatusChannel(
            settings.KAFKA_BOOTSTRAP_SERVERS,
            client_id=settings.KAFKA_CLIENT_ID,
            reconnect_delay=settings.RECONNECT_DELAY,
            order_events_topic=settings.ORDER_EVENTS_TOPIC
        )
        channel = kafka

    repository = InMemoryOrderRepository()
    broadcaster = OrderBroadcaster(channel)
    consumer = StatusCommandConsumer(channel, repository, broadcaster)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if kafka:
            await kafka.start()
        await consumer.start()
        logger.info("Order service started")

        yield

        logger.info("Order service stopping...")
        await consumer.stop()
        if kafka:
            await kafka.stop()

    app = FastAPI(
        title="Pickup Order Service",
        description="Order status transitions and real-time propagation",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.repository = repository
    app.state.broadcaster = broadcaster
    app.state.channel = channel

    app.include_router(router, prefix="/api")

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app


app = create_app()
