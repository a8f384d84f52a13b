"""Wiring of viewer sessions against a running order service."""
from typing import Optional

from pickup_orders.config import settings
from pickup_orders.application.interfaces import StatusChannel
from pickup_orders.application.session import TrackingSession, VendorSession
from pickup_orders.infrastructure.http_clients import HTTPOrderClient
from pickup_orders.infrastructure.kafka_channel import KafkaStatusChannel


def default_http_client() -> HTTPOrderClient:
    return HTTPOrderClient(settings.API_BASE_URL, settings.API_TOKEN, timeout=settings.REQUEST_TIMEOUT)


async def default_channel() -> KafkaStatusChannel:
    channel = KafkaStatusChannel(
        settings.KAFKA_BOOTSTRAP_SERVERS,
        client_id=settings.KAFKA_CLIENT_ID,
        reconnect_delay=settings.RECONNECT_DELAY,
        order_events_topic=settings.ORDER_EVENTS_TOPIC
    )
    await channel.start()
    return channel


async def open_vendor_session(
    vendor_id: str,
    channel: Optional[StatusChannel] = None,
    http: Optional[HTTPOrderClient] = None
) -> VendorSession:
    http = http or default_http_client()
    channel = channel or await default_channel()
    session = VendorSession(vendor_id, channel, snapshots=http, commands=http)
    return await session.open()


async def open_tracking_session(
    public_id: str,
    channel: Optional[StatusChannel] = None,
    http: Optional[HTTPOrderClient] = None
) -> TrackingSession:
    http = http or default_http_client()
    channel = channel or await default_channel()
    session = TrackingSession(public_id, channel, snapshots=http)
    return await session.open()
