import pytest_asyncio

from pickup_orders.infrastructure.memory_channel import InMemoryStatusChannel
from tests.factories import LocalOrderService


@pytest_asyncio.fixture
async def channel():
    channel = InMemoryStatusChannel()
    yield channel
    await channel.close()


@pytest_asyncio.fixture
async def server(channel):
    return LocalOrderService(channel)
