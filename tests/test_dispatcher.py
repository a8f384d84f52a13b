import pytest

from pickup_orders.application.context import ViewerContext
from pickup_orders.application.dispatcher import CommandDispatcher, VIA_PUBLISH, VIA_REQUEST
from pickup_orders.application.notifications import NotificationCenter, NotificationLevel
from pickup_orders.application.order_store import ClientOrderStore
from pickup_orders.config import settings
from pickup_orders.domain.exceptions import InvalidTransition, OrderNotFoundError, TransportUnavailable
from pickup_orders.domain.models import OrderStatus
from tests.factories import make_order


class RecordingCommands:
    def __init__(self):
        self.calls = []
        self.fail_with = None
        self.response = None

    async def update_status(self, public_id, new_status, vendor_id):
        self.calls.append((public_id, new_status, vendor_id))
        if self.fail_with:
            raise self.fail_with
        return self.response


class RecordingChannel:
    def __init__(self):
        self.published = []
        self.fail_with = None

    async def publish(self, topic, event):
        if self.fail_with:
            raise self.fail_with
        self.published.append((topic, event))


@pytest.fixture
def parts():
    context = ViewerContext(viewer_id="vendor:vendor-1", vendor_id="vendor-1")
    store = ClientOrderStore()
    commands = RecordingCommands()
    channel = RecordingChannel()
    notifications = NotificationCenter()
    dispatcher = CommandDispatcher(context, store, commands, channel, notifications)
    return context, store, commands, channel, notifications, dispatcher


@pytest.mark.asyncio
async def test_accept_uses_request_and_ingests_response(parts):
    context, store, commands, channel, notifications, dispatcher = parts
    order = make_order(status=OrderStatus.PLACED)
    store.ingest(order)
    commands.response = order.model_copy(update={"status": OrderStatus.PREPARING})

    ack = await dispatcher.request_transition(order.public_id, OrderStatus.PLACED, OrderStatus.PREPARING)

    assert ack.ok and ack.confirmed
    assert ack.via == VIA_REQUEST
    assert commands.calls == [(order.public_id, OrderStatus.PREPARING, "vendor-1")]
    assert channel.published == []
    assert store.get(order.public_id).status == OrderStatus.PREPARING
    assert not store.has_pending(order.public_id)
    assert notifications.active[-1].level == NotificationLevel.SUCCESS


@pytest.mark.asyncio
async def test_reject_failure_rolls_back_and_notifies(parts):
    context, store, commands, channel, notifications, dispatcher = parts
    order = make_order(status=OrderStatus.PLACED)
    store.ingest(order)
    commands.fail_with = TransportUnavailable("connection refused")

    ack = await dispatcher.request_transition(order.public_id, OrderStatus.PLACED, OrderStatus.REJECTED)

    assert not ack.ok
    assert "connection refused" in ack.error
    assert store.get(order.public_id).status == OrderStatus.PLACED
    assert notifications.active[-1].level == NotificationLevel.ERROR
    # no automatic retry
    assert len(commands.calls) == 1


@pytest.mark.asyncio
async def test_later_steps_are_published(parts):
    context, store, commands, channel, notifications, dispatcher = parts
    order = make_order(status=OrderStatus.PREPARING)
    store.ingest(order)

    ack = await dispatcher.request_transition(order.public_id, OrderStatus.PREPARING, OrderStatus.READY_FOR_PICKUP)

    assert ack.ok and not ack.confirmed
    assert ack.via == VIA_PUBLISH
    assert commands.calls == []
    destination, payload = channel.published[0]
    assert destination == settings.COMMAND_TOPIC
    assert payload == {"orderId": order.public_id, "newStatus": "READY_FOR_PICKUP", "vendorId": "vendor-1"}
    # optimistic state stays visible until the broadcast arrives
    assert store.get(order.public_id).status == OrderStatus.READY_FOR_PICKUP


@pytest.mark.asyncio
async def test_publish_failure_rolls_back_to_exact_previous_status(parts):
    context, store, commands, channel, notifications, dispatcher = parts
    order = make_order(status=OrderStatus.PREPARING)
    store.ingest(order)
    channel.fail_with = TransportUnavailable("broker down")

    ack = await dispatcher.request_transition(order.public_id, OrderStatus.PREPARING, OrderStatus.READY_FOR_PICKUP)

    assert not ack.ok
    assert ack.via == VIA_PUBLISH
    assert store.get(order.public_id).status == OrderStatus.PREPARING
    assert commands.calls == []


@pytest.mark.asyncio
async def test_invalid_transition_is_a_noop_with_explanation(parts):
    context, store, commands, channel, notifications, dispatcher = parts
    order = make_order(status=OrderStatus.PREPARING)
    store.ingest(order)

    ack = await dispatcher.request_transition(order.public_id, OrderStatus.PREPARING, OrderStatus.COMPLETED)

    assert not ack.ok
    assert "PREPARING to COMPLETED" in ack.error
    assert commands.calls == [] and channel.published == []
    assert store.get(order.public_id) == order
    assert not store.has_pending(order.public_id)
    assert notifications.active[-1].title == "Invalid status change"


@pytest.mark.asyncio
async def test_not_found_from_server_rolls_back(parts):
    context, store, commands, channel, notifications, dispatcher = parts
    order = make_order(status=OrderStatus.PLACED)
    store.ingest(order)
    commands.fail_with = OrderNotFoundError("gone")

    ack = await dispatcher.request_transition(order.public_id, OrderStatus.PLACED, OrderStatus.PREPARING)

    assert not ack.ok
    assert store.get(order.public_id).status == OrderStatus.PLACED


@pytest.mark.asyncio
async def test_closed_session_store_is_left_alone(parts):
    context, store, commands, channel, notifications, dispatcher = parts
    order = make_order(status=OrderStatus.PLACED)
    store.ingest(order)

    async def close_then_fail(public_id, new_status, vendor_id):
        context.close()
        raise TransportUnavailable("timeout")

    commands.update_status = close_then_fail

    ack = await dispatcher.request_transition(order.public_id, OrderStatus.PLACED, OrderStatus.PREPARING)

    assert not ack.ok
    # the torn-down view keeps whatever it had; no rollback, no notification
    assert store.has_pending(order.public_id)
    assert notifications.all == []


@pytest.mark.asyncio
async def test_qr_completion_goes_through_request(parts):
    context, store, commands, channel, notifications, dispatcher = parts
    order = make_order(status=OrderStatus.READY_FOR_PICKUP)
    store.ingest(order)
    commands.response = order.model_copy(update={"status": OrderStatus.COMPLETED})

    ack = await dispatcher.complete_scanned(order.public_id)

    assert ack.ok and ack.via == VIA_REQUEST
    assert commands.calls == [(order.public_id, OrderStatus.COMPLETED, "vendor-1")]
    assert store.get(order.public_id).status == OrderStatus.COMPLETED


@pytest.mark.asyncio
async def test_qr_completion_of_preparing_order_is_refused_locally(parts):
    context, store, commands, channel, notifications, dispatcher = parts
    order = make_order(status=OrderStatus.PREPARING)
    store.ingest(order)

    ack = await dispatcher.complete_scanned(order.public_id)

    assert not ack.ok
    assert commands.calls == []


@pytest.mark.asyncio
async def test_qr_completion_of_unknown_order_asks_the_server(parts):
    context, store, commands, channel, notifications, dispatcher = parts
    order = make_order(status=OrderStatus.COMPLETED)
    commands.response = order

    ack = await dispatcher.complete_scanned(order.public_id)

    assert ack.ok
    assert len(commands.calls) == 1
    assert store.get(order.public_id) == order


@pytest.mark.asyncio
async def test_server_refusal_rolls_back_with_explanation(parts):
    context, store, commands, channel, notifications, dispatcher = parts
    order = make_order(status=OrderStatus.PLACED)
    store.ingest(order)
    # another vendor device rejected the order meanwhile
    commands.fail_with = InvalidTransition(OrderStatus.REJECTED, OrderStatus.PREPARING)

    ack = await dispatcher.request_transition(order.public_id, OrderStatus.PLACED, OrderStatus.PREPARING)

    assert not ack.ok
    assert ack.via == VIA_REQUEST
    assert store.get(order.public_id).status == OrderStatus.PLACED
    assert not store.has_pending(order.public_id)
    last = notifications.active[-1]
    assert last.title == "Invalid status change"
    assert last.message == f"Order #{order.public_id[:8]}: Cannot move order from REJECTED to PREPARING"
    assert "try again" not in last.message
    assert len(commands.calls) == 1
