import httpx
import logging
from typing import List, Optional

from pickup_orders.domain.models import Order, OrderStatus
from pickup_orders.domain.exceptions import InvalidTransition, OrderNotFoundError, TransportUnavailable
from pickup_orders.application.interfaces import OrderCommandService, OrderSnapshotService

logger = logging.getLogger(__name__)


class HTTPOrderClient(OrderSnapshotService, OrderCommandService):
    """Snapshot reads and the synchronous status change against the order service"""

    def __init__(self, base_url: str, api_token: str, timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self._base_url = base_url.rstrip("/")
        self._api_token = api_token
        self._timeout = timeout
        self._transport = transport

    async def fetch_vendor_orders(self, vendor_id: str) -> List[Order]:
        response = await self._request("GET", f"/orders/vendor/{vendor_id}")
        if response.status_code == 200:
            return [Order.from_payload(item) for item in response.json()]
        raise TransportUnavailable(f"Order service error: {response.status_code}")

    async def fetch_order(self, public_id: str) -> Order:
        response = await self._request("GET", f"/orders/{public_id}")
        if response.status_code == 200:
            return Order.from_payload(response.json())
        elif response.status_code == 404:
            raise OrderNotFoundError(f"Order {public_id} not found")
        raise TransportUnavailable(f"Order service error: {response.status_code}")

    async def update_status(self, public_id: str, new_status: OrderStatus, vendor_id: str) -> Order:
        response = await self._request(
            "PUT",
            f"/orders/{public_id}/status",
            json={"newStatus": OrderStatus(new_status).value, "vendorId": vendor_id}
        )

        if response.status_code == 200:
            return Order.from_payload(response.json())
        elif response.status_code == 404:
            raise OrderNotFoundError(f"Order {public_id} not found")
        elif response.status_code == 409:
            detail = _detail(response)
            raise InvalidTransition(detail.get("currentStatus", "UNKNOWN"), new_status)
        raise TransportUnavailable(f"Order service error: {response.status_code}")

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                return await client.request(
                    method,
                    f"{self._base_url}{path}",
                    headers={"X-API-Key": self._api_token},
                    timeout=self._timeout,
                    **kwargs
                )
        except httpx.RequestError as e:
            logger.error(f"Order service connection error: {e}")
            raise TransportUnavailable(f"Order service unavailable: {str(e)}")


def _detail(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    detail = body.get("detail") if isinstance(body, dict) else None
    return detail if isinstance(detail, dict) else {}
