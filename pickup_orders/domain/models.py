from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class OrderStatus(str, Enum):
    PLACED = "PLACED"
    PREPARING = "PREPARING"
    READY_FOR_PICKUP = "READY_FOR_PICKUP"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class WireModel(BaseModel):
    """Base for everything that travels over HTTP or the channel (camelCase on the wire)"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Customer(WireModel):
    name: str
    phone: str
    email: str


class LineItem(WireModel):
    """Value object: snapshot of a product at checkout time"""
    product_id: str
    product_name: str
    price_at_order: float = Field(ge=0)
    quantity: int = Field(gt=0)
    is_veg: bool = False
    image_url: Optional[str] = None

    @property
    def subtotal(self) -> float:
        return self.price_at_order * self.quantity


class Order(WireModel):
    """Pickup order entity.

    Only status and updated_at change after creation; everything else is fixed
    by checkout, including total_amount.
    """
    id: str
    public_id: str
    status: OrderStatus
    customer: Customer
    vendor_id: str
    shop_id: str
    shop_name: Optional[str] = None
    vendor_name: Optional[str] = None
    items: list[LineItem]
    total_amount: float
    placed_at: datetime
    estimated_ready_at: datetime
    updated_at: datetime

    @classmethod
    def from_payload(cls, payload: dict) -> "Order":
        return cls.model_validate(payload)

    @property
    def short_id(self) -> str:
        return self.public_id[:8]


class TopicScope(str, Enum):
    VENDOR = "vendor"
    ORDER = "order"


class Topic(BaseModel):
    """Routing key of the status channel: one topic per vendor, one per order"""
    model_config = ConfigDict(frozen=True)

    scope: TopicScope
    id: str

    @classmethod
    def vendor(cls, vendor_id: str) -> "Topic":
        return cls(scope=TopicScope.VENDOR, id=str(vendor_id))

    @classmethod
    def order(cls, public_id: str) -> "Topic":
        return cls(scope=TopicScope.ORDER, id=public_id)

    @property
    def destination(self) -> str:
        return f"orders.{self.scope.value}.{self.id}"


class TransitionCommand(WireModel):
    """Fire-and-forget status change, order_id is the public id"""
    order_id: str
    new_status: OrderStatus
    vendor_id: str


class Ack(BaseModel):
    """Outcome of a dispatched transition"""
    order_id: str
    target: OrderStatus
    ok: bool
    via: Optional[str] = None
    confirmed: bool = False
    order: Optional[Order] = None
    error: Optional[str] = None
