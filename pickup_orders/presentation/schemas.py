from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional, Union

from pickup_orders.domain.models import Customer, LineItem, OrderStatus
from pickup_orders.application.create_order import CreateOrderDTO


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateOrderRequest(_CamelModel):
    """Checkout payload"""
    customer_name: str
    customer_phone: str
    customer_email: str
    vendor_id: Union[str, int]
    shop_id: Union[str, int]
    shop_name: Optional[str] = None
    vendor_name: Optional[str] = None
    items: List[LineItem] = Field(min_length=1)
    idempotency_key: Optional[str] = None

    def to_dto(self) -> CreateOrderDTO:
        return CreateOrderDTO(
            customer=Customer(name=self.customer_name, phone=self.customer_phone, email=self.customer_email),
            vendor_id=str(self.vendor_id),
            shop_id=str(self.shop_id),
            shop_name=self.shop_name,
            vendor_name=self.vendor_name,
            items=self.items,
            idempotency_key=self.idempotency_key
        )


class UpdateStatusRequest(_CamelModel):
    new_status: OrderStatus
    vendor_id: Union[str, int]


class TransitionErrorDetail(_CamelModel):
    message: str
    current_status: str
    requested_status: str


class ErrorResponse(BaseModel):
    detail: Union[str, TransitionErrorDetail]
