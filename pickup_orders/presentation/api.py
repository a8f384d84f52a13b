from typing import List
from fastapi import APIRouter, Depends, HTTPException, Request, status

from pickup_orders.config import settings
from pickup_orders.domain.models import Order
from pickup_orders.domain.exceptions import InvalidTransition, OrderNotFoundError
from pickup_orders.presentation.schemas import (
    CreateOrderRequest, UpdateStatusRequest, TransitionErrorDetail, ErrorResponse
)
from pickup_orders.application.create_order import CreateOrderUseCase
from pickup_orders.application.get_order import GetOrderUseCase, ListVendorOrdersUseCase
from pickup_orders.application.update_status import UpdateOrderStatusUseCase, UpdateStatusDTO

router = APIRouter()


# Factories for use cases; repository and broadcaster live on app.state
def get_create_order_use_case(request: Request):
    state = request.app.state
    return CreateOrderUseCase(state.repository, state.broadcaster, settings.ESTIMATED_PREP_MINUTES)


def get_get_order_use_case(request: Request):
    return GetOrderUseCase(request.app.state.repository)


def get_list_vendor_orders_use_case(request: Request):
    return ListVendorOrdersUseCase(request.app.state.repository)


def get_update_status_use_case(request: Request):
    state = request.app.state
    return UpdateOrderStatusUseCase(state.repository, state.broadcaster)


@router.post(
    "/orders",
    response_model=Order,
    responses={422: {"model": ErrorResponse}},
    status_code=status.HTTP_201_CREATED
)
async def create_order(
    request: CreateOrderRequest,
    use_case: CreateOrderUseCase = Depends(get_create_order_use_case)
):
    """Place a new order (checkout)"""
    return await use_case(request.to_dto())


@router.get("/orders/vendor/{vendor_id}", response_model=List[Order])
async def list_vendor_orders(
    vendor_id: str,
    use_case: ListVendorOrdersUseCase = Depends(get_list_vendor_orders_use_case)
):
    """Snapshot of every order of a vendor"""
    return await use_case(vendor_id)


@router.get(
    "/orders/{public_id}",
    response_model=Order,
    responses={404: {"model": ErrorResponse}}
)
async def get_order(
    public_id: str,
    use_case: GetOrderUseCase = Depends(get_get_order_use_case)
):
    """Snapshot of one order by its public id"""
    try:
        return await use_case(public_id)
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")


@router.put(
    "/orders/{public_id}/status",
    response_model=Order,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def update_order_status(
    public_id: str,
    request: UpdateStatusRequest,
    use_case: UpdateOrderStatusUseCase = Depends(get_update_status_use_case)
):
    """Synchronous status change (accept/reject, QR pickup)"""
    try:
        return await use_case(UpdateStatusDTO(
            public_id=public_id,
            new_status=request.new_status,
            vendor_id=str(request.vendor_id)
        ))
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")
    except InvalidTransition as e:
        detail = TransitionErrorDetail(
            message=str(e),
            current_status=e.current.value,
            requested_status=e.requested.value
        )
        raise HTTPException(status_code=409, detail=detail.model_dump(by_alias=True))
