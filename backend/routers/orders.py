from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from core.auth import current_creator, current_customer
from db.order import OrderStatus
from db.users import User
from routers.deps import get_services
from schemas.common import Envelope, PageMeta, PageParams, page_params
from schemas.orders import OrderCreate, OrderRead
from services.container import Services
from services.filters import OrderFilter

router = APIRouter()


@router.post("", response_model=Envelope[OrderRead], status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    services: Services = Depends(get_services),
    user: User = Depends(current_customer),
):
    order = await services.orders.create(payload.record_id, payload.quantity)
    return Envelope[OrderRead](responseText="Order successfully created.", data=order)


@router.get("", response_model=Envelope[PageMeta[OrderRead]])
async def list_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    record_id: Optional[UUID] = None,
    params: PageParams = Depends(page_params),
    services: Services = Depends(get_services),
):
    order_filter = OrderFilter(status=status_filter, record_id=record_id)
    page = await services.orders.list(order_filter, params.to_pagination())
    return Envelope[PageMeta[OrderRead]](responseText="Orders successfully fetched.", data=params.shape(page))


@router.get("/{order_id}", response_model=Envelope[OrderRead])
async def get_order(order_id: UUID, services: Services = Depends(get_services)):
    order = await services.orders.get(order_id)
    return Envelope[OrderRead](responseText="Order successfully fetched.", data=order)


@router.patch("/{order_id}/cancel", response_model=Envelope[OrderRead])
async def cancel_order(
    order_id: UUID,
    services: Services = Depends(get_services),
    user: User = Depends(current_creator),
):
    order = await services.orders.cancel(order_id)
    return Envelope[OrderRead](responseText="Order successfully cancelled.", data=order)


@router.patch("/{order_id}/approve", response_model=Envelope[OrderRead])
async def approve_order(
    order_id: UUID,
    services: Services = Depends(get_services),
    user: User = Depends(current_creator),
):
    order = await services.orders.approve(order_id)
    return Envelope[OrderRead](responseText="Order successfully approved.", data=order)
