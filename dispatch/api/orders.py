"""
Order API endpoints
"""
from fastapi import APIRouter, Depends, status, Query

from dispatch.api.deps import get_gateway, get_dispatcher, get_actor, to_http_error
from dispatch.repositories.gateway import CollectionGateway
from dispatch.schemas.audit import Actor
from dispatch.schemas.order import (
    OrderCreate,
    OrderUpdate,
    OrderStatusUpdate,
    AssignDriverRequest,
    OrderDocument,
    OrderListResponse
)
from dispatch.services.errors import DispatchError
from dispatch.services.notification_service import NotificationDispatcher
from dispatch.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


def get_order_service(
    gateway: CollectionGateway = Depends(get_gateway),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
) -> OrderService:
    """Dependency to get OrderService instance"""
    return OrderService(gateway, dispatcher)


@router.get("", response_model=OrderListResponse, summary="Get all orders")
async def get_orders(
    skip: int = Query(0, ge=0, description="Number of orders to skip"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of orders to return"),
    service: OrderService = Depends(get_order_service)
):
    """
    Retrieve all orders, newest first

    - **skip**: Number of orders to skip (default: 0)
    - **limit**: Maximum number of orders to return (default: 100, max: 1000)
    """
    return await service.get_all_orders(skip=skip, limit=limit)


@router.get("/{order_id}", response_model=OrderDocument, summary="Get order by ID")
async def get_order(
    order_id: str,
    service: OrderService = Depends(get_order_service)
):
    try:
        return await service.get_order_by_id(order_id)
    except DispatchError as e:
        raise to_http_error(e)


@router.post("", response_model=OrderDocument, status_code=status.HTTP_201_CREATED, summary="Place order")
async def create_order(
    order_data: OrderCreate,
    service: OrderService = Depends(get_order_service),
    actor: Actor = Depends(get_actor)
):
    """
    Place a new order

    - With **merchant_id** and **items**: commerce order, starts waiting for the merchant
    - With **notes** only: special request, starts pending
    """
    try:
        return await service.create_order(order_data, actor)
    except DispatchError as e:
        raise to_http_error(e)


@router.patch("/{order_id}", response_model=OrderDocument, summary="Edit order details")
async def edit_order(
    order_id: str,
    changes: OrderUpdate,
    service: OrderService = Depends(get_order_service),
    actor: Actor = Depends(get_actor)
):
    try:
        return await service.edit_order(order_id, changes, actor)
    except DispatchError as e:
        raise to_http_error(e)


@router.patch("/{order_id}/status", response_model=OrderDocument, summary="Update order status")
async def update_order_status(
    order_id: str,
    status_data: OrderStatusUpdate,
    service: OrderService = Depends(get_order_service),
    actor: Actor = Depends(get_actor)
):
    """
    Move an order to a new status

    Rejected with 409 when the status is not reachable from the current one.
    """
    try:
        return await service.transition_order(order_id, status_data.status, actor)
    except DispatchError as e:
        raise to_http_error(e)


@router.post("/{order_id}/assign", response_model=OrderDocument, summary="Assign or transfer driver")
async def assign_driver(
    order_id: str,
    assignment: AssignDriverRequest,
    service: OrderService = Depends(get_order_service),
    actor: Actor = Depends(get_actor)
):
    """
    Set driver, delivery fee and status in one write

    - **driver_id**: User with the driver role
    - **delivery_fee**: Non-negative; 0 means free delivery
    - **status**: in_transit (default) or delivered
    """
    try:
        return await service.assign_driver(
            order_id, assignment.driver_id, assignment.delivery_fee, assignment.status, actor
        )
    except DispatchError as e:
        raise to_http_error(e)


@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete order")
async def delete_order(
    order_id: str,
    service: OrderService = Depends(get_order_service),
    actor: Actor = Depends(get_actor)
):
    try:
        await service.delete_order(order_id, actor)
    except DispatchError as e:
        raise to_http_error(e)
