"""
Bulk operation endpoints

Each verb has a preview call returning the impact message for the
confirmation step, and a separate execute call.
"""
from typing import Union, Literal

from fastapi import APIRouter, Depends, Query, Response, status

from dispatch.api.deps import get_gateway, get_dispatcher, get_actor, to_http_error
from dispatch.repositories.gateway import CollectionGateway
from dispatch.schemas.audit import Actor
from dispatch.schemas.bulk import (
    BulkAssignRequest,
    BulkStatusRequest,
    BulkDeleteRequest,
    BulkPreview,
    BulkResult
)
from dispatch.schemas.order import OrderStatus
from dispatch.services.bulk_service import BulkService
from dispatch.services.errors import DispatchError
from dispatch.services.notification_service import NotificationDispatcher

router = APIRouter(prefix="/bulk", tags=["bulk"])


def get_bulk_service(
    gateway: CollectionGateway = Depends(get_gateway),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
) -> BulkService:
    """Dependency to get BulkService instance"""
    return BulkService(gateway, dispatcher)


def _report(result: BulkResult, response: Response) -> BulkResult:
    if not result.success:
        response.status_code = status.HTTP_502_BAD_GATEWAY
    return result


@router.get("/assign/preview", response_model=BulkPreview, summary="Preview bulk assign")
async def preview_assign(service: BulkService = Depends(get_bulk_service)):
    return await service.preview_assign()


@router.post("/assign", response_model=BulkResult, summary="Assign all unassigned pending orders")
async def bulk_assign(
    request: BulkAssignRequest,
    response: Response,
    service: BulkService = Depends(get_bulk_service),
    actor: Actor = Depends(get_actor)
):
    try:
        result = await service.bulk_assign(request.driver_id, request.delivery_fee, actor)
    except DispatchError as e:
        raise to_http_error(e)
    return _report(result, response)


@router.get("/status/preview", response_model=BulkPreview, summary="Preview bulk status update")
async def preview_status_update(
    target: OrderStatus = Query(..., alias="status", description="pending or delivered"),
    service: BulkService = Depends(get_bulk_service)
):
    try:
        return await service.preview_status_update(target)
    except DispatchError as e:
        raise to_http_error(e)


@router.post("/status", response_model=BulkResult, summary="Bulk status recovery")
async def bulk_status_update(
    request: BulkStatusRequest,
    response: Response,
    service: BulkService = Depends(get_bulk_service),
    actor: Actor = Depends(get_actor)
):
    """
    - **pending**: reset every in-flight order to pending, clearing driver and fee
    - **delivered**: mark every in-transit order delivered
    """
    try:
        result = await service.bulk_status_update(request.status, actor)
    except DispatchError as e:
        raise to_http_error(e)
    return _report(result, response)


@router.get("/delete/preview", response_model=BulkPreview, summary="Preview bulk delete")
async def preview_delete(
    scope: Union[Literal["all"], OrderStatus] = Query("all", description="all or a status"),
    service: BulkService = Depends(get_bulk_service)
):
    try:
        return await service.preview_delete(scope)
    except DispatchError as e:
        raise to_http_error(e)


@router.post("/delete", response_model=BulkResult, summary="Bulk delete orders")
async def bulk_delete(
    request: BulkDeleteRequest,
    response: Response,
    service: BulkService = Depends(get_bulk_service),
    actor: Actor = Depends(get_actor)
):
    """
    Permanently delete non-archived orders by status, or all of them

    Deleting **all** also resets order numbering.
    """
    try:
        result = await service.bulk_delete(request.scope, actor)
    except DispatchError as e:
        raise to_http_error(e)
    return _report(result, response)
