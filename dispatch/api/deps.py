"""
Shared API dependencies
"""
from functools import lru_cache
from typing import Optional

from fastapi import Header, HTTPException, status

from dispatch.database import SessionLocal
from dispatch.publishers.notification_publisher import build_channel
from dispatch.repositories.gateway import CollectionGateway
from dispatch.schemas.audit import Actor, ANONYMOUS_ACTOR
from dispatch.services.errors import (
    DispatchError,
    OrderNotFound,
    UserNotFound,
    InvalidTransition,
    UndoError,
    AssignError,
    UnsupportedBulkTarget,
    BatchWriteFailure
)
from dispatch.services.notification_service import NotificationDispatcher


@lru_cache
def get_gateway() -> CollectionGateway:
    """Process-wide gateway; subscriptions must share it with writers"""
    return CollectionGateway(SessionLocal)


@lru_cache
def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(build_channel())


def get_actor(
    x_actor_id: Optional[str] = Header(None, description="Acting user ID"),
    x_actor_name: Optional[str] = Header(None, description="Acting user name")
) -> Actor:
    """Identity of the caller; authentication happens upstream"""
    if not x_actor_id:
        return ANONYMOUS_ACTOR
    return Actor(id=x_actor_id, name=x_actor_name or x_actor_id)


ERROR_STATUS = (
    ((OrderNotFound, UserNotFound), status.HTTP_404_NOT_FOUND),
    ((InvalidTransition, UndoError), status.HTTP_409_CONFLICT),
    ((AssignError, UnsupportedBulkTarget), status.HTTP_422_UNPROCESSABLE_ENTITY),
    ((BatchWriteFailure,), status.HTTP_502_BAD_GATEWAY),
)


def to_http_error(error: DispatchError) -> HTTPException:
    """Map an engine error onto an HTTP error response"""
    for kinds, code in ERROR_STATUS:
        if isinstance(error, kinds):
            detail = str(error)
            if isinstance(error, BatchWriteFailure):
                detail = {"message": str(error), "completed": error.completed}
            return HTTPException(status_code=code, detail=detail)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))
