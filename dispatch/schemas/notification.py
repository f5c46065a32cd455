"""
Notification payload and trigger events
"""
from pydantic import BaseModel
from typing import Optional, Union, Literal

from dispatch.schemas.order import OrderDocument, OrderStatus


class NotificationPayload(BaseModel):
    """Message handed to the external delivery channel"""
    title: str
    body: str
    recipient_role: Literal['admin', 'supervisor', 'merchant', 'driver', 'customer']
    recipient_id: Optional[str] = None  # None addresses the whole role
    deep_link_target: str


class OrderCreated(BaseModel):
    event: Literal["order_created"] = "order_created"
    order: OrderDocument


class DriverAssigned(BaseModel):
    event: Literal["driver_assigned"] = "driver_assigned"
    order: OrderDocument


class BulkDriverAssigned(BaseModel):
    event: Literal["bulk_driver_assigned"] = "bulk_driver_assigned"
    driver_id: str
    count: int


class StatusChanged(BaseModel):
    event: Literal["status_changed"] = "status_changed"
    order: OrderDocument
    previous_status: OrderStatus


class SupportMessagePosted(BaseModel):
    event: Literal["support_message_posted"] = "support_message_posted"
    recipient_role: Literal['admin', 'supervisor', 'merchant', 'driver', 'customer']
    recipient_id: Optional[str] = None
    preview: str


OrderEvent = Union[OrderCreated, DriverAssigned, BulkDriverAssigned, StatusChanged, SupportMessagePosted]
