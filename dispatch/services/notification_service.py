"""
Notification Service - maps order events to push payloads
"""
import logging
from typing import Optional

from dispatch.schemas.notification import (
    NotificationPayload,
    OrderEvent,
    OrderCreated,
    DriverAssigned,
    BulkDriverAssigned,
    StatusChanged,
    SupportMessagePosted
)
from dispatch.schemas.order import OrderStatus

logger = logging.getLogger(__name__)

# Status changes a driver is told about, with the title shown for each
DRIVER_STATUS_TITLES = {
    OrderStatus.READY: "Order ready for pickup",
    OrderStatus.IN_TRANSIT: "Order on the way",
    OrderStatus.DELIVERED: "Order delivered",
    OrderStatus.CANCELLED: "Order cancelled",
}

STATUS_LABELS = {
    OrderStatus.PENDING: "pending",
    OrderStatus.WAITING_MERCHANT: "waiting for the merchant",
    OrderStatus.PREPARING: "being prepared",
    OrderStatus.READY: "ready",
    OrderStatus.IN_TRANSIT: "in transit",
    OrderStatus.DELIVERED: "delivered",
    OrderStatus.CANCELLED: "cancelled",
}


def order_link(order_number: str) -> str:
    return f"/?target=order&id={order_number}"


def build_notification(event: OrderEvent) -> Optional[NotificationPayload]:
    """
    Map an event to the payload handed to the delivery channel

    Returns:
        The payload, or None when the event notifies nobody
    """
    if isinstance(event, OrderCreated):
        order = event.order
        if order.is_special_request:
            return NotificationPayload(
                title="New special request",
                body=f"New request #{order.order_number} from {order.customer_name}",
                recipient_role="admin",
                deep_link_target="/?target=orders"
            )
        return NotificationPayload(
            title="New order",
            body=f"New order #{order.order_number} from {order.customer_name}",
            recipient_role="merchant",
            recipient_id=order.merchant_id,
            deep_link_target="/?target=orders"
        )

    if isinstance(event, DriverAssigned):
        order = event.order
        return NotificationPayload(
            title="New order assigned to you",
            body=f"Order {order.order_number} was assigned to you with a delivery fee of {order.delivery_fee:g}",
            recipient_role="driver",
            recipient_id=order.driver_id,
            deep_link_target=order_link(order.order_number)
        )

    if isinstance(event, BulkDriverAssigned):
        if event.count <= 0:
            return None
        return NotificationPayload(
            title="New batch of orders",
            body=f"{event.count} new orders were assigned to you. Please check the app.",
            recipient_role="driver",
            recipient_id=event.driver_id,
            deep_link_target="/?target=orders"
        )

    if isinstance(event, StatusChanged):
        order = event.order
        title = DRIVER_STATUS_TITLES.get(order.status)
        if title is None or order.driver_id is None or order.status == event.previous_status:
            return None
        return NotificationPayload(
            title=title,
            body=f"Order {order.order_number} is now {STATUS_LABELS[order.status]}",
            recipient_role="driver",
            recipient_id=order.driver_id,
            deep_link_target=order_link(order.order_number)
        )

    if isinstance(event, SupportMessagePosted):
        preview = event.preview if len(event.preview) <= 50 else event.preview[:50] + "..."
        return NotificationPayload(
            title="New support message",
            body=preview,
            recipient_role=event.recipient_role,
            recipient_id=event.recipient_id,
            deep_link_target="/?target=messages"
        )

    logger.warning("Unknown event type: %s", type(event).__name__)
    return None


class NotificationDispatcher:
    """Turns events into payloads and hands them to a delivery channel"""

    def __init__(self, channel):
        self.channel = channel

    def dispatch(self, event: OrderEvent) -> Optional[NotificationPayload]:
        """
        Produce and send the payload for one logical event

        Channel failures are logged and never fail the mutation that
        triggered the event.

        Returns:
            The payload produced, or None
        """
        payload = build_notification(event)
        if payload is None:
            return None

        try:
            self.channel.publish(payload)
        except Exception as e:
            # Log error but don't fail the mutation
            logger.warning("✗ Failed to publish notification '%s': %s", payload.title, e)
        return payload
