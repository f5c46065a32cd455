"""
Order Service - Business Logic Layer
"""
import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Optional

from dispatch.config import settings
from dispatch.repositories.counter_repository import CounterRepository
from dispatch.repositories.gateway import CollectionGateway, GatewayError
from dispatch.repositories.order_repository import OrderRepository
from dispatch.repositories.user_repository import UserRepository
from dispatch.schemas.audit import ActionType, Actor, OrderSnapshot
from dispatch.schemas.notification import OrderCreated, DriverAssigned, StatusChanged
from dispatch.schemas.order import (
    OrderCreate,
    OrderUpdate,
    OrderDocument,
    OrderListResponse,
    OrderKind,
    OrderStatus
)
from dispatch.schemas.user import UserDocument, UserRole
from dispatch.services import status_machine
from dispatch.services.audit_service import AuditService
from dispatch.services.errors import (
    AssignError,
    BatchWriteFailure,
    InvalidTransition,
    OrderNotFound
)
from dispatch.services.notification_service import NotificationDispatcher

logger = logging.getLogger(__name__)

ASSIGNABLE_STATUSES = frozenset({OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED})


def validate_fee(fee) -> float:
    """
    Delivery fee must be a finite, non-negative number; zero means free delivery

    Raises:
        AssignError: If the fee is malformed
    """
    if isinstance(fee, bool) or not isinstance(fee, (int, float)):
        raise AssignError(f"Delivery fee must be a number, got {fee!r}")
    if not math.isfinite(fee) or fee < 0:
        raise AssignError(f"Delivery fee must be a non-negative number, got {fee!r}")
    return float(fee)


async def require_driver(users: UserRepository, driver_id: str) -> UserDocument:
    """
    Raises:
        AssignError: If the user is missing or is not a driver
    """
    if not driver_id:
        raise AssignError("A driver is required")
    driver = await users.get_by_id(driver_id)
    if driver is None:
        raise AssignError(f"Driver {driver_id} not found")
    if driver.role != UserRole.DRIVER:
        raise AssignError(f"User {driver_id} is a {driver.role.value}, not a driver")
    return driver


def write_failure(action: str, error: GatewayError) -> BatchWriteFailure:
    logger.error("✗ %s failed: %s", action, error)
    return BatchWriteFailure(f"{action} failed: {error}", completed=error.applied)


class OrderService:
    """Service layer for single-order business logic"""

    def __init__(self, gateway: CollectionGateway, dispatcher: NotificationDispatcher):
        self.repository = OrderRepository(gateway)
        self.users = UserRepository(gateway)
        self.counters = CounterRepository(gateway)
        self.audit = AuditService(gateway)
        self.dispatcher = dispatcher

    async def get_all_orders(self, skip: int = 0, limit: int = 100) -> OrderListResponse:
        """Get all orders with pagination"""
        orders = await self.repository.snapshot()
        return OrderListResponse(orders=orders[skip:skip + limit], total=len(orders))

    async def get_order_by_id(self, order_id: str) -> OrderDocument:
        """
        Raises:
            OrderNotFound: If no order has this key
        """
        order = await self.repository.get_by_id(order_id)
        if order is None:
            raise OrderNotFound(f"Order with id={order_id} not found")
        return order

    async def create_order(self, order_data: OrderCreate, actor: Actor) -> OrderDocument:
        """
        Place a new order

        Steps:
        1. Allocate the next order number for the variant's prefix
        2. Fix the total from the line items (never recomputed later)
        3. Save the order in its initial status
        4. Log the creation and notify the merchant or the admins

        Raises:
            BatchWriteFailure: If the store rejected the write
        """
        is_special = order_data.kind == OrderKind.SPECIAL_REQUEST
        prefix = settings.SPECIAL_ORDER_PREFIX if is_special else settings.ORDER_PREFIX

        try:
            order_number = await self.counters.allocate(prefix)
        except GatewayError as e:
            raise write_failure("Allocating an order number", e)

        total_price = None
        final_price = None
        unpaid_amount = None
        if not is_special:
            total_price = round(sum(item.subtotal for item in order_data.items), 2)
            final_price = round(max(total_price - (order_data.discount_amount or 0), 0), 2)
            if order_data.paid_amount is not None:
                unpaid_amount = round(max(final_price - order_data.paid_amount, 0), 2)

        order = OrderDocument(
            id=uuid.uuid4().hex,
            order_number=order_number,
            kind=order_data.kind,
            status=status_machine.initial_status(is_special),
            user_id=order_data.user_id,
            customer_name=order_data.customer.name,
            customer_phone=order_data.customer.phone,
            customer_address=order_data.customer.address,
            merchant_id=order_data.merchant_id,
            merchant_name=order_data.merchant_name,
            items=order_data.items or None,
            total_price=total_price,
            notes=order_data.notes,
            paid_amount=order_data.paid_amount,
            unpaid_amount=unpaid_amount,
            payment_status=order_data.payment_status or "unpaid",
            is_cash_on_delivery=order_data.is_cash_on_delivery,
            promo_code=order_data.promo_code,
            points_redeemed=order_data.points_redeemed,
            discount_amount=order_data.discount_amount,
            final_price=final_price,
            created_at=datetime.now(timezone.utc)
        )

        try:
            await self.repository.create(order)
        except GatewayError as e:
            raise write_failure(f"Creating order {order_number}", e)

        logger.info("✓ Order %s created (%s)", order.order_number, order.kind.value)
        await self.audit.record(
            ActionType.CREATE, "Orders", f"New order #{order.order_number}", actor,
            collection="orders", target_id=order.id
        )
        self.dispatcher.dispatch(OrderCreated(order=order))
        return order

    async def transition_order(self, order_id: str, new_status: OrderStatus, actor: Actor) -> OrderDocument:
        """
        Move one order to a new status

        Raises:
            OrderNotFound: If the order does not exist
            InvalidTransition: If the status is not reachable; nothing is written
            BatchWriteFailure: If the store rejected the write
        """
        order = await self.get_order_by_id(order_id)
        new_status = OrderStatus(new_status)
        status_machine.check_transition(order, new_status)
        if new_status == order.status:
            return order

        fields = status_machine.transition_fields(new_status)
        try:
            await self.repository.update(order.id, fields)
        except GatewayError as e:
            raise write_failure(f"Status change of {order.order_number}", e)

        updated = status_machine.transition(order, new_status, now=fields.get("delivered_at"))
        logger.info("✓ Order %s: %s -> %s", order.order_number, order.status.value, new_status.value)
        await self.audit.record(
            ActionType.UPDATE, "Orders",
            f"Order {order.order_number} status changed from {order.status.value} to {new_status.value}",
            actor, collection="orders", target_id=order.id, undo_payload=OrderSnapshot(order=order)
        )
        self.dispatcher.dispatch(StatusChanged(order=updated, previous_status=order.status))
        return updated

    async def assign_driver(
        self,
        order_id: str,
        driver_id: str,
        fee: float,
        target_status: OrderStatus,
        actor: Actor
    ) -> OrderDocument:
        """
        Assign (or transfer) a driver together with fee and status as one write

        Re-assignment overwrites the previous driver; the previous driver is
        not notified.

        Raises:
            OrderNotFound: If the order does not exist
            AssignError: If the driver or fee is invalid
            InvalidTransition: If the order cannot reach target_status
            BatchWriteFailure: If the store rejected the write
        """
        fee = validate_fee(fee)
        try:
            target_status = OrderStatus(target_status)
        except ValueError:
            raise AssignError(f"Unknown status {target_status!r}")
        if target_status not in ASSIGNABLE_STATUSES:
            raise AssignError(f"Assignment must move the order to in_transit or delivered, not {target_status.value}")

        order = await self.get_order_by_id(order_id)
        if status_machine.is_terminal(order.status):
            raise InvalidTransition(order.status, target_status, "order is already closed")
        status_machine.check_transition(order, target_status, has_driver=True)
        driver = await require_driver(self.users, driver_id)

        fields = {"driver_id": driver.id, "delivery_fee": fee}
        if target_status != order.status:
            fields.update(status_machine.transition_fields(target_status))

        try:
            await self.repository.update(order.id, fields)
        except GatewayError as e:
            raise write_failure(f"Assigning {order.order_number}", e)

        updated = order.model_copy(update={
            "driver_id": driver.id,
            "delivery_fee": fee,
            "status": target_status,
            "delivered_at": fields.get("delivered_at", order.delivered_at),
        })
        verb = "transferred to" if order.driver_id and order.driver_id != driver.id else "assigned to"
        logger.info("✓ Order %s %s driver %s (fee %s)", order.order_number, verb, driver.id, fee)
        await self.audit.record(
            ActionType.UPDATE, "Orders",
            f"Order {order.order_number} {verb} driver {driver.name} with fee {fee:g}",
            actor, collection="orders", target_id=order.id, undo_payload=OrderSnapshot(order=order)
        )
        self.dispatcher.dispatch(DriverAssigned(order=updated))
        return updated

    async def edit_order(self, order_id: str, changes: OrderUpdate, actor: Actor) -> OrderDocument:
        """
        Edit order details

        Raises:
            OrderNotFound: If the order does not exist
            BatchWriteFailure: If the store rejected the write
        """
        order = await self.get_order_by_id(order_id)
        fields = changes.model_dump(exclude_unset=True)
        if not fields:
            return order

        try:
            await self.repository.update(order.id, fields)
        except GatewayError as e:
            raise write_failure(f"Editing {order.order_number}", e)

        await self.audit.record(
            ActionType.UPDATE, "Orders",
            f"Order {order.order_number} details edited ({', '.join(sorted(fields))})",
            actor, collection="orders", target_id=order.id, undo_payload=OrderSnapshot(order=order)
        )
        return order.model_copy(update=fields)

    async def delete_order(self, order_id: str, actor: Actor) -> Optional[OrderDocument]:
        """
        Delete one order; deletion is irreversible

        Raises:
            OrderNotFound: If the order does not exist
            BatchWriteFailure: If the store rejected the delete
        """
        order = await self.get_order_by_id(order_id)
        try:
            await self.repository.delete(order.id)
        except GatewayError as e:
            raise write_failure(f"Deleting {order.order_number}", e)

        await self.audit.record(
            ActionType.DELETE, "Orders", f"Order {order.order_number} deleted", actor,
            collection="orders", target_id=order.id
        )
        return order
