"""
Order Status Machine

Valid moves for a single order:
- forward along the happy path
  pending -> waiting_merchant -> preparing -> [ready] -> in_transit -> delivered
  (steps may be skipped, e.g. pending -> in_transit when a driver is assigned)
- any non-terminal status -> cancelled
- re-applying the current status is an idempotent no-op

Special requests never enter the merchant stages. in_transit and delivered
require an assigned driver. The only backward move, back to pending, is the
bulk recovery reset and is not available here.
"""
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Optional

from dispatch.schemas.order import OrderDocument, OrderStatus
from dispatch.services.errors import InvalidTransition

HAPPY_PATH = (
    OrderStatus.PENDING,
    OrderStatus.WAITING_MERCHANT,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.IN_TRANSIT,
    OrderStatus.DELIVERED,
)

TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

MERCHANT_STAGES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.WAITING_MERCHANT,
    OrderStatus.PREPARING,
    OrderStatus.READY,
})

# Statuses that can only be held by an order with a driver
DRIVER_REQUIRED: FrozenSet[OrderStatus] = frozenset({OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED})

# Statuses the bulk reset pulls back to pending
ACTIVE_STATUSES: FrozenSet[OrderStatus] = frozenset(
    set(OrderStatus) - {OrderStatus.PENDING} - TERMINAL_STATUSES
)


def initial_status(is_special_request: bool) -> OrderStatus:
    """Status of a freshly placed order"""
    return OrderStatus.PENDING if is_special_request else OrderStatus.WAITING_MERCHANT


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def valid_next_statuses(order: OrderDocument) -> FrozenSet[OrderStatus]:
    """Statuses a single-order transition may move this order to"""
    current = order.status
    if is_terminal(current):
        return frozenset()

    position = HAPPY_PATH.index(current)
    candidates = set(HAPPY_PATH[position + 1:])
    candidates.add(OrderStatus.CANCELLED)

    if order.is_special_request:
        candidates -= MERCHANT_STAGES
    return frozenset(candidates)


def check_transition(order: OrderDocument, new_status: OrderStatus, has_driver: Optional[bool] = None):
    """
    Validate a status change without touching the store

    Args:
        order: Current order state
        new_status: Requested status
        has_driver: Whether a driver will be present after the change
            (defaults to the order's current assignment)

    Raises:
        InvalidTransition: If new_status is not reachable
    """
    new_status = OrderStatus(new_status)
    if new_status == order.status:
        return

    if new_status not in valid_next_statuses(order):
        if is_terminal(order.status):
            reason = "order is already closed"
        elif order.is_special_request and new_status in MERCHANT_STAGES:
            reason = "special requests have no merchant stage"
        elif new_status == OrderStatus.PENDING:
            reason = "resetting to pending is a bulk recovery operation"
        else:
            reason = "status cannot move backwards"
        raise InvalidTransition(order.status, new_status, reason)

    if has_driver is None:
        has_driver = order.driver_id is not None
    if new_status in DRIVER_REQUIRED and not has_driver:
        raise InvalidTransition(order.status, new_status, "a driver must be assigned first")


def transition_fields(new_status: OrderStatus, now: Optional[datetime] = None) -> Dict:
    """Fields written alongside a status change; only delivery stamps a timestamp"""
    fields = {"status": OrderStatus(new_status).value}
    if new_status == OrderStatus.DELIVERED:
        fields["delivered_at"] = now or datetime.now(timezone.utc)
    return fields


def transition(order: OrderDocument, new_status: OrderStatus, now: Optional[datetime] = None) -> OrderDocument:
    """
    Apply a status change to an in-memory order

    Returns:
        A new OrderDocument; the input is never mutated

    Raises:
        InvalidTransition: If new_status is not reachable
    """
    check_transition(order, new_status)
    if new_status == order.status:
        return order
    return order.model_copy(update=_typed(transition_fields(new_status, now)))


def reset_to_pending_fields() -> Dict:
    """Bulk recovery: back to pending with the driver and fee cleared together"""
    return {"status": OrderStatus.PENDING.value, "driver_id": None, "delivery_fee": None}


def _typed(fields: Dict) -> Dict:
    typed = dict(fields)
    if "status" in typed:
        typed["status"] = OrderStatus(typed["status"])
    return typed
