"""
Bulk Service - assign / set-status / delete across many orders

Every verb runs select -> mutate-each -> submit -> report. Selection is
evaluated once against a snapshot taken when the verb starts; orders changed
by other clients afterwards are not re-evaluated. All mutations are
idempotent, so overlapping bulk runs from two admins degrade to re-writing
the same values.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Iterator, List, Sequence, Union

from dispatch.repositories.counter_repository import CounterRepository
from dispatch.repositories.gateway import CollectionGateway, GatewayError
from dispatch.repositories.order_repository import OrderRepository
from dispatch.repositories.user_repository import UserRepository
from dispatch.schemas.audit import ActionType, Actor, OrderSetSnapshot
from dispatch.schemas.bulk import BulkVerb, BulkPreview, BulkResult
from dispatch.schemas.notification import BulkDriverAssigned
from dispatch.schemas.order import OrderDocument, OrderStatus
from dispatch.services import status_machine
from dispatch.services.audit_service import AuditService
from dispatch.services.errors import UnsupportedBulkTarget
from dispatch.services.notification_service import NotificationDispatcher
from dispatch.services.order_service import validate_fee, require_driver

logger = logging.getLogger(__name__)

DeleteScope = Union[str, OrderStatus]

BULK_STATUS_TARGETS = (OrderStatus.PENDING, OrderStatus.DELIVERED)


def chunked(items: Sequence, size: int) -> Iterator[Sequence]:
    """Split items into consecutive chunks of at most size"""
    if size <= 0:
        raise ValueError("Chunk size must be positive")
    for start in range(0, len(items), size):
        yield items[start:start + size]


def select_unassigned_pending(orders: List[OrderDocument]) -> List[OrderDocument]:
    return [o for o in orders if o.status == OrderStatus.PENDING and o.driver_id is None]


def select_for_status_update(orders: List[OrderDocument], target: OrderStatus) -> List[OrderDocument]:
    """
    Raises:
        UnsupportedBulkTarget: If target has no selection rule
    """
    target = parse_status_target(target)
    if target == OrderStatus.PENDING:
        return [o for o in orders if o.status in status_machine.ACTIVE_STATUSES]
    return [o for o in orders if o.status == OrderStatus.IN_TRANSIT]


def select_for_delete(orders: List[OrderDocument], scope: DeleteScope) -> List[OrderDocument]:
    """Archived orders are never selected, whatever the scope"""
    live = [o for o in orders if not o.is_archived]
    if scope == "all":
        return live
    status = OrderStatus(scope)
    return [o for o in live if o.status == status]


def parse_status_target(target) -> OrderStatus:
    try:
        target = OrderStatus(target)
    except ValueError:
        raise UnsupportedBulkTarget(f"Unknown status {target!r}")
    if target not in BULK_STATUS_TARGETS:
        raise UnsupportedBulkTarget(
            f"Bulk status update supports only pending and delivered, not {target.value}"
        )
    return target


def parse_delete_scope(scope) -> DeleteScope:
    if scope == "all":
        return "all"
    try:
        return OrderStatus(scope)
    except ValueError:
        raise UnsupportedBulkTarget(f"Unknown delete scope {scope!r}")


class BulkService:
    """Service layer for bulk verbs"""

    def __init__(self, gateway: CollectionGateway, dispatcher: NotificationDispatcher):
        self.gateway = gateway
        self.orders = OrderRepository(gateway)
        self.users = UserRepository(gateway)
        self.counters = CounterRepository(gateway)
        self.audit = AuditService(gateway)
        self.dispatcher = dispatcher

    @property
    def chunk_size(self) -> int:
        return self.gateway.batch_ceiling

    # Assign

    async def preview_assign(self) -> BulkPreview:
        selected = select_unassigned_pending(await self.orders.snapshot())
        return BulkPreview(
            verb=BulkVerb.ASSIGN_DRIVER,
            count=len(selected),
            order_ids=[o.id for o in selected],
            message=f"{len(selected)} unassigned pending orders will be assigned to the driver and moved to in transit."
        )

    async def bulk_assign(self, driver_id: str, fee: float, actor: Actor) -> BulkResult:
        """
        Assign every pending order without a driver to one driver

        One audit entry and one driver notification cover the whole batch.

        Raises:
            AssignError: If the driver or fee is invalid; nothing is written
        """
        fee = validate_fee(fee)
        driver = await require_driver(self.users, driver_id)

        selected = select_unassigned_pending(await self.orders.snapshot())
        if not selected:
            return self._nothing_to_do(BulkVerb.ASSIGN_DRIVER, "No unassigned pending orders")

        fields = {
            "driver_id": driver.id,
            "delivery_fee": fee,
            "status": OrderStatus.IN_TRANSIT.value,
        }
        try:
            await self.orders.update_many({o.id: dict(fields) for o in selected})
        except GatewayError as e:
            return self._failed(BulkVerb.ASSIGN_DRIVER, len(selected), e)

        count = len(selected)
        logger.info("✓ Bulk assigned %d orders to driver %s", count, driver.id)
        await self.audit.record(
            ActionType.UPDATE, "Orders",
            f"{count} orders assigned in one batch to driver {driver.name} with fee {fee:g}",
            actor, collection="orders", undo_payload=OrderSetSnapshot(orders=selected)
        )
        self.dispatcher.dispatch(BulkDriverAssigned(driver_id=driver.id, count=count))
        return BulkResult(
            verb=BulkVerb.ASSIGN_DRIVER, success=True, affected=count, completed=count,
            message=f"{count} orders assigned to {driver.name}"
        )

    # Status update

    async def preview_status_update(self, target: OrderStatus) -> BulkPreview:
        target = parse_status_target(target)
        selected = select_for_status_update(await self.orders.snapshot(), target)
        if target == OrderStatus.PENDING:
            message = f"{len(selected)} active orders will be reset to pending and lose their driver and fee."
        else:
            message = f"{len(selected)} in-transit orders will be marked delivered."
        return BulkPreview(
            verb=BulkVerb.SET_STATUS, count=len(selected), order_ids=[o.id for o in selected], message=message
        )

    async def bulk_status_update(self, target: OrderStatus, actor: Actor) -> BulkResult:
        """
        Recovery verbs: reset in-flight orders to pending, or complete in-transit orders

        Raises:
            UnsupportedBulkTarget: For any other target; nothing is written
        """
        target = parse_status_target(target)
        selected = select_for_status_update(await self.orders.snapshot(), target)
        if not selected:
            return self._nothing_to_do(BulkVerb.SET_STATUS, "No orders to update")

        if target == OrderStatus.PENDING:
            fields = status_machine.reset_to_pending_fields()
        else:
            fields = status_machine.transition_fields(OrderStatus.DELIVERED, datetime.now(timezone.utc))

        try:
            await self.orders.update_many({o.id: dict(fields) for o in selected})
        except GatewayError as e:
            return self._failed(BulkVerb.SET_STATUS, len(selected), e)

        count = len(selected)
        logger.info("✓ Bulk moved %d orders to %s", count, target.value)
        await self.audit.record(
            ActionType.UPDATE, "Orders", f"{count} orders moved to {target.value} in one batch",
            actor, collection="orders", undo_payload=OrderSetSnapshot(orders=selected)
        )
        return BulkResult(
            verb=BulkVerb.SET_STATUS, success=True, affected=count, completed=count,
            message=f"{count} orders updated"
        )

    # Delete

    async def preview_delete(self, scope: DeleteScope) -> BulkPreview:
        scope = parse_delete_scope(scope)
        selected = select_for_delete(await self.orders.snapshot(), scope)
        if scope == "all":
            message = (
                f"{len(selected)} orders will be permanently deleted and order numbering "
                f"will restart from 1. This cannot be undone."
            )
        else:
            message = f"{len(selected)} {scope.value} orders will be permanently deleted. This cannot be undone."
        return BulkPreview(
            verb=BulkVerb.DELETE, count=len(selected), order_ids=[o.id for o in selected], message=message
        )

    async def bulk_delete(self, scope: DeleteScope, actor: Actor) -> BulkResult:
        """
        Delete non-archived orders in sequential chunks of at most the batch ceiling

        Each chunk fans out its deletes with asyncio.gather and is awaited
        before the next starts. The SQLAlchemy gateway completes each delete
        without suspending, so with it a chunk's deletes run back to back; the
        chunk bound matters for gateways that suspend on I/O. Subscribers get
        one snapshot for the whole run.

        A failing chunk stops the run; earlier chunks stay deleted. Deleting
        "all" resets every order counter afterwards, and only then. Every run
        that deleted anything is logged, including failed ones.
        """
        scope = parse_delete_scope(scope)
        selected = select_for_delete(await self.orders.snapshot(), scope)
        if not selected:
            return self._nothing_to_do(BulkVerb.DELETE, "No orders to delete")

        total = len(selected)
        label = "all" if scope == "all" else scope.value
        completed = 0
        failure = None
        with self.gateway.coalesced("orders"):
            for number, chunk in enumerate(chunked(selected, self.chunk_size), start=1):
                results = await asyncio.gather(
                    *(self.orders.delete(order.id) for order in chunk),
                    return_exceptions=True
                )
                failures = [r for r in results if isinstance(r, Exception)]
                completed += len(results) - len(failures)
                if failures:
                    logger.error("✗ Bulk delete chunk %d failed: %s", number, failures[0])
                    failure = f"Deletion stopped after {completed} of {total} orders: {failures[0]}"
                    break
                logger.info("✓ Bulk delete chunk %d: %d orders", number, len(chunk))

        counters_reset = False
        if failure is None and scope == "all":
            try:
                await self.counters.reset_all()
                counters_reset = True
            except GatewayError as e:
                logger.error("✗ Counter reset failed after deleting %d orders: %s", total, e)
                failure = f"{total} orders deleted but order counters were not reset: {e}"

        if failure is not None:
            if completed:
                await self.audit.record(
                    ActionType.DELETE, "Orders",
                    f"{completed} of {total} orders deleted (scope: {label}); failed: {failure}",
                    actor, collection="orders"
                )
            return BulkResult(
                verb=BulkVerb.DELETE, success=False, affected=total, completed=completed, message=failure
            )

        await self.audit.record(
            ActionType.DELETE, "Orders", f"{total} orders deleted (scope: {label})", actor, collection="orders"
        )
        message = f"{total} orders deleted"
        if counters_reset:
            message += "; order numbering restarts from 1"
        return BulkResult(
            verb=BulkVerb.DELETE, success=True, affected=total, completed=completed,
            counters_reset=counters_reset, message=message
        )

    # Reporting

    def _nothing_to_do(self, verb: BulkVerb, message: str) -> BulkResult:
        return BulkResult(verb=verb, success=True, affected=0, completed=0, message=message)

    def _failed(self, verb: BulkVerb, affected: int, error: GatewayError) -> BulkResult:
        logger.error("✗ Bulk %s failed: %s", verb.value, error)
        if error.applied is None:
            message = f"Update failed; the store may be in an unknown partial state: {error}"
        else:
            message = f"Update failed after {error.applied} of {affected} orders: {error}"
        return BulkResult(
            verb=verb, success=False, affected=affected, completed=error.applied, message=message
        )
