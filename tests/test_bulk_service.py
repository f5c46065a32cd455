import asyncio
import math

import pytest

from dispatch.database import SessionLocal
from dispatch.repositories.counter_repository import CounterRepository
from dispatch.repositories.gateway import CollectionGateway, GatewayError
from dispatch.schemas.audit import ActionType
from dispatch.schemas.bulk import BulkVerb
from dispatch.schemas.order import OrderStatus, OrderUpdate
from dispatch.schemas.user import UserRole
from dispatch.services.audit_service import AuditService
from dispatch.services.bulk_service import BulkService, chunked, select_for_delete
from dispatch.services.errors import AssignError, UnsupportedBulkTarget
from dispatch.services.order_service import OrderService
from tests.factories import special_request, commerce_order, save_user, make_order


class ChunkSpyGateway(CollectionGateway):
    """Suspends inside each delete like a store waiting on I/O, recording how deletes group into concurrent waves"""

    def __init__(self, *args, fail_on=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_on = fail_on
        self.in_flight = 0
        self.max_in_flight = 0
        self.waves = []
        self.writes = 0

    async def delete(self, collection, doc_id):
        if self.in_flight == 0:
            self.waves.append([])
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.waves[-1].append(doc_id)
        await asyncio.sleep(0)
        self.in_flight -= 1
        if doc_id == self.fail_on:
            raise GatewayError(f"{collection}/{doc_id} rejected")
        await super().delete(collection, doc_id)

    def _write(self, collection, apply):
        self.writes += 1
        return super()._write(collection, apply)


class RejectingBatchGateway(CollectionGateway):
    """Rejects every batched update"""

    def __init__(self, *args, applied=0, **kwargs):
        super().__init__(*args, **kwargs)
        self.applied = applied

    async def batch_update(self, collection, updates):
        raise GatewayError("batch rejected", applied=self.applied)


async def place(gateway, dispatcher, actor, count, factory=special_request):
    service = OrderService(gateway, dispatcher)
    return [await service.create_order(factory(), actor) for _ in range(count)]


@pytest.fixture
def bulk(gateway, dispatcher):
    return BulkService(gateway, dispatcher)


# ====================================================================
# CLASS 1: Bulk assign
# ====================================================================
class TestBulkAssign:
    """Every unassigned pending order goes to one driver in one write."""

    async def test_three_pending_orders_assigned_with_one_entry_and_one_notification(
        self, gateway, dispatcher, channel, actor, driver, bulk
    ):
        orders = await place(gateway, dispatcher, actor, 3)
        audit = AuditService(gateway)
        logs_before = len(await audit.get_logs())
        channel.sent.clear()

        result = await bulk.bulk_assign("D7", 20, actor)

        assert result.success is True
        assert result.affected == 3
        for order in orders:
            stored = await OrderService(gateway, dispatcher).get_order_by_id(order.id)
            assert stored.status == OrderStatus.IN_TRANSIT
            assert stored.driver_id == "D7"
            assert stored.delivery_fee == 20
        assert len(await audit.get_logs()) == logs_before + 1
        assert len(channel.sent) == 1
        assert channel.sent[0].recipient_id == "D7"
        assert "3 new orders" in channel.sent[0].body

    async def test_empty_selection_performs_zero_writes(self, dispatcher, actor, channel):
        spy = ChunkSpyGateway(SessionLocal)
        await save_user(spy, "D7", "Karim", UserRole.DRIVER)
        spy.writes = 0

        result = await BulkService(spy, dispatcher).bulk_assign("D7", 20, actor)

        assert result.success is True
        assert result.affected == 0
        assert spy.writes == 0
        assert channel.sent == []

    async def test_only_unassigned_pending_orders_are_selected(self, gateway, dispatcher, actor, driver, other_driver, bulk):
        service = OrderService(gateway, dispatcher)
        taken = await service.create_order(special_request(), actor)
        await service.assign_driver(taken.id, "D2", 9, OrderStatus.IN_TRANSIT, actor)
        waiting = await service.create_order(commerce_order(), actor)
        free = await service.create_order(special_request(), actor)

        preview = await bulk.preview_assign()
        assert preview.order_ids == [free.id]

        await bulk.bulk_assign("D7", 20, actor)
        assert (await service.get_order_by_id(taken.id)).driver_id == "D2"
        assert (await service.get_order_by_id(waiting.id)).status == OrderStatus.WAITING_MERCHANT

    async def test_invalid_driver_or_fee_writes_nothing(self, gateway, dispatcher, actor, driver, bulk):
        orders = await place(gateway, dispatcher, actor, 2)
        with pytest.raises(AssignError):
            await bulk.bulk_assign("ghost", 20, actor)
        with pytest.raises(AssignError):
            await bulk.bulk_assign("D7", -5, actor)
        with pytest.raises(AssignError):
            await bulk.bulk_assign("D7", math.nan, actor)

        for order in orders:
            stored = await OrderService(gateway, dispatcher).get_order_by_id(order.id)
            assert stored.driver_id is None

    async def test_rejected_batch_is_reported_as_failure(self, dispatcher, actor, channel):
        rejecting = RejectingBatchGateway(SessionLocal)
        await save_user(rejecting, "D7", "Karim", UserRole.DRIVER)
        await place(rejecting, dispatcher, actor, 2)
        channel.sent.clear()

        result = await BulkService(rejecting, dispatcher).bulk_assign("D7", 20, actor)

        assert result.success is False
        assert result.completed == 0
        assert channel.sent == []


# ====================================================================
# CLASS 2: Bulk status recovery
# ====================================================================
class TestBulkStatusUpdate:
    """Only the pending reset and the delivered completion are supported."""

    async def test_reset_to_pending_clears_driver_and_fee(self, gateway, dispatcher, actor, other_driver, bulk):
        service = OrderService(gateway, dispatcher)
        o4 = await service.create_order(special_request(), actor)
        await service.assign_driver(o4.id, "D2", 14, OrderStatus.IN_TRANSIT, actor)

        result = await bulk.bulk_status_update(OrderStatus.PENDING, actor)

        stored = await service.get_order_by_id(o4.id)
        assert result.affected == 1
        assert stored.status == OrderStatus.PENDING
        assert stored.driver_id is None
        assert stored.delivery_fee is None

    async def test_reset_skips_pending_and_terminal_orders(self, gateway, dispatcher, actor, driver, bulk):
        service = OrderService(gateway, dispatcher)
        pending = await service.create_order(special_request(), actor)
        cancelled = await service.create_order(special_request(), actor)
        await service.transition_order(cancelled.id, OrderStatus.CANCELLED, actor)
        delivered = await service.create_order(special_request(), actor)
        await service.assign_driver(delivered.id, "D7", 5, OrderStatus.DELIVERED, actor)
        preparing = await service.create_order(commerce_order(), actor)
        await service.transition_order(preparing.id, OrderStatus.PREPARING, actor)

        preview = await bulk.preview_status_update(OrderStatus.PENDING)

        assert preview.order_ids == [preparing.id]
        assert pending.id not in preview.order_ids

    async def test_complete_in_transit_orders(self, gateway, dispatcher, actor, driver, bulk):
        service = OrderService(gateway, dispatcher)
        orders = await place(gateway, dispatcher, actor, 2)
        for order in orders:
            await service.assign_driver(order.id, "D7", 8, OrderStatus.IN_TRANSIT, actor)

        result = await bulk.bulk_status_update(OrderStatus.DELIVERED, actor)

        assert result.affected == 2
        for order in orders:
            stored = await service.get_order_by_id(order.id)
            assert stored.status == OrderStatus.DELIVERED
            assert stored.delivered_at is not None
            assert stored.driver_id == "D7"

    @pytest.mark.parametrize("target", [OrderStatus.PREPARING, OrderStatus.CANCELLED, "shipped"])
    async def test_unknown_target_is_rejected(self, bulk, actor, target):
        with pytest.raises(UnsupportedBulkTarget):
            await bulk.bulk_status_update(target, actor)

    async def test_bulk_update_is_undoable_as_one_entry(self, gateway, dispatcher, actor, other_driver, bulk):
        service = OrderService(gateway, dispatcher)
        orders = await place(gateway, dispatcher, actor, 2)
        for order in orders:
            await service.assign_driver(order.id, "D2", 11, OrderStatus.IN_TRANSIT, actor)

        await bulk.bulk_status_update(OrderStatus.PENDING, actor)

        audit = AuditService(gateway)
        entry = (await audit.get_logs())[0]
        assert entry.undoable is True
        await audit.undo(entry.id, actor)
        for order in orders:
            stored = await service.get_order_by_id(order.id)
            assert stored.status == OrderStatus.IN_TRANSIT
            assert stored.driver_id == "D2"
            assert stored.delivery_fee == 11

    async def test_unknown_partial_state_is_reported(self, dispatcher, actor):
        rejecting = RejectingBatchGateway(SessionLocal, applied=None)
        await save_user(rejecting, "D7", "Karim", UserRole.DRIVER)
        service = OrderService(rejecting, dispatcher)
        order = await service.create_order(special_request(), actor)
        await service.assign_driver(order.id, "D7", 8, OrderStatus.IN_TRANSIT, actor)

        result = await BulkService(rejecting, dispatcher).bulk_status_update(OrderStatus.DELIVERED, actor)

        assert result.success is False
        assert result.completed is None
        assert "unknown" in result.message


# ====================================================================
# CLASS 3: Bulk delete
# ====================================================================
class TestBulkDelete:
    """Chunked, sequential, archived orders untouched, counters reset only for all."""

    async def test_delete_all_resets_every_counter(self, gateway, dispatcher, actor, bulk):
        await gateway.batch_set("counters", {"ORD-": {"value": 12}, "S-": {"value": 3}, "lastId": {"value": 12}})
        await place(gateway, dispatcher, actor, 2, factory=commerce_order)

        result = await bulk.bulk_delete("all", actor)

        assert result.success is True
        assert result.counters_reset is True
        assert await CounterRepository(gateway).values() == {"ORD-": 0, "S-": 0, "lastId": 0}
        assert (await OrderService(gateway, dispatcher).get_all_orders()).total == 0

    async def test_numbering_restarts_after_delete_all(self, gateway, dispatcher, actor, bulk):
        await place(gateway, dispatcher, actor, 3, factory=commerce_order)
        await bulk.bulk_delete("all", actor)

        order = await OrderService(gateway, dispatcher).create_order(commerce_order(), actor)
        assert order.order_number == "ORD-1"

    async def test_status_scoped_delete_keeps_counters(self, gateway, dispatcher, actor, bulk):
        service = OrderService(gateway, dispatcher)
        keep = await service.create_order(special_request(), actor)
        drop = await service.create_order(special_request(), actor)
        await service.transition_order(drop.id, OrderStatus.CANCELLED, actor)

        result = await bulk.bulk_delete(OrderStatus.CANCELLED, actor)

        assert result.affected == 1
        assert result.counters_reset is False
        assert (await CounterRepository(gateway).values())["S-"] == 2
        assert (await service.get_order_by_id(keep.id)).status == OrderStatus.PENDING

    async def test_empty_selection_does_not_reset_counters(self, gateway, dispatcher, actor, bulk):
        await gateway.batch_set("counters", {"ORD-": {"value": 12}})
        result = await bulk.bulk_delete("all", actor)

        assert result.affected == 0
        assert result.counters_reset is False
        assert (await CounterRepository(gateway).values())["ORD-"] == 12

    @pytest.mark.parametrize("scope", ["all", OrderStatus.PENDING, OrderStatus.CANCELLED])
    async def test_archived_orders_are_never_deleted(self, gateway, dispatcher, actor, bulk, scope):
        service = OrderService(gateway, dispatcher)
        archived = await service.create_order(special_request(), actor)
        await service.transition_order(archived.id, OrderStatus.CANCELLED, actor)
        await service.edit_order(archived.id, OrderUpdate(is_archived=True), actor)
        pending_archived = await service.create_order(special_request(), actor)
        await service.edit_order(pending_archived.id, OrderUpdate(is_archived=True), actor)
        await service.create_order(special_request(), actor)

        await bulk.bulk_delete(scope, actor)

        assert (await service.get_order_by_id(archived.id)).is_archived is True
        assert (await service.get_order_by_id(pending_archived.id)).is_archived is True

    async def test_deletes_run_in_sequential_chunks(self, dispatcher, actor):
        spy = ChunkSpyGateway(SessionLocal, batch_ceiling=3)
        orders = await place(spy, dispatcher, actor, 8)

        result = await BulkService(spy, dispatcher).bulk_delete("all", actor)

        assert result.success is True
        assert len(spy.waves) == math.ceil(len(orders) / 3)
        assert [len(wave) for wave in spy.waves] == [3, 3, 2]
        assert spy.max_in_flight == 3

    async def test_failed_chunk_stops_remaining_chunks(self, dispatcher, actor):
        spy = ChunkSpyGateway(SessionLocal, batch_ceiling=2)
        await place(spy, dispatcher, actor, 6)
        await spy.batch_set("counters", {"lastId": {"value": 6}})
        bulk = BulkService(spy, dispatcher)
        selected = (await bulk.preview_delete("all")).order_ids
        spy.fail_on = selected[2]

        result = await bulk.bulk_delete("all", actor)

        assert result.success is False
        assert result.completed == 3
        assert len(spy.waves) == 2
        remaining = (await OrderService(spy, dispatcher).get_all_orders()).total
        assert remaining == 3
        assert (await CounterRepository(spy).values())["lastId"] == 6

    async def test_failed_chunk_still_logs_completed_deletes(self, dispatcher, actor):
        spy = ChunkSpyGateway(SessionLocal, batch_ceiling=1)
        await place(spy, dispatcher, actor, 3)
        bulk = BulkService(spy, dispatcher)
        selected = (await bulk.preview_delete("all")).order_ids
        spy.fail_on = selected[1]

        result = await bulk.bulk_delete("all", actor)

        assert result.success is False
        assert result.completed == 1
        deletes = [e for e in await AuditService(spy).get_logs() if e.action_type == ActionType.DELETE]
        assert len(deletes) == 1
        assert deletes[0].undoable is False
        assert "1 of 3" in deletes[0].details
        assert "rejected" in deletes[0].details

    async def test_failed_counter_reset_still_logs_the_delete(self, gateway, dispatcher, actor, bulk, monkeypatch):
        await place(gateway, dispatcher, actor, 2)

        async def reject(*args, **kwargs):
            raise GatewayError("counters offline")

        monkeypatch.setattr(gateway, "batch_set", reject)
        result = await bulk.bulk_delete("all", actor)

        assert result.success is False
        assert result.completed == 2
        assert result.counters_reset is False
        deletes = [e for e in await AuditService(gateway).get_logs() if e.action_type == ActionType.DELETE]
        assert len(deletes) == 1
        assert deletes[0].undoable is False
        assert "counters were not reset" in deletes[0].details

    async def test_subscribers_get_one_snapshot_per_bulk_delete(self, gateway, dispatcher, actor, bulk):
        await place(gateway, dispatcher, actor, 5)
        received = []
        gateway.subscribe("orders", received.append)

        await bulk.bulk_delete("all", actor)

        assert received == [[]]

    async def test_failed_bulk_delete_still_publishes_once(self, dispatcher, actor):
        spy = ChunkSpyGateway(SessionLocal, batch_ceiling=1)
        await place(spy, dispatcher, actor, 3)
        bulk = BulkService(spy, dispatcher)
        spy.fail_on = (await bulk.preview_delete("all")).order_ids[1]
        received = []
        spy.subscribe("orders", received.append)

        await bulk.bulk_delete("all", actor)

        assert len(received) == 1
        assert len(received[0]) == 2

    async def test_delete_is_logged_without_undo(self, gateway, dispatcher, actor, bulk):
        await place(gateway, dispatcher, actor, 2)
        await bulk.bulk_delete("all", actor)

        entry = (await AuditService(gateway).get_logs())[0]
        assert entry.action_type == ActionType.DELETE
        assert entry.undoable is False

    async def test_preview_reports_count_and_consequence(self, gateway, dispatcher, actor, bulk):
        await place(gateway, dispatcher, actor, 2)
        preview = await bulk.preview_delete("all")

        assert preview.verb == BulkVerb.DELETE
        assert preview.count == 2
        assert "cannot be undone" in preview.message

    async def test_unknown_scope_is_rejected(self, bulk, actor):
        with pytest.raises(UnsupportedBulkTarget):
            await bulk.bulk_delete("everything", actor)

    def test_default_chunk_size_is_the_gateway_ceiling(self, gateway, dispatcher):
        assert BulkService(gateway, dispatcher).chunk_size == 400


# ====================================================================
# CLASS 4: Helpers
# ====================================================================
class TestHelpers:

    def test_chunked_splits_without_exceeding_size(self):
        chunks = list(chunked(list(range(801)), 400))
        assert [len(c) for c in chunks] == [400, 400, 1]

    def test_chunked_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            list(chunked([1, 2], 0))

    def test_select_for_delete_excludes_archived(self):
        live = make_order(id="a")
        archived = make_order(id="b", is_archived=True)
        assert select_for_delete([live, archived], "all") == [live]
