"""
Audit Service - append-only ledger of administrative mutations with undo
"""
import asyncio
import logging
import secrets
import time
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import ValidationError

from dispatch.repositories.audit_repository import AuditLogRepository
from dispatch.repositories.gateway import CollectionGateway, GatewayError
from dispatch.repositories.order_repository import OrderRepository
from dispatch.repositories.user_repository import UserRepository
from dispatch.schemas.audit import (
    ActionType,
    Actor,
    AuditLogEntry,
    OrderSnapshot,
    OrderSetSnapshot,
    UserSnapshot,
    UndoResponse,
    UNDOABLE_ACTIONS
)
from dispatch.services.errors import UndoError, BatchWriteFailure

logger = logging.getLogger(__name__)


def new_log_id() -> str:
    return f"LOG-{int(time.time() * 1000)}-{secrets.token_hex(3)}"


class AuditService:
    """Service layer for the audit ledger"""

    def __init__(self, gateway: CollectionGateway):
        self.repository = AuditLogRepository(gateway)
        self.orders = OrderRepository(gateway)
        self.users = UserRepository(gateway)

    async def get_logs(self) -> List[AuditLogEntry]:
        return await self.repository.get_all()

    async def log_action(
        self,
        action_type: ActionType,
        target: str,
        details: str,
        actor: Actor,
        collection: Optional[str] = None,
        target_id: Optional[str] = None,
        undo_payload=None
    ) -> AuditLogEntry:
        """
        Append an entry to the ledger

        Args:
            action_type: create, update, delete or financial
            target: Human-readable description of what was touched
            details: Free-text details
            actor: Who performed the mutation
            collection: Collection of the mutated document, if any
            target_id: Key of the mutated document, if any
            undo_payload: Snapshot of the state before the mutation

        Raises:
            GatewayError: If the entry could not be written
        """
        entry = AuditLogEntry(
            id=new_log_id(),
            action_type=action_type,
            target=target,
            details=details,
            collection=collection,
            target_id=target_id,
            actor_id=actor.id,
            actor_name=actor.name,
            undo_payload=undo_payload.model_dump(mode="json") if undo_payload is not None else None,
            created_at=datetime.now(timezone.utc)
        )
        return await self.repository.append(entry)

    async def record(self, *args, **kwargs) -> Optional[AuditLogEntry]:
        """
        log_action for a mutation that has already committed

        A failed append is logged instead of raised so the committed
        mutation still reports success.
        """
        try:
            return await self.log_action(*args, **kwargs)
        except GatewayError as e:
            logger.warning("✗ Failed to append audit entry: %s", e)
            return None

    async def undo(self, log_id: str, actor: Actor) -> UndoResponse:
        """
        Restore the exact field values captured before the logged mutation

        Fields changed since then are overwritten; this is a full-state
        restore, not a merge. Deleted orders are never brought back.

        Raises:
            UndoError: If the entry is missing, already undone or not undoable,
                or an order it covers has since been deleted
            BatchWriteFailure: If the restore write was rejected
        """
        entry = await self.repository.get_by_id(log_id)
        if entry is None:
            raise UndoError(f"Audit entry {log_id} not found")
        if entry.is_undone:
            raise UndoError(f"Audit entry {log_id} was already undone")
        if entry.undo_error is not None:
            raise UndoError(f"Audit entry {log_id} cannot be undone: {entry.undo_error}")

        if entry.action_type not in UNDOABLE_ACTIONS or entry.undo_payload is None:
            await self._refuse(entry, f"{entry.action_type.value} entries carry no prior state")

        try:
            payload = entry.parsed_payload()
        except ValidationError as e:
            await self._refuse(entry, f"undo payload is incomplete ({e.error_count()} errors)")

        if await self._targets_missing(payload):
            await self._refuse(entry, "order was deleted")

        try:
            restored = await self._restore(payload)
        except GatewayError as e:
            raise BatchWriteFailure(f"Undo of {log_id} failed: {e}", completed=e.applied)

        try:
            await self.repository.mark_undone(log_id)
        except GatewayError as e:
            logger.warning("✗ Restored %s but could not mark it undone: %s", log_id, e)

        await self.record(
            ActionType.UPDATE,
            entry.target,
            f"Undid: {entry.details}",
            actor,
            collection=entry.collection,
            target_id=entry.target_id
        )
        logger.info("✓ Undo of %s restored %d document(s)", log_id, restored)
        return UndoResponse(log_id=log_id, restored=restored, message=f"Restored {restored} document(s)")

    async def clear_logs(self, actor: Actor) -> int:
        """
        Delete every entry; irreversible and unrelated to undo

        Returns:
            Number of entries removed

        Raises:
            BatchWriteFailure: If any delete was rejected
        """
        entries = await self.repository.get_all()
        with self.repository.gateway.coalesced("audit_logs"):
            results = await asyncio.gather(
                *(self.repository.delete(entry.id) for entry in entries),
                return_exceptions=True
            )
        failures = [r for r in results if isinstance(r, Exception)]
        if failures:
            completed = len(results) - len(failures)
            raise BatchWriteFailure(f"Clearing audit logs failed: {failures[0]}", completed=completed)

        await self.record(ActionType.DELETE, "System", "Audit log cleared", actor)
        logger.info("✓ Cleared %d audit entries", len(entries))
        return len(entries)

    async def _refuse(self, entry: AuditLogEntry, reason: str):
        try:
            await self.repository.mark_undo_failed(entry.id, reason)
        except GatewayError as e:
            logger.warning("✗ Could not flag %s as not undoable: %s", entry.id, e)
        raise UndoError(f"Audit entry {entry.id} cannot be undone: {reason}")

    async def _targets_missing(self, payload) -> bool:
        if isinstance(payload, OrderSnapshot):
            return bool(await self.orders.missing([payload.order.id]))
        if isinstance(payload, OrderSetSnapshot):
            return bool(await self.orders.missing([order.id for order in payload.orders]))
        return False

    async def _restore(self, payload) -> int:
        if isinstance(payload, OrderSnapshot):
            await self.orders.replace(payload.order)
            return 1
        if isinstance(payload, OrderSetSnapshot):
            await self.orders.replace_many(payload.orders)
            return len(payload.orders)
        if isinstance(payload, UserSnapshot):
            await self.users.save(payload.user)
            return 1
        raise UndoError(f"Unsupported undo payload: {type(payload).__name__}")
