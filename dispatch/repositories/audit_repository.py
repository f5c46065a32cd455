"""
Audit Log Repository - Data Access Layer
"""
from typing import List, Optional

from dispatch.repositories.gateway import CollectionGateway
from dispatch.schemas.audit import AuditLogEntry

COLLECTION = "audit_logs"


class AuditLogRepository:
    """Typed access to the audit_logs collection"""
    
    def __init__(self, gateway: CollectionGateway):
        self.gateway = gateway
    
    async def get_all(self) -> List[AuditLogEntry]:
        """All entries, newest first"""
        docs = await self.gateway.list(COLLECTION)
        entries = [AuditLogEntry.model_validate(doc) for doc in docs]
        return sorted(entries, key=lambda e: e.created_at, reverse=True)
    
    async def get_by_id(self, log_id: str) -> Optional[AuditLogEntry]:
        doc = await self.gateway.get(COLLECTION, log_id)
        return AuditLogEntry.model_validate(doc) if doc else None
    
    async def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        fields = entry.model_dump(mode="json")
        fields.pop("undoable", None)
        fields["created_at"] = entry.created_at
        await self.gateway.set(COLLECTION, entry.id, fields)
        return entry
    
    async def mark_undone(self, log_id: str) -> None:
        await self.gateway.update(COLLECTION, log_id, {"is_undone": True})
    
    async def mark_undo_failed(self, log_id: str, error: str) -> None:
        await self.gateway.update(COLLECTION, log_id, {"undo_error": error})
    
    async def delete(self, log_id: str) -> None:
        await self.gateway.delete(COLLECTION, log_id)
