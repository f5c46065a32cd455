"""
Audit log endpoints
"""
from fastapi import APIRouter, Depends

from dispatch.api.deps import get_gateway, get_actor, to_http_error
from dispatch.repositories.gateway import CollectionGateway
from dispatch.schemas.audit import Actor, AuditLogListResponse, UndoResponse
from dispatch.services.audit_service import AuditService
from dispatch.services.errors import DispatchError

router = APIRouter(prefix="/audit-logs", tags=["audit"])


def get_audit_service(gateway: CollectionGateway = Depends(get_gateway)) -> AuditService:
    """Dependency to get AuditService instance"""
    return AuditService(gateway)


@router.get("", response_model=AuditLogListResponse, summary="Get audit log")
async def get_logs(service: AuditService = Depends(get_audit_service)):
    logs = await service.get_logs()
    return AuditLogListResponse(logs=logs, total=len(logs))


@router.post("/{log_id}/undo", response_model=UndoResponse, summary="Undo a logged mutation")
async def undo(
    log_id: str,
    service: AuditService = Depends(get_audit_service),
    actor: Actor = Depends(get_actor)
):
    """
    Restore the state captured before the logged mutation

    Only entries reported as **undoable** can be undone.
    """
    try:
        return await service.undo(log_id, actor)
    except DispatchError as e:
        raise to_http_error(e)


@router.delete("", summary="Clear audit log")
async def clear_logs(
    service: AuditService = Depends(get_audit_service),
    actor: Actor = Depends(get_actor)
):
    """Delete every entry. Irreversible."""
    try:
        removed = await service.clear_logs(actor)
    except DispatchError as e:
        raise to_http_error(e)
    return {"removed": removed}
