"""
Schemas package
"""
from dispatch.schemas.order import (
    OrderStatus,
    OrderKind,
    CustomerInfo,
    LineItem,
    OrderCreate,
    OrderUpdate,
    OrderStatusUpdate,
    AssignDriverRequest,
    OrderDocument,
    OrderListResponse
)
from dispatch.schemas.user import UserRole, UserCreate, UserUpdate, UserDocument
from dispatch.schemas.audit import (
    ActionType,
    Actor,
    OrderSnapshot,
    OrderSetSnapshot,
    UserSnapshot,
    AuditLogEntry,
    AuditLogListResponse,
    UndoResponse
)
from dispatch.schemas.bulk import (
    BulkVerb,
    BulkAssignRequest,
    BulkStatusRequest,
    BulkDeleteRequest,
    BulkPreview,
    BulkResult
)
from dispatch.schemas.notification import NotificationPayload

__all__ = [
    "OrderStatus",
    "OrderKind",
    "CustomerInfo",
    "LineItem",
    "OrderCreate",
    "OrderUpdate",
    "OrderStatusUpdate",
    "AssignDriverRequest",
    "OrderDocument",
    "OrderListResponse",
    "UserRole",
    "UserCreate",
    "UserUpdate",
    "UserDocument",
    "ActionType",
    "Actor",
    "OrderSnapshot",
    "OrderSetSnapshot",
    "UserSnapshot",
    "AuditLogEntry",
    "AuditLogListResponse",
    "UndoResponse",
    "BulkVerb",
    "BulkAssignRequest",
    "BulkStatusRequest",
    "BulkDeleteRequest",
    "BulkPreview",
    "BulkResult",
    "NotificationPayload"
]
