"""
Pydantic schemas for the audit ledger
"""
from enum import Enum
from pydantic import BaseModel, Field, ConfigDict, TypeAdapter, computed_field
from typing import Optional, List, Literal, Union, Annotated
from datetime import datetime

from dispatch.schemas.order import OrderDocument
from dispatch.schemas.user import UserDocument


class ActionType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    FINANCIAL = "financial"


class Actor(BaseModel):
    """Identity of whoever issued a command"""
    id: str
    name: str


ANONYMOUS_ACTOR = Actor(id="anonymous", name="Anonymous")


class OrderSnapshot(BaseModel):
    """Pre-mutation state of one order"""
    kind: Literal["order"] = "order"
    order: OrderDocument


class OrderSetSnapshot(BaseModel):
    """Pre-mutation state of every order touched by a bulk verb"""
    kind: Literal["orders"] = "orders"
    orders: List[OrderDocument]


class UserSnapshot(BaseModel):
    """Pre-mutation state of one user"""
    kind: Literal["user"] = "user"
    user: UserDocument


UndoPayload = Annotated[
    Union[OrderSnapshot, OrderSetSnapshot, UserSnapshot],
    Field(discriminator="kind")
]

undo_payload_adapter = TypeAdapter(UndoPayload)

# Action types whose prior state can be captured and replayed
UNDOABLE_ACTIONS = frozenset({ActionType.UPDATE, ActionType.FINANCIAL})


class AuditLogEntry(BaseModel):
    """Schema for an audit log entry"""
    id: str
    action_type: ActionType
    target: str
    details: str = ""
    collection: Optional[str] = None
    target_id: Optional[str] = None
    actor_id: str
    actor_name: str
    undo_payload: Optional[dict] = None  # Serialized UndoPayload, parsed on undo
    is_undone: bool = False
    undo_error: Optional[str] = None
    created_at: datetime
    
    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def undoable(self) -> bool:
        return (
            self.action_type in UNDOABLE_ACTIONS
            and self.undo_payload is not None
            and not self.is_undone
            and self.undo_error is None
        )

    def parsed_payload(self):
        """
        Raises:
            pydantic.ValidationError: If the payload lacks required fields
        """
        return undo_payload_adapter.validate_python(self.undo_payload)


class AuditLogListResponse(BaseModel):
    logs: List[AuditLogEntry]
    total: int


class UndoResponse(BaseModel):
    log_id: str
    restored: int
    message: str
