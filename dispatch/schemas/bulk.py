"""
Pydantic schemas for bulk verbs
"""
from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional, List, Union, Literal

from dispatch.schemas.order import OrderStatus


class BulkVerb(str, Enum):
    ASSIGN_DRIVER = "assign-driver"
    SET_STATUS = "set-status"
    DELETE = "delete"


class BulkAssignRequest(BaseModel):
    driver_id: str = Field(..., min_length=1)
    delivery_fee: float


class BulkStatusRequest(BaseModel):
    status: OrderStatus


class BulkDeleteRequest(BaseModel):
    scope: Union[Literal["all"], OrderStatus] = "all"


class BulkPreview(BaseModel):
    """Pre-computed impact of a bulk verb, shown before confirmation"""
    verb: BulkVerb
    count: int
    order_ids: List[str]
    message: str


class BulkResult(BaseModel):
    """Aggregate outcome of a bulk verb"""
    verb: BulkVerb
    success: bool
    affected: int
    completed: Optional[int] = None  # None when the partial state is unknown
    counters_reset: bool = False
    message: str
