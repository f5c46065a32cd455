"""
Pydantic schemas for orders
"""
from enum import Enum
from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, List, Literal
from datetime import datetime


class OrderStatus(str, Enum):
    """Order lifecycle states, in happy-path order"""
    PENDING = "pending"
    WAITING_MERCHANT = "waiting_merchant"
    PREPARING = "preparing"
    READY = "ready"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderKind(str, Enum):
    COMMERCE = "commerce"
    SPECIAL_REQUEST = "special_request"


class CustomerInfo(BaseModel):
    """Delivery contact for an order"""
    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)


class LineItem(BaseModel):
    """One product line of a commerce order"""
    product_id: str
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., gt=0)
    size: Optional[str] = None

    @property
    def subtotal(self) -> float:
        return self.price * self.quantity


class OrderCreate(BaseModel):
    """
    Schema for placing an order
    
    A commerce order carries a merchant and at least one item; a special request
    carries free-text notes and no merchant.
    """
    customer: CustomerInfo
    user_id: Optional[str] = None
    merchant_id: Optional[str] = None
    merchant_name: Optional[str] = None
    items: List[LineItem] = Field(default_factory=list)
    notes: Optional[str] = None
    paid_amount: Optional[float] = Field(None, ge=0)
    payment_status: Optional[Literal['paid', 'unpaid']] = None
    is_cash_on_delivery: bool = True
    promo_code: Optional[str] = None
    points_redeemed: Optional[int] = Field(None, ge=0)
    discount_amount: Optional[float] = Field(None, ge=0)

    @model_validator(mode="after")
    def check_variant(self):
        if self.merchant_id:
            if not self.items:
                raise ValueError("Commerce orders require at least one item")
        else:
            if self.items:
                raise ValueError("Items require a merchant")
            if not self.notes or not self.notes.strip():
                raise ValueError("Special requests require notes")
        return self

    @property
    def kind(self) -> OrderKind:
        return OrderKind.COMMERCE if self.merchant_id else OrderKind.SPECIAL_REQUEST


class OrderUpdate(BaseModel):
    """Editable order details. Status, driver and pricing of items are not editable here."""
    customer_name: Optional[str] = Field(None, min_length=1)
    customer_phone: Optional[str] = Field(None, min_length=1)
    customer_address: Optional[str] = Field(None, min_length=1)
    merchant_name: Optional[str] = None
    notes: Optional[str] = None
    paid_amount: Optional[float] = Field(None, ge=0)
    unpaid_amount: Optional[float] = Field(None, ge=0)
    payment_status: Optional[Literal['paid', 'unpaid']] = None
    is_cash_on_delivery: Optional[bool] = None
    promo_code: Optional[str] = None
    points_redeemed: Optional[int] = Field(None, ge=0)
    discount_amount: Optional[float] = Field(None, ge=0)
    final_price: Optional[float] = Field(None, ge=0)
    is_archived: Optional[bool] = None


class OrderStatusUpdate(BaseModel):
    """Schema for a single-order status transition"""
    status: OrderStatus


class AssignDriverRequest(BaseModel):
    """Schema for assigning (or transferring) a driver"""
    driver_id: str = Field(..., min_length=1)
    delivery_fee: float
    status: OrderStatus = OrderStatus.IN_TRANSIT


class OrderDocument(BaseModel):
    """Full persisted state of an order"""
    id: str
    order_number: str
    kind: OrderKind
    status: OrderStatus
    user_id: Optional[str] = None
    customer_name: str
    customer_phone: str
    customer_address: str
    merchant_id: Optional[str] = None
    merchant_name: Optional[str] = None
    items: Optional[List[LineItem]] = None
    total_price: Optional[float] = None
    notes: Optional[str] = None
    driver_id: Optional[str] = None
    delivery_fee: Optional[float] = None
    paid_amount: Optional[float] = None
    unpaid_amount: Optional[float] = None
    payment_status: Optional[str] = None
    is_cash_on_delivery: bool = True
    promo_code: Optional[str] = None
    points_redeemed: Optional[int] = None
    discount_amount: Optional[float] = None
    final_price: Optional[float] = None
    is_archived: bool = False
    created_at: datetime
    delivered_at: Optional[datetime] = None
    
    model_config = ConfigDict(from_attributes=True, use_enum_values=False)

    @property
    def is_special_request(self) -> bool:
        return self.kind == OrderKind.SPECIAL_REQUEST

    def to_fields(self) -> dict:
        """Column values suitable for a full document write"""
        fields = self.model_dump()
        fields["kind"] = self.kind.value
        fields["status"] = self.status.value
        return fields


class OrderListResponse(BaseModel):
    """Schema for list of orders response"""
    orders: List[OrderDocument]
    total: int
