"""
Pydantic schemas for users
"""
from enum import Enum
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime


class UserRole(str, Enum):
    ADMIN = "admin"
    SUPERVISOR = "supervisor"
    MERCHANT = "merchant"
    DRIVER = "driver"
    CUSTOMER = "customer"


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1)
    role: UserRole
    phone: Optional[str] = None


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = None
    status: Optional[str] = None


class UserDocument(BaseModel):
    id: str
    name: str
    role: UserRole
    status: str = "active"
    phone: Optional[str] = None
    created_at: datetime
    
    model_config = ConfigDict(from_attributes=True)

    def to_fields(self) -> dict:
        fields = self.model_dump()
        fields["role"] = self.role.value
        return fields
