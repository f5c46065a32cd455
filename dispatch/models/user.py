"""
SQLAlchemy User model
"""
from sqlalchemy import Column, String, DateTime, CheckConstraint
from sqlalchemy.sql import func
from dispatch.database import Base


class User(Base):
    """Platform account (customer, merchant, driver, admin, supervisor)"""
    
    __tablename__ = "users"
    
    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    role = Column(String(32), nullable=False, index=True)
    status = Column(String(32), nullable=False, default='active')
    phone = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    __table_args__ = (
        CheckConstraint(
            "role IN ('admin', 'supervisor', 'merchant', 'driver', 'customer')",
            name='check_role_valid'
        ),
    )
    
    def __repr__(self):
        return f"<User(id={self.id}, role='{self.role}')>"
