"""
SQLAlchemy Order model
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, Text, Boolean, JSON, CheckConstraint
from sqlalchemy.sql import func
from dispatch.database import Base


class Order(Base):
    """Order document"""
    
    __tablename__ = "orders"
    
    id = Column(String(64), primary_key=True)
    order_number = Column(String(32), nullable=False, unique=True, index=True)  # e.g. ORD-12
    kind = Column(String(32), nullable=False)  # commerce, special_request
    status = Column(String(32), nullable=False, index=True)
    
    # Customer
    user_id = Column(String(64), nullable=True, index=True)
    customer_name = Column(String(255), nullable=False)
    customer_phone = Column(String(64), nullable=False)
    customer_address = Column(String(512), nullable=False)
    
    # Merchant (commerce orders only)
    merchant_id = Column(String(64), nullable=True, index=True)
    merchant_name = Column(String(255), nullable=True)
    items = Column(JSON, nullable=True)
    total_price = Column(Float, nullable=True)  # Fixed at placement
    notes = Column(Text, nullable=True)
    
    # Driver assignment (set together or not at all)
    driver_id = Column(String(64), nullable=True, index=True)
    delivery_fee = Column(Float, nullable=True)
    
    # Payment
    paid_amount = Column(Float, nullable=True)
    unpaid_amount = Column(Float, nullable=True)
    payment_status = Column(String(16), nullable=True)
    is_cash_on_delivery = Column(Boolean, nullable=False, default=True)
    
    # Discounts
    promo_code = Column(String(64), nullable=True)
    points_redeemed = Column(Integer, nullable=True)
    discount_amount = Column(Float, nullable=True)
    final_price = Column(Float, nullable=True)
    
    is_archived = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    
    __table_args__ = (
        CheckConstraint("kind IN ('commerce', 'special_request')", name='check_kind_valid'),
        CheckConstraint(
            "status IN ('pending', 'waiting_merchant', 'preparing', 'ready', 'in_transit', 'delivered', 'cancelled')",
            name='check_status_valid'
        ),
        CheckConstraint('delivery_fee IS NULL OR delivery_fee >= 0', name='check_fee_non_negative'),
    )
    
    def __repr__(self):
        return f"<Order(id={self.id}, number={self.order_number}, status='{self.status}', driver={self.driver_id})>"
