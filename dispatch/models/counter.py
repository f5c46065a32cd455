"""
SQLAlchemy Counter model
"""
from sqlalchemy import Column, String, Integer
from dispatch.database import Base


class Counter(Base):
    """Named sequence used to mint human-readable order numbers"""
    
    __tablename__ = "counters"
    
    id = Column(String(32), primary_key=True)  # ORD-, S-, lastId
    value = Column(Integer, nullable=False, default=0)
    
    def __repr__(self):
        return f"<Counter(id={self.id}, value={self.value})>"
