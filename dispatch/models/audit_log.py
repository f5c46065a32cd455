"""
SQLAlchemy AuditLog model
"""
from sqlalchemy import Column, String, DateTime, Text, Boolean, JSON
from sqlalchemy.sql import func
from dispatch.database import Base


class AuditLog(Base):
    """Append-only record of an administrative mutation"""
    
    __tablename__ = "audit_logs"
    
    id = Column(String(64), primary_key=True)
    action_type = Column(String(16), nullable=False, index=True)  # create, update, delete, financial
    target = Column(String(255), nullable=False)
    details = Column(Text, nullable=False, default='')
    collection = Column(String(32), nullable=True)
    target_id = Column(String(64), nullable=True)
    actor_id = Column(String(64), nullable=False)
    actor_name = Column(String(255), nullable=False)
    undo_payload = Column(JSON, nullable=True)
    # Only undo bookkeeping changes after the entry is written
    is_undone = Column(Boolean, nullable=False, default=False)
    undo_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    
    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action_type}', target='{self.target}')>"
