"""
Models package
"""
from dispatch.models.order import Order
from dispatch.models.user import User
from dispatch.models.audit_log import AuditLog
from dispatch.models.counter import Counter

__all__ = ["Order", "User", "AuditLog", "Counter"]
