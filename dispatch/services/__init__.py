"""
Services package
"""
from dispatch.services.order_service import OrderService
from dispatch.services.bulk_service import BulkService
from dispatch.services.audit_service import AuditService
from dispatch.services.user_service import UserService
from dispatch.services.notification_service import NotificationDispatcher, build_notification

__all__ = ["OrderService", "BulkService", "AuditService", "UserService", "NotificationDispatcher", "build_notification"]
