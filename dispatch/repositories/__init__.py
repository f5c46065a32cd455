"""
Repositories package
"""
from dispatch.repositories.gateway import CollectionGateway, GatewayError
from dispatch.repositories.order_repository import OrderRepository
from dispatch.repositories.user_repository import UserRepository
from dispatch.repositories.audit_repository import AuditLogRepository
from dispatch.repositories.counter_repository import CounterRepository

__all__ = [
    "CollectionGateway",
    "GatewayError",
    "OrderRepository",
    "UserRepository",
    "AuditLogRepository",
    "CounterRepository"
]
