"""
Order Repository - Data Access Layer
"""
from typing import Dict, List, Optional

from dispatch.repositories.gateway import CollectionGateway
from dispatch.schemas.order import OrderDocument

COLLECTION = "orders"


class OrderRepository:
    """Typed access to the orders collection"""
    
    def __init__(self, gateway: CollectionGateway):
        self.gateway = gateway
    
    async def snapshot(self) -> List[OrderDocument]:
        """All orders, newest first"""
        docs = await self.gateway.list(COLLECTION)
        orders = [OrderDocument.model_validate(doc) for doc in docs]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)
    
    async def get_by_id(self, order_id: str) -> Optional[OrderDocument]:
        doc = await self.gateway.get(COLLECTION, order_id)
        return OrderDocument.model_validate(doc) if doc else None
    
    async def create(self, order: OrderDocument) -> OrderDocument:
        await self.gateway.set(COLLECTION, order.id, order.to_fields())
        return order
    
    async def update(self, order_id: str, fields: dict) -> None:
        await self.gateway.update(COLLECTION, order_id, fields)
    
    async def update_many(self, updates: Dict[str, dict]) -> None:
        await self.gateway.batch_update(COLLECTION, updates)
    
    async def replace(self, order: OrderDocument) -> None:
        """Overwrite every field of an existing order; a missing order is rejected"""
        await self.gateway.update(COLLECTION, order.id, _without_id(order))
    
    async def replace_many(self, orders: List[OrderDocument]) -> None:
        await self.gateway.batch_update(COLLECTION, {o.id: _without_id(o) for o in orders})
    
    async def missing(self, order_ids: List[str]) -> List[str]:
        """Ids among order_ids with no stored order"""
        stored = {doc["id"] for doc in await self.gateway.list(COLLECTION)}
        return [order_id for order_id in order_ids if order_id not in stored]
    
    async def delete(self, order_id: str) -> None:
        await self.gateway.delete(COLLECTION, order_id)


def _without_id(order: OrderDocument) -> dict:
    fields = order.to_fields()
    fields.pop("id", None)
    return fields
