"""
Counter Repository - order number allocation
"""
from typing import Dict, Iterable

from dispatch.config import settings
from dispatch.repositories.gateway import CollectionGateway

COLLECTION = "counters"


class CounterRepository:
    """
    Named sequences shared by every client
    
    Allocation is a transactional increment in the store, so concurrent
    clients never mint the same number.
    """
    
    def __init__(self, gateway: CollectionGateway):
        self.gateway = gateway
    
    @property
    def known_keys(self) -> Iterable[str]:
        return (settings.ORDER_PREFIX, settings.SPECIAL_ORDER_PREFIX, settings.LEGACY_COUNTER_KEY)
    
    async def allocate(self, prefix: str) -> str:
        """Advance the counter for prefix and return the new order number, e.g. ORD-13"""
        value = await self.gateway.increment(COLLECTION, prefix)
        return f"{prefix}{value}"
    
    async def values(self) -> Dict[str, int]:
        docs = await self.gateway.list(COLLECTION)
        return {doc["id"]: doc["value"] for doc in docs}
    
    async def reset_all(self) -> None:
        """Zero every counter, including the legacy key, as a single write"""
        keys = set(self.known_keys) | set((await self.values()).keys())
        await self.gateway.batch_set(COLLECTION, {key: {"value": 0} for key in keys})
