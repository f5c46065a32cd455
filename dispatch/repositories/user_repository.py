"""
User Repository - Data Access Layer
"""
from typing import Optional

from dispatch.repositories.gateway import CollectionGateway
from dispatch.schemas.user import UserDocument

COLLECTION = "users"


class UserRepository:
    """Typed access to the users collection"""
    
    def __init__(self, gateway: CollectionGateway):
        self.gateway = gateway
    
    async def get_by_id(self, user_id: str) -> Optional[UserDocument]:
        doc = await self.gateway.get(COLLECTION, user_id)
        return UserDocument.model_validate(doc) if doc else None
    
    async def save(self, user: UserDocument) -> UserDocument:
        await self.gateway.set(COLLECTION, user.id, user.to_fields())
        return user
    
    async def update(self, user_id: str, fields: dict) -> None:
        await self.gateway.update(COLLECTION, user_id, fields)
