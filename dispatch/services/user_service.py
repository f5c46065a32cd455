"""
User Service - minimal account registry used for driver checks
"""
import logging
import uuid
from datetime import datetime, timezone

from dispatch.repositories.gateway import CollectionGateway, GatewayError
from dispatch.repositories.user_repository import UserRepository
from dispatch.schemas.audit import ActionType, Actor, UserSnapshot
from dispatch.schemas.user import UserCreate, UserUpdate, UserDocument
from dispatch.services.audit_service import AuditService
from dispatch.services.errors import UserNotFound
from dispatch.services.order_service import write_failure

logger = logging.getLogger(__name__)


class UserService:
    """Service layer for users"""

    def __init__(self, gateway: CollectionGateway):
        self.repository = UserRepository(gateway)
        self.audit = AuditService(gateway)

    async def get_user(self, user_id: str) -> UserDocument:
        user = await self.repository.get_by_id(user_id)
        if user is None:
            raise UserNotFound(f"User with id={user_id} not found")
        return user

    async def register_user(self, user_data: UserCreate, actor: Actor) -> UserDocument:
        user = UserDocument(
            id=uuid.uuid4().hex,
            name=user_data.name,
            role=user_data.role,
            phone=user_data.phone,
            created_at=datetime.now(timezone.utc)
        )
        try:
            await self.repository.save(user)
        except GatewayError as e:
            raise write_failure(f"Registering {user.name}", e)

        await self.audit.record(
            ActionType.CREATE, "Users", f"New account: {user.name} ({user.role.value})", actor,
            collection="users", target_id=user.id
        )
        return user

    async def update_user(self, user_id: str, changes: UserUpdate, actor: Actor) -> UserDocument:
        """Edit a user; the previous state is kept in the ledger for undo"""
        user = await self.get_user(user_id)
        fields = changes.model_dump(exclude_unset=True)
        if not fields:
            return user

        try:
            await self.repository.update(user.id, fields)
        except GatewayError as e:
            raise write_failure(f"Updating {user.name}", e)

        await self.audit.record(
            ActionType.UPDATE, "Users", f"Account {user.name} edited ({', '.join(sorted(fields))})", actor,
            collection="users", target_id=user.id, undo_payload=UserSnapshot(user=user)
        )
        return user.model_copy(update=fields)
