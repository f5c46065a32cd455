"""
User API endpoints
"""
from fastapi import APIRouter, Depends, status

from dispatch.api.deps import get_gateway, get_actor, to_http_error
from dispatch.repositories.gateway import CollectionGateway
from dispatch.schemas.audit import Actor
from dispatch.schemas.user import UserCreate, UserUpdate, UserDocument
from dispatch.services.errors import DispatchError
from dispatch.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])


def get_user_service(gateway: CollectionGateway = Depends(get_gateway)) -> UserService:
    """Dependency to get UserService instance"""
    return UserService(gateway)


@router.post("", response_model=UserDocument, status_code=status.HTTP_201_CREATED, summary="Register user")
async def register_user(
    user_data: UserCreate,
    service: UserService = Depends(get_user_service),
    actor: Actor = Depends(get_actor)
):
    try:
        return await service.register_user(user_data, actor)
    except DispatchError as e:
        raise to_http_error(e)


@router.get("/{user_id}", response_model=UserDocument, summary="Get user by ID")
async def get_user(user_id: str, service: UserService = Depends(get_user_service)):
    try:
        return await service.get_user(user_id)
    except DispatchError as e:
        raise to_http_error(e)


@router.patch("/{user_id}", response_model=UserDocument, summary="Edit user")
async def update_user(
    user_id: str,
    changes: UserUpdate,
    service: UserService = Depends(get_user_service),
    actor: Actor = Depends(get_actor)
):
    try:
        return await service.update_user(user_id, changes, actor)
    except DispatchError as e:
        raise to_http_error(e)
