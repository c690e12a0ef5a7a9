from fastapi import APIRouter, Depends, HTTPException, status

from datamind.models.schemas import UserCreate, UserResponse
from datamind.services.container import ServiceContainer, get_container
from datamind.utils.exceptions import NotFoundError
from datamind.utils.logger import setup_logger

router = APIRouter()
logger = setup_logger(__name__)

@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, container: ServiceContainer = Depends(get_container)):
    user = await container.storage.get_user(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user

@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(request: UserCreate, container: ServiceContainer = Depends(get_container)):
    if await container.storage.get_user_by_username(request.username) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already exists")
    user = await container.storage.create_user(request.username, request.password, request.role)
    logger.info(f"Created user {user.username}")
    return user
