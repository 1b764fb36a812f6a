"""Users API router."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from naafe.api.deps import get_db, get_current_user
from naafe.models.user import User
from naafe.schemas.user import UserCreate, UserCreateResponse, UserResponse
from naafe.services.user_service import create_user

router = APIRouter()


@router.post("", response_model=UserCreateResponse, status_code=status.HTTP_201_CREATED)
async def register_user(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db)
):
    """
    Register a seeker and/or provider.

    The returned `api_key` authenticates later requests through the
    `X-User-Key` header. It is not shown again.
    """
    user, api_key = await create_user(db, user_data)
    return UserCreateResponse(
        **UserResponse.model_validate(user).model_dump(),
        api_key=api_key
    )


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    """Get the authenticated user."""
    return current_user
