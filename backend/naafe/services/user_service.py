"""User service for registration and lookup."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from naafe.core.errors import ValidationFailed
from naafe.core.security import generate_api_key, hash_api_key
from naafe.models.user import User
from naafe.schemas.user import UserCreate

logger = logging.getLogger(__name__)


async def create_user(db: AsyncSession, user_data: UserCreate) -> tuple[User, str]:
    """
    Register a user and issue an API key.

    Args:
        db: Database session
        user_data: Registration data

    Returns:
        Tuple of (user, api_key); the plaintext key is only available here

    Raises:
        ValidationFailed: If the email is already registered
    """
    email = user_data.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise ValidationFailed("Email is already registered", field="email")

    api_key = generate_api_key()
    user = User(
        name=user_data.name,
        email=email,
        roles=sorted(set(user_data.roles)),
        api_key_hash=hash_api_key(api_key),
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    logger.info(f"Registered user {user.id} with roles {user.roles}")
    return user, api_key


async def get_user_by_api_key(db: AsyncSession, api_key: str) -> Optional[User]:
    """Find the user owning an API key."""
    result = await db.execute(select(User).where(User.api_key_hash == hash_api_key(api_key)))
    return result.scalar_one_or_none()
