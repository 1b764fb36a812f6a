"""API dependencies for authentication and database access."""

from datetime import datetime
from fastapi import Depends, HTTPException, status, Header
from sqlalchemy.ext.asyncio import AsyncSession

from naafe.database import get_db
from naafe.models.user import User
from naafe.services.lifecycle import LifecycleCoordinator, get_lifecycle_coordinator
from naafe.services.user_service import get_user_by_api_key


async def get_current_user(
    x_user_key: str = Header(..., description="API key for authentication"),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Dependency that validates the X-User-Key header and returns the authenticated user.

    Raises:
        HTTPException: 401 if API key is invalid
    """
    user = await get_user_by_api_key(db, x_user_key)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "code": "INVALID_API_KEY",
                "message": "Invalid API key provided"
            }
        )

    user.last_seen_at = datetime.utcnow()
    await db.commit()
    return user


def get_coordinator() -> LifecycleCoordinator:
    """Lifecycle coordinator dependency; overridden in tests."""
    return get_lifecycle_coordinator()


__all__ = ["get_db", "get_current_user", "get_coordinator"]
