"""Notifications API router."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from naafe.api.deps import get_db, get_current_user
from naafe.models.user import User
from naafe.schemas.notification import NotificationList, NotificationResponse, MarkReadResponse
from naafe.services.notifications import list_notifications, mark_as_read

router = APIRouter()


@router.get("", response_model=NotificationList)
async def get_notifications(
    unread_only: bool = Query(False),
    offer_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Get notifications for the current user.
    """
    notifications, total, unread_count = await list_notifications(
        db=db,
        user_id=current_user.id,
        unread_only=unread_only,
        offer_id=offer_id,
        limit=limit,
        offset=offset
    )

    return NotificationList(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        total=total,
        unread_count=unread_count
    )


@router.post("/{notification_id}/read", response_model=MarkReadResponse)
async def mark_notification_read(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Mark a notification as read.
    """
    notification = await mark_as_read(db, notification_id, current_user.id)
    return MarkReadResponse(
        notification_id=notification.id,
        read_at=notification.read_at
    )
