"""Pydantic schemas for in-app notifications."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class NotificationResponse(BaseModel):
    """Notification response."""
    id: str
    offer_id: Optional[str]
    type: str
    message: str
    is_read: bool
    read_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationList(BaseModel):
    """Paginated notifications."""
    notifications: List[NotificationResponse]
    total: int
    unread_count: int


class MarkReadResponse(BaseModel):
    """Response after marking a notification read."""
    notification_id: str
    read_at: datetime
