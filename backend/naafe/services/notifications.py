"""Notification collaborator: real-time offer events and in-app notifications."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, and_, func
from sqlalchemy.ext.asyncio import AsyncSession

from naafe.core.errors import NotFound, Forbidden
from naafe.core.events import event_bus
from naafe.models.notification import Notification, NotificationType
from naafe.models.offer import Offer

logger = logging.getLogger(__name__)


class OfferEvent:
    """Event names published on the bus, keyed by offer id."""
    NEGOTIATION_UPDATE = "negotiation:update"
    AGREEMENT_REACHED = "agreement:reached"
    OFFER_CREATED = "offer:created"
    OFFER_ACCEPTED = "offer:accepted"
    OFFER_REJECTED = "offer:rejected"
    PAYMENT_COMPLETED = "payment:completed"
    SERVICE_COMPLETED = "service:completed"
    SERVICE_CANCELLED = "service:cancelled"


MESSAGES = {
    NotificationType.OFFER_RECEIVED: "You received a new offer on your request",
    NotificationType.OFFER_ACCEPTED: "Your offer was accepted and is awaiting escrow payment",
    NotificationType.OFFER_REJECTED: "Your offer was rejected",
    NotificationType.AGREEMENT_REACHED: "Both parties confirmed all terms; the offer can now be accepted",
    NotificationType.PAYMENT_ESCROWED: "Payment is held in escrow; the service can start",
    NotificationType.PAYMENT_RELEASED: "The service was completed and the payment released",
    NotificationType.SERVICE_CANCELLED: "The service was cancelled",
}


def add_notification(
    db: AsyncSession,
    user_id: str,
    notification_type: str,
    offer_id: Optional[str] = None,
    message: Optional[str] = None
) -> Notification:
    """
    Stage an in-app notification in the current transaction.

    The row is committed together with the transition that caused it.
    """
    notification = Notification(
        user_id=user_id,
        offer_id=offer_id,
        type=notification_type,
        message=message or MESSAGES.get(notification_type, notification_type),
    )
    db.add(notification)
    return notification


def offer_event_payload(offer: Offer, **extra: Any) -> Dict[str, Any]:
    """Minimal payload; clients re-fetch the offer on receipt."""
    payload = {
        "offer_id": offer.id,
        "job_request_id": offer.job_request_id,
        "status": offer.status,
        "version": offer.version,
    }
    payload.update(extra)
    return payload


async def publish_offer_event(event_type: str, offer: Offer, **extra: Any) -> None:
    """
    Notify both parties of an offer that something changed.

    Delivery problems are logged and never propagate to the caller.
    """
    try:
        await event_bus.publish(
            event_type,
            offer_event_payload(offer, **extra),
            audience=[offer.seeker_id, offer.provider_id]
        )
    except Exception as e:
        logger.error(f"Failed to publish {event_type} for offer {offer.id}: {e}", exc_info=True)


async def list_notifications(
    db: AsyncSession,
    user_id: str,
    unread_only: bool = False,
    offer_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0
) -> tuple[List[Notification], int, int]:
    """
    Get notifications for a user, newest first.

    Returns:
        Tuple of (notifications, total_count, unread_count)
    """
    filters = [Notification.user_id == user_id]
    if unread_only:
        filters.append(Notification.read_at.is_(None))
    if offer_id:
        filters.append(Notification.offer_id == offer_id)

    total_result = await db.execute(select(func.count()).select_from(Notification).where(and_(*filters)))
    total = total_result.scalar() or 0

    unread_result = await db.execute(
        select(func.count()).select_from(Notification).where(
            and_(Notification.user_id == user_id, Notification.read_at.is_(None))
        )
    )
    unread_count = unread_result.scalar() or 0

    result = await db.execute(
        select(Notification)
        .where(and_(*filters))
        .order_by(Notification.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total, unread_count


async def mark_as_read(db: AsyncSession, notification_id: str, user_id: str) -> Notification:
    """
    Mark a notification as read.

    Raises:
        NotFound: If the notification does not exist
        Forbidden: If it belongs to another user
    """
    result = await db.execute(select(Notification).where(Notification.id == notification_id))
    notification = result.scalar_one_or_none()

    if not notification:
        raise NotFound("Notification not found", resource="notification")
    if notification.user_id != user_id:
        raise Forbidden("Not authorized to mark this notification as read")

    if notification.read_at is None:
        notification.read_at = datetime.utcnow()
        await db.commit()

    return notification
