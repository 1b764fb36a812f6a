"""Offer service: submitting, listing and editing offers before negotiation."""

import logging
from typing import List, Optional

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from naafe.core.errors import Forbidden, InvalidState, ValidationFailed
from naafe.models.job_request import JobRequest, JobRequestStatus
from naafe.models.notification import NotificationType
from naafe.models.offer import Offer, OfferStatus
from naafe.models.user import User, UserRole
from naafe.schemas.offer import OfferCreate, OfferUpdate
from naafe.services.job_request_service import get_job_request
from naafe.services.notifications import OfferEvent, add_notification, publish_offer_event
from naafe.services.offer_store import find_offers_by_job_request, mutate_offer, reload_offer

logger = logging.getLogger(__name__)

# Statuses that count as a provider's live offer on a job request
ACTIVE_STATUSES = (
    OfferStatus.PENDING,
    OfferStatus.NEGOTIATING,
    OfferStatus.ACCEPTED,
    OfferStatus.IN_PROGRESS,
    OfferStatus.CANCELLATION_REQUESTED,
)


def _check_price_in_budget(job_request: JobRequest, price) -> None:
    if price < job_request.budget_min or price > job_request.budget_max:
        raise ValidationFailed(
            "Price must be within the job request budget range",
            field="price",
            budget_min=str(job_request.budget_min),
            budget_max=str(job_request.budget_max)
        )


async def create_offer(
    db: AsyncSession,
    provider: User,
    job_request_id: str,
    offer_data: OfferCreate
) -> Offer:
    """
    Provider submits an offer on an open job request.

    Raises:
        NotFound: Job request does not exist
        Forbidden: User is not a provider, or owns the job request
        InvalidState: Job request is no longer open
        ValidationFailed: Duplicate offer or price outside the budget
    """
    if not provider.has_role(UserRole.PROVIDER):
        raise Forbidden("Only providers can make offers")

    job_request = await get_job_request(db, job_request_id)
    if job_request.seeker_id == provider.id:
        raise Forbidden("You cannot make an offer on your own job request")
    if job_request.status != JobRequestStatus.OPEN:
        raise InvalidState(
            "Can only make offers on open job requests",
            job_request_status=job_request.status
        )

    result = await db.execute(
        select(Offer.id).where(
            Offer.job_request_id == job_request_id,
            Offer.provider_id == provider.id,
            Offer.status.in_(ACTIVE_STATUSES)
        )
    )
    if result.first():
        raise ValidationFailed("Provider already made an offer on this job", field="provider_id")

    _check_price_in_budget(job_request, offer_data.price)

    offer = Offer(
        job_request_id=job_request.id,
        seeker_id=job_request.seeker_id,
        provider_id=provider.id,
        proposed_price=offer_data.price,
        currency=job_request.currency,
        message=offer_data.message,
        estimated_time_days=offer_data.estimated_time_days,
        available_dates=[d.isoformat() for d in offer_data.available_dates],
        time_preferences=list(offer_data.time_preferences),
        status=OfferStatus.PENDING,
        seeker_confirmed=False,
        provider_confirmed=False,
    )
    db.add(offer)
    await db.flush()
    add_notification(db, job_request.seeker_id, NotificationType.OFFER_RECEIVED, offer.id)
    await db.commit()

    offer = await reload_offer(db, offer.id)
    logger.info(f"Provider {provider.id} made offer {offer.id} on job request {job_request_id}")
    await publish_offer_event(OfferEvent.OFFER_CREATED, offer)
    return offer


async def update_offer(
    db: AsyncSession,
    offer_id: str,
    provider_id: str,
    update_data: OfferUpdate
) -> Offer:
    """
    Provider edits the original proposal while the offer is still pending.

    Raises:
        Forbidden: Actor is not the offer's provider
        InvalidState: Offer is no longer pending
    """
    async with mutate_offer(db, offer_id) as offer:
        if offer.provider_id != provider_id:
            raise Forbidden("Only the provider can edit this offer")
        if offer.status != OfferStatus.PENDING:
            raise InvalidState("Can only update pending offers", status=offer.status)

        updates = update_data.model_dump(exclude_unset=True)
        if "price" in updates and updates["price"] is not None:
            job_request = await get_job_request(db, offer.job_request_id)
            _check_price_in_budget(job_request, updates["price"])
            offer.proposed_price = updates["price"]
        if "message" in updates:
            offer.message = updates["message"]
        if updates.get("estimated_time_days") is not None:
            offer.estimated_time_days = updates["estimated_time_days"]
        if updates.get("available_dates") is not None:
            offer.available_dates = [d.isoformat() for d in update_data.available_dates]
        if updates.get("time_preferences") is not None:
            offer.time_preferences = list(update_data.time_preferences)

    logger.info(f"Provider {provider_id} updated proposal on offer {offer_id}")
    return await reload_offer(db, offer_id)


async def list_offers(
    db: AsyncSession,
    user: User,
    status_filter: Optional[str] = None,
    job_request_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0
) -> List[Offer]:
    """
    Offers visible to a user: their own as provider, those on their job
    requests as seeker, or everything for admins.
    """
    query = select(Offer).options(selectinload(Offer.history))

    if not user.is_admin:
        query = query.where(or_(Offer.provider_id == user.id, Offer.seeker_id == user.id))
    if status_filter:
        query = query.where(Offer.status == status_filter)
    if job_request_id:
        query = query.where(Offer.job_request_id == job_request_id)

    query = query.order_by(Offer.created_at.desc()).limit(limit).offset(offset)
    result = await db.execute(query)
    return list(result.scalars().all())


async def list_offers_for_job_request(
    db: AsyncSession,
    job_request_id: str,
    user: User,
    status_filter: Optional[str] = None
) -> List[Offer]:
    """
    All offers on a job request, for its seeker.

    Raises:
        NotFound: Job request does not exist
        Forbidden: User does not own the job request
    """
    job_request = await get_job_request(db, job_request_id)
    if job_request.seeker_id != user.id and not user.is_admin:
        raise Forbidden("Only the job request owner can list its offers")

    statuses = [status_filter] if status_filter else None
    return await find_offers_by_job_request(db, job_request_id, statuses=statuses)
