"""
Offer endpoints: negotiation, acceptance and the service lifecycle.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from naafe.api.deps import get_db, get_current_user, get_coordinator
from naafe.models.user import User
from naafe.schemas.offer import (
    CancellationRequest,
    NegotiationHistoryEntryResponse,
    NegotiationHistoryList,
    NegotiationTermsUpdate,
    OfferReject,
    OfferResponse,
    OfferUpdate,
)
from naafe.services.lifecycle import LifecycleCoordinator
from naafe.services.offer_service import list_offers, update_offer

router = APIRouter(prefix="/offers", tags=["offers"])


@router.get("", response_model=List[OfferResponse])
async def list_my_offers(
    status_filter: Optional[str] = Query(None, alias="status"),
    job_request_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    List offers you are part of (as provider or as seeker).
    """
    offers = await list_offers(
        db,
        current_user,
        status_filter=status_filter,
        job_request_id=job_request_id,
        limit=limit,
        offset=offset
    )
    return [OfferResponse.from_offer(o, include_history=False) for o in offers]


@router.get("/{offer_id}", response_model=OfferResponse)
async def get_offer(
    offer_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    coordinator: LifecycleCoordinator = Depends(get_coordinator)
):
    """
    Get an offer with its negotiation state and history.

    Only the seeker and provider (or an admin) can view it.
    """
    offer = await coordinator.get_offer(db, offer_id, current_user.id, is_admin=current_user.is_admin)
    return OfferResponse.from_offer(offer)


@router.patch("/{offer_id}", response_model=OfferResponse)
async def edit_offer(
    offer_id: str,
    update_data: OfferUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Edit your original proposal while the offer is still pending."""
    offer = await update_offer(db, offer_id, current_user.id, update_data)
    return OfferResponse.from_offer(offer)


@router.patch("/{offer_id}/negotiation", response_model=OfferResponse)
async def update_negotiation_terms(
    offer_id: str,
    request: NegotiationTermsUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    coordinator: LifecycleCoordinator = Depends(get_coordinator)
):
    """
    Propose terms. Any change clears both confirmations.

    Example:
        ```json
        {"price": 500, "date": "2024-06-01", "time": "10:00", "base_version": 3}
        ```
    """
    offer = await coordinator.update_terms(
        db,
        offer_id,
        current_user.id,
        request.proposed_terms(),
        base_version=request.base_version
    )
    return OfferResponse.from_offer(offer)


@router.post("/{offer_id}/confirm-negotiation", response_model=OfferResponse)
async def confirm_negotiation(
    offer_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    coordinator: LifecycleCoordinator = Depends(get_coordinator)
):
    """Confirm the current terms on your side."""
    offer = await coordinator.confirm_terms(db, offer_id, current_user.id)
    return OfferResponse.from_offer(offer)


@router.post("/{offer_id}/reset-confirmation", response_model=OfferResponse)
async def reset_confirmation(
    offer_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    coordinator: LifecycleCoordinator = Depends(get_coordinator)
):
    """Clear both parties' confirmations to reopen discussion."""
    offer = await coordinator.reset_confirmations(db, offer_id, current_user.id)
    return OfferResponse.from_offer(offer)


@router.get("/{offer_id}/negotiation-history", response_model=NegotiationHistoryList)
async def get_negotiation_history(
    offer_id: str,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    coordinator: LifecycleCoordinator = Depends(get_coordinator)
):
    """Negotiation audit log, newest first."""
    entries, total = await coordinator.get_negotiation_history(
        db,
        offer_id,
        current_user.id,
        is_admin=current_user.is_admin,
        limit=limit,
        offset=offset
    )
    return NegotiationHistoryList(
        entries=[NegotiationHistoryEntryResponse.model_validate(e) for e in entries],
        total=total
    )


@router.post("/{offer_id}/accept", response_model=OfferResponse)
async def accept_offer(
    offer_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    coordinator: LifecycleCoordinator = Depends(get_coordinator)
):
    """
    Accept an offer once both parties confirmed complete terms (seeker only).

    Every other open offer on the job request is rejected.
    """
    offer = await coordinator.accept_offer(db, offer_id, current_user.id)
    return OfferResponse.from_offer(offer)


@router.post("/{offer_id}/reject", response_model=OfferResponse)
async def reject_offer(
    offer_id: str,
    request: Optional[OfferReject] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    coordinator: LifecycleCoordinator = Depends(get_coordinator)
):
    """End a pending or negotiating offer without agreement."""
    reason = request.reason if request else None
    offer = await coordinator.reject_offer(db, offer_id, current_user.id, reason=reason)
    return OfferResponse.from_offer(offer)


@router.post("/{offer_id}/escrow", response_model=OfferResponse)
async def fund_escrow(
    offer_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    coordinator: LifecycleCoordinator = Depends(get_coordinator)
):
    """Pay the negotiated price into escrow (seeker only)."""
    offer = await coordinator.fund_escrow(db, offer_id, current_user.id)
    return OfferResponse.from_offer(offer)


@router.post("/{offer_id}/complete", response_model=OfferResponse)
async def complete_service(
    offer_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    coordinator: LifecycleCoordinator = Depends(get_coordinator)
):
    """Confirm the service was delivered and release escrow (seeker only)."""
    offer = await coordinator.complete_service(db, offer_id, current_user.id)
    return OfferResponse.from_offer(offer)


@router.post("/{offer_id}/cancel-request", response_model=OfferResponse)
async def request_cancellation(
    offer_id: str,
    request: Optional[CancellationRequest] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    coordinator: LifecycleCoordinator = Depends(get_coordinator)
):
    """
    Cancel an accepted or in-progress service.

    Cancelling at least 12 hours before the agreed date and time refunds the
    seeker in full; later cancellations refund 70%.
    """
    reason = request.reason if request else None
    offer = await coordinator.request_cancellation(db, offer_id, current_user.id, reason=reason)
    return OfferResponse.from_offer(offer)
