"""Job requests API router."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from naafe.api.deps import get_db, get_current_user
from naafe.models.user import User
from naafe.schemas.job_request import JobRequestCreate, JobRequestResponse
from naafe.schemas.offer import OfferCreate, OfferResponse
from naafe.services.job_request_service import create_job_request, get_job_request, list_job_requests
from naafe.services.offer_service import create_offer, list_offers_for_job_request

router = APIRouter()


@router.post("", response_model=JobRequestResponse, status_code=status.HTTP_201_CREATED)
async def post_job_request(
    data: JobRequestCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Post a job request (seekers only)."""
    return await create_job_request(db, current_user, data)


@router.get("", response_model=List[JobRequestResponse])
async def browse_job_requests(
    status_filter: Optional[str] = Query(None, alias="status"),
    mine: bool = Query(False, description="Only job requests you posted"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Browse job requests, newest first."""
    return await list_job_requests(
        db,
        status_filter=status_filter,
        seeker_id=current_user.id if mine else None,
        limit=limit,
        offset=offset
    )


@router.get("/{job_request_id}", response_model=JobRequestResponse)
async def get_job_request_details(
    job_request_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get a job request."""
    return await get_job_request(db, job_request_id)


@router.post(
    "/{job_request_id}/offers",
    response_model=OfferResponse,
    status_code=status.HTTP_201_CREATED
)
async def make_offer(
    job_request_id: str,
    offer_data: OfferCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Make an offer on an open job request (providers only).

    Example:
        ```json
        {
          "price": 450,
          "message": "I can paint both rooms this weekend",
          "estimated_time_days": 2,
          "available_dates": ["2024-06-01", "2024-06-02"],
          "time_preferences": ["morning"]
        }
        ```
    """
    offer = await create_offer(db, current_user, job_request_id, offer_data)
    return OfferResponse.from_offer(offer)


@router.get("/{job_request_id}/offers", response_model=List[OfferResponse])
async def list_job_request_offers(
    job_request_id: str,
    status_filter: Optional[str] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List offers on one of your job requests."""
    offers = await list_offers_for_job_request(db, job_request_id, current_user, status_filter)
    return [OfferResponse.from_offer(o, include_history=False) for o in offers]
