"""Job request service."""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from naafe.config import settings
from naafe.core.errors import NotFound, Forbidden, ValidationFailed
from naafe.models.job_request import JobRequest, JobRequestStatus
from naafe.models.user import User, UserRole
from naafe.schemas.job_request import JobRequestCreate

logger = logging.getLogger(__name__)


async def create_job_request(db: AsyncSession, seeker: User, data: JobRequestCreate) -> JobRequest:
    """
    Post a new job request.

    Raises:
        Forbidden: If the user is not a seeker
        ValidationFailed: If the budget range or currency is invalid
    """
    if not seeker.has_role(UserRole.SEEKER):
        raise Forbidden("Only seekers can post job requests")

    if data.budget_min > data.budget_max:
        raise ValidationFailed("Minimum budget cannot exceed maximum budget", field="budget_min")

    currency = data.currency or settings.DEFAULT_CURRENCY
    if currency not in settings.SUPPORTED_CURRENCIES:
        raise ValidationFailed(f"Unsupported currency: {currency}", field="currency")

    job_request = JobRequest(
        seeker_id=seeker.id,
        title=data.title,
        description=data.description,
        budget_min=data.budget_min,
        budget_max=data.budget_max,
        currency=currency,
        deadline=data.deadline,
        status=JobRequestStatus.OPEN,
    )
    db.add(job_request)
    await db.commit()
    await db.refresh(job_request)

    logger.info(f"Seeker {seeker.id} posted job request {job_request.id}")
    return job_request


async def get_job_request(db: AsyncSession, job_request_id: str) -> JobRequest:
    """
    Raises:
        NotFound: If the job request does not exist
    """
    result = await db.execute(select(JobRequest).where(JobRequest.id == job_request_id))
    job_request = result.scalar_one_or_none()
    if not job_request:
        raise NotFound("Job request not found", resource="job_request")
    return job_request


async def list_job_requests(
    db: AsyncSession,
    status_filter: Optional[str] = None,
    seeker_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0
) -> List[JobRequest]:
    """List job requests, newest first."""
    query = select(JobRequest)
    if status_filter:
        query = query.where(JobRequest.status == status_filter)
    if seeker_id:
        query = query.where(JobRequest.seeker_id == seeker_id)

    query = query.order_by(JobRequest.created_at.desc()).limit(limit).offset(offset)
    result = await db.execute(query)
    return list(result.scalars().all())
