"""
Offer record store: the only code that reads and writes offer rows.

Mutations go through ``mutate_offer``, a read-modify-write block that
serializes writers per offer id, commits once on success and rolls back on
any error so the offer is never left half-updated.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from naafe.core.errors import NotFound, ConcurrentModification
from naafe.core.locks import offer_locks
from naafe.models.offer import Offer

logger = logging.getLogger(__name__)


async def find_offer_by_id(
    db: AsyncSession,
    offer_id: str,
    for_update: bool = False
) -> Offer:
    """
    Load an offer with its negotiation history.

    Args:
        db: Database session
        offer_id: Offer ID
        for_update: Lock the row until the transaction ends

    Raises:
        NotFound: If the offer does not exist
    """
    query = (
        select(Offer)
        .options(selectinload(Offer.history))
        .where(Offer.id == offer_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update()

    result = await db.execute(query)
    offer = result.scalar_one_or_none()

    if not offer:
        raise NotFound("Offer not found", resource="offer")

    return offer


async def find_offers_by_job_request(
    db: AsyncSession,
    job_request_id: str,
    statuses: Optional[Iterable[str]] = None,
    exclude_offer_id: Optional[str] = None,
    for_update: bool = False
) -> List[Offer]:
    """List offers on a job request, newest first."""
    query = (
        select(Offer)
        .options(selectinload(Offer.history))
        .where(Offer.job_request_id == job_request_id)
    )
    if statuses is not None:
        query = query.where(Offer.status.in_(list(statuses)))
    if exclude_offer_id:
        query = query.where(Offer.id != exclude_offer_id)
    if for_update:
        query = query.with_for_update()

    query = query.order_by(Offer.created_at.desc())
    result = await db.execute(query)
    return list(result.scalars().all())


async def save_offer(db: AsyncSession, offer: Offer) -> Offer:
    """
    Persist an offer and everything pending in the session.

    Raises:
        ConcurrentModification: If the row changed since it was read
    """
    db.add(offer)
    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        logger.warning(f"Stale write rejected for offer {offer.id}")
        raise ConcurrentModification("Offer was modified concurrently; reload and retry")
    except IntegrityError:
        await db.rollback()
        logger.warning(f"Conflicting history write rejected for offer {offer.id}")
        raise ConcurrentModification("Offer was modified concurrently; reload and retry")
    return offer


@asynccontextmanager
async def mutate_offer(db: AsyncSession, offer_id: str) -> AsyncIterator[Offer]:
    """
    Serialized read-modify-write of one offer.

    Usage:
        async with mutate_offer(db, offer_id) as offer:
            offer.status = "accepted"

    The block's changes (and anything else added to the session inside it)
    are committed together when the block exits normally.
    """
    async with offer_locks.hold(offer_id):
        try:
            offer = await find_offer_by_id(db, offer_id, for_update=True)
            yield offer
        except Exception:
            await db.rollback()
            raise
        await save_offer(db, offer)


async def reload_offer(db: AsyncSession, offer_id: str) -> Offer:
    """Fresh copy of an offer after a committed mutation."""
    return await find_offer_by_id(db, offer_id)
