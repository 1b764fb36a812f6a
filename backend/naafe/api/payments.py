"""Payment collaborator callbacks."""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from naafe.api.deps import get_db, get_coordinator
from naafe.config import settings
from naafe.schemas.offer import EscrowCapturedCallback, OfferResponse
from naafe.services.lifecycle import LifecycleCoordinator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/payments", tags=["payments"])


def verify_webhook_secret(
    x_webhook_secret: Optional[str] = Header(None, description="Shared secret of the payment provider")
) -> None:
    """Reject callbacks without the configured shared secret."""
    expected = settings.PAYMENT_WEBHOOK_SECRET
    if not expected:
        return
    if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, expected):
        logger.warning("Rejected payment callback with bad webhook secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "code": "INVALID_WEBHOOK_SECRET",
                "message": "Invalid webhook secret"
            }
        )


@router.post(
    "/escrow-captured",
    response_model=OfferResponse,
    dependencies=[Depends(verify_webhook_secret)]
)
async def escrow_captured(
    callback: EscrowCapturedCallback,
    db: AsyncSession = Depends(get_db),
    coordinator: LifecycleCoordinator = Depends(get_coordinator)
):
    """
    Escrow for an accepted offer is funded; the service moves to in progress.

    Retried callbacks with the same `payment_ref` are acknowledged without
    further changes.
    """
    offer = await coordinator.capture_payment(db, callback.offer_id, callback.payment_ref)
    return OfferResponse.from_offer(offer)
