"""
Lifecycle coordinator for offers.

Drives an offer through its status machine:

    pending --(terms update)--> negotiating
    pending|negotiating --(seeker accepts, both confirmed, terms complete)--> accepted
    accepted --(escrow captured)--> in_progress
    in_progress --(seeker confirms completion)--> completed
    accepted|in_progress --(either party cancels)--> cancellation_requested --> cancelled
    pending|negotiating --(either party rejects)--> rejected

Each operation is one transaction: validate, mutate through the negotiation
engine or directly, call the payment collaborator, commit, then publish events.
"""

import logging
from datetime import datetime, timedelta, time as dt_time
from decimal import Decimal
from typing import Any, Callable, List, Mapping, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from naafe.config import settings
from naafe.core.errors import (
    AgreementIncomplete,
    ConcurrentModification,
    Forbidden,
    InvalidState,
    NotFound,
    UpstreamPaymentFailure,
    ValidationFailed,
)
from naafe.models.job_request import JobRequest, JobRequestStatus
from naafe.models.negotiation_history import NegotiationHistoryEntry
from naafe.models.notification import NotificationType
from naafe.models.offer import Offer, OfferStatus, PaymentStatus
from naafe.services import negotiation_engine as engine
from naafe.services.notifications import OfferEvent, add_notification, publish_offer_event
from naafe.services.offer_store import find_offer_by_id, find_offers_by_job_request, mutate_offer, reload_offer
from naafe.services.payment_gateway import PaymentGateway, PaymentGatewayError, payment_gateway

logger = logging.getLogger(__name__)

FULL_REFUND = Decimal("100")


def scheduled_service_time(offer: Offer) -> Optional[datetime]:
    """Negotiated date and time combined; midnight if no time was agreed."""
    if offer.negotiated_date is None:
        return None
    at = dt_time(0, 0)
    if offer.negotiated_time:
        at = datetime.strptime(offer.negotiated_time, "%H:%M").time()
    return datetime.combine(offer.negotiated_date, at)


def refund_percentage_for(scheduled_at: Optional[datetime], now: datetime) -> Decimal:
    """
    Refund tier for a cancellation made at ``now``.

    At least FULL_REFUND_WINDOW_HOURS before the scheduled time (boundary
    included) the seeker gets everything back; later than that they get
    LATE_CANCELLATION_REFUND_PERCENT. No schedule means a full refund.
    """
    if scheduled_at is None:
        return FULL_REFUND
    window = timedelta(hours=float(settings.FULL_REFUND_WINDOW_HOURS))
    if scheduled_at - now >= window:
        return FULL_REFUND
    return Decimal(settings.LATE_CANCELLATION_REFUND_PERCENT)


def describe_gap(state: engine.AgreementState) -> str:
    parts = []
    if state.pending_confirmations:
        parts.append(f"waiting for confirmation from: {', '.join(state.pending_confirmations)}")
    if state.missing_fields:
        parts.append(f"missing terms: {', '.join(state.missing_fields)}")
    return "Cannot accept yet; " + "; ".join(parts)


class LifecycleCoordinator:
    """Validates and applies offer transitions with their side effects."""

    def __init__(
        self,
        gateway: Optional[PaymentGateway] = None,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.gateway = gateway or payment_gateway
        self.clock = clock

    # Reads

    async def get_offer(
        self,
        db: AsyncSession,
        offer_id: str,
        actor_id: str,
        is_admin: bool = False
    ) -> Offer:
        """
        Fetch an offer with its negotiation.

        Raises:
            NotFound: Offer does not exist
            Forbidden: Actor is not a party (admins may read any offer)
        """
        offer = await find_offer_by_id(db, offer_id)
        if not is_admin:
            engine.require_party(offer, actor_id)
        return offer

    async def get_negotiation_history(
        self,
        db: AsyncSession,
        offer_id: str,
        actor_id: str,
        is_admin: bool = False,
        limit: int = 100,
        offset: int = 0
    ) -> Tuple[List[NegotiationHistoryEntry], int]:
        """
        History entries, newest first.

        Returns:
            Tuple of (entries, total_count)
        """
        await self.get_offer(db, offer_id, actor_id, is_admin=is_admin)

        total_result = await db.execute(
            select(func.count()).select_from(NegotiationHistoryEntry)
            .where(NegotiationHistoryEntry.offer_id == offer_id)
        )
        total = total_result.scalar() or 0

        result = await db.execute(
            select(NegotiationHistoryEntry)
            .where(NegotiationHistoryEntry.offer_id == offer_id)
            .order_by(NegotiationHistoryEntry.sequence.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total

    # Negotiation

    async def update_terms(
        self,
        db: AsyncSession,
        offer_id: str,
        actor_id: str,
        proposed_terms: Mapping[str, Any],
        base_version: Optional[int] = None
    ) -> Offer:
        """
        Propose new values for any subset of the five terms.

        Raises:
            ConcurrentModification: base_version given and stale
        """
        changed = []
        async with mutate_offer(db, offer_id) as offer:
            if base_version is not None and base_version != offer.version:
                engine.require_party(offer, actor_id)
                raise ConcurrentModification(
                    "Offer changed since you loaded it; reload and retry",
                    current_version=offer.version
                )
            changed = engine.apply_terms_update(offer, proposed_terms, actor_id, now=self.clock())

        offer = await reload_offer(db, offer_id)
        if changed:
            logger.info(
                f"Offer {offer_id}: {actor_id} updated terms "
                f"{[e.field for e in changed]}; confirmations cleared"
            )
            await publish_offer_event(OfferEvent.NEGOTIATION_UPDATE, offer)
        else:
            logger.info(f"Offer {offer_id}: terms update from {actor_id} changed nothing")
        return offer

    async def confirm_terms(self, db: AsyncSession, offer_id: str, actor_id: str) -> Offer:
        """Record the actor's confirmation of the current terms."""
        reached = False
        async with mutate_offer(db, offer_id) as offer:
            was_acceptable = engine.agreement_state(offer).can_accept
            engine.confirm_terms(offer, actor_id, now=self.clock())
            reached = engine.agreement_state(offer).can_accept and not was_acceptable
            if reached:
                add_notification(db, offer.seeker_id, NotificationType.AGREEMENT_REACHED, offer.id)
                add_notification(db, offer.provider_id, NotificationType.AGREEMENT_REACHED, offer.id)

        offer = await reload_offer(db, offer_id)
        logger.info(
            f"Offer {offer_id}: {offer.role_of(actor_id)} confirmed "
            f"(seeker={offer.seeker_confirmed}, provider={offer.provider_confirmed})"
        )
        await publish_offer_event(OfferEvent.NEGOTIATION_UPDATE, offer)
        if reached:
            await publish_offer_event(OfferEvent.AGREEMENT_REACHED, offer)
        return offer

    async def reset_confirmations(self, db: AsyncSession, offer_id: str, actor_id: str) -> Offer:
        """Clear both confirmations so the terms can be discussed again."""
        async with mutate_offer(db, offer_id) as offer:
            engine.reset_confirmations(offer, actor_id, now=self.clock())

        offer = await reload_offer(db, offer_id)
        logger.info(f"Offer {offer_id}: confirmations reset by {actor_id}")
        await publish_offer_event(OfferEvent.NEGOTIATION_UPDATE, offer)
        return offer

    # Status transitions

    async def accept_offer(self, db: AsyncSession, offer_id: str, actor_id: str) -> Offer:
        """
        Seeker accepts an agreed offer.

        Accepting an already accepted offer succeeds without side effects.
        All other open offers on the job request are rejected.

        Raises:
            Forbidden: Actor is not the seeker
            InvalidState: Offer or job request is past the point of acceptance
            AgreementIncomplete: Confirmations or terms missing
        """
        rejected: List[Offer] = []
        already_accepted = False

        async with mutate_offer(db, offer_id) as offer:
            if offer.seeker_id != actor_id:
                raise Forbidden("Only the seeker can accept this offer")

            if offer.status == OfferStatus.ACCEPTED:
                already_accepted = True
            else:
                if offer.status not in OfferStatus.NEGOTIABLE:
                    raise InvalidState(f"Cannot accept an offer that is {offer.status}", status=offer.status)

                state = engine.agreement_state(offer)
                if not state.can_accept:
                    logger.warning(f"Offer {offer_id}: accept refused, {describe_gap(state)}")
                    raise AgreementIncomplete(
                        describe_gap(state),
                        missing_fields=state.missing_fields,
                        pending_confirmations=state.pending_confirmations,
                    )

                job_request = await self._get_job_request(db, offer.job_request_id)
                if job_request.status != JobRequestStatus.OPEN:
                    raise InvalidState(
                        f"Job request is already {job_request.status}",
                        status=offer.status,
                        job_request_status=job_request.status
                    )

                offer.status = OfferStatus.ACCEPTED
                job_request.status = JobRequestStatus.ASSIGNED
                job_request.assigned_provider_id = offer.provider_id

                rejected = await find_offers_by_job_request(
                    db,
                    offer.job_request_id,
                    statuses=OfferStatus.NEGOTIABLE,
                    exclude_offer_id=offer.id,
                    for_update=True
                )
                for sibling in rejected:
                    sibling.status = OfferStatus.REJECTED
                    add_notification(db, sibling.provider_id, NotificationType.OFFER_REJECTED, sibling.id)

                add_notification(db, offer.provider_id, NotificationType.OFFER_ACCEPTED, offer.id)

        offer = await reload_offer(db, offer_id)
        if already_accepted:
            logger.info(f"Offer {offer_id} is already accepted, returning as is")
            return offer

        logger.info(
            f"Offer {offer_id}: pending -> accepted by seeker {actor_id}; "
            f"rejected {len(rejected)} competing offers"
        )
        await publish_offer_event(OfferEvent.OFFER_ACCEPTED, offer)
        for sibling in rejected:
            await publish_offer_event(OfferEvent.OFFER_REJECTED, sibling, reason="another_offer_accepted")
        return offer

    async def reject_offer(
        self,
        db: AsyncSession,
        offer_id: str,
        actor_id: str,
        reason: Optional[str] = None
    ) -> Offer:
        """Either party ends the negotiation without agreement."""
        async with mutate_offer(db, offer_id) as offer:
            role = engine.require_party(offer, actor_id)
            if offer.status not in OfferStatus.NEGOTIABLE:
                raise InvalidState(f"Cannot reject an offer that is {offer.status}", status=offer.status)

            previous = offer.status
            offer.status = OfferStatus.REJECTED
            if role == "seeker":
                add_notification(db, offer.provider_id, NotificationType.OFFER_REJECTED, offer.id)
            else:
                add_notification(
                    db, offer.seeker_id, NotificationType.OFFER_REJECTED, offer.id,
                    message="The provider withdrew their offer"
                )

        offer = await reload_offer(db, offer_id)
        logger.info(f"Offer {offer_id}: {previous} -> rejected by {role} {actor_id}")
        await publish_offer_event(OfferEvent.OFFER_REJECTED, offer, rejected_by=role, reason=reason)
        return offer

    async def fund_escrow(self, db: AsyncSession, offer_id: str, actor_id: str) -> Offer:
        """
        Seeker pays the negotiated price into escrow.

        If the gateway captures synchronously the offer moves to in_progress
        in the same transaction; otherwise it waits for capture_payment.

        Raises:
            UpstreamPaymentFailure: Gateway refused the charge (offer unchanged)
        """
        captured = False
        async with mutate_offer(db, offer_id) as offer:
            if offer.seeker_id != actor_id:
                raise Forbidden("Only the seeker can pay for this offer")
            if offer.status != OfferStatus.ACCEPTED:
                raise InvalidState(f"Can only fund escrow for accepted offers, not {offer.status}", status=offer.status)
            if offer.payment_status != PaymentStatus.NOT_PAID:
                raise InvalidState(
                    f"Escrow already {offer.payment_status}",
                    status=offer.status,
                    payment_status=offer.payment_status
                )

            amount = offer.negotiated_price
            try:
                charge = await self.gateway.create_escrow_charge(db, offer.id, amount, offer.currency)
            except PaymentGatewayError as e:
                logger.error(f"Offer {offer_id}: escrow charge failed: {e}")
                raise UpstreamPaymentFailure("Payment provider rejected the escrow charge")

            offer.payment_ref = charge.payment_ref
            offer.payment_amount = amount
            offer.payment_status = PaymentStatus.PENDING
            if charge.captured:
                await self._apply_capture(db, offer)
                captured = True

        offer = await reload_offer(db, offer_id)
        logger.info(f"Offer {offer_id}: escrow charge {offer.payment_ref} created, captured={captured}")
        if captured:
            await publish_offer_event(OfferEvent.PAYMENT_COMPLETED, offer, payment_ref=offer.payment_ref)
        return offer

    async def capture_payment(self, db: AsyncSession, offer_id: str, payment_ref: str) -> Offer:
        """
        Payment collaborator callback: escrow for the offer is funded.

        A repeated callback for the same payment_ref is a no-op.
        """
        duplicate = False
        async with mutate_offer(db, offer_id) as offer:
            if offer.status == OfferStatus.IN_PROGRESS and offer.payment_ref == payment_ref:
                duplicate = True
            else:
                if offer.status != OfferStatus.ACCEPTED:
                    raise InvalidState(
                        f"Can only capture payment for accepted offers, not {offer.status}",
                        status=offer.status
                    )
                if offer.payment_ref and offer.payment_ref != payment_ref:
                    raise ValidationFailed("Payment reference does not match this offer's escrow charge")

                offer.payment_ref = payment_ref
                if offer.payment_amount is None:
                    offer.payment_amount = offer.negotiated_price
                await self._apply_capture(db, offer)

        offer = await reload_offer(db, offer_id)
        if duplicate:
            logger.info(f"Offer {offer_id}: duplicate capture for {payment_ref} ignored")
            return offer

        logger.info(f"Offer {offer_id}: accepted -> in_progress, escrow {payment_ref} captured")
        await publish_offer_event(OfferEvent.PAYMENT_COMPLETED, offer, payment_ref=payment_ref)
        return offer

    async def complete_service(self, db: AsyncSession, offer_id: str, actor_id: str) -> Offer:
        """
        Seeker confirms the service was delivered; escrow is released to the provider.

        Raises:
            Forbidden: Actor is not the seeker
            InvalidState: Offer not in progress or escrow not funded
            UpstreamPaymentFailure: Release failed (offer unchanged)
        """
        async with mutate_offer(db, offer_id) as offer:
            if offer.seeker_id != actor_id:
                raise Forbidden("Only the seeker can mark the service as completed")
            if offer.status != OfferStatus.IN_PROGRESS:
                raise InvalidState(
                    f"Only in-progress services can be completed, offer is {offer.status}",
                    status=offer.status
                )
            if offer.payment_status != PaymentStatus.ESCROWED or not offer.payment_ref:
                raise InvalidState(
                    "Payment must be in escrow to release funds",
                    status=offer.status,
                    payment_status=offer.payment_status
                )

            try:
                await self.gateway.release_funds(db, offer.payment_ref)
            except PaymentGatewayError as e:
                logger.error(f"Offer {offer_id}: releasing {offer.payment_ref} failed: {e}")
                raise UpstreamPaymentFailure("Payment provider failed to release escrowed funds")

            now = self.clock()
            offer.status = OfferStatus.COMPLETED
            offer.payment_status = PaymentStatus.RELEASED
            offer.released_at = now

            job_request = await self._get_job_request(db, offer.job_request_id)
            job_request.status = JobRequestStatus.COMPLETED
            job_request.completed_at = now

            add_notification(db, offer.provider_id, NotificationType.PAYMENT_RELEASED, offer.id)

        offer = await reload_offer(db, offer_id)
        logger.info(f"Offer {offer_id}: in_progress -> completed, escrow {offer.payment_ref} released")
        await publish_offer_event(OfferEvent.SERVICE_COMPLETED, offer)
        return offer

    async def request_cancellation(
        self,
        db: AsyncSession,
        offer_id: str,
        actor_id: str,
        reason: Optional[str] = None
    ) -> Offer:
        """
        Cancel an accepted or in-progress service.

        The request is executed immediately: the offer passes through
        cancellation_requested and ends cancelled in the same transaction,
        with the refund tier applied to any escrowed payment.

        Raises:
            Forbidden: Actor is not a party
            InvalidState: Offer is not accepted or in progress
            UpstreamPaymentFailure: Refund failed (offer unchanged)
        """
        async with mutate_offer(db, offer_id) as offer:
            role = engine.require_party(offer, actor_id)
            if offer.status not in OfferStatus.CANCELLABLE:
                raise InvalidState(
                    f"Only accepted or in-progress services can be cancelled, offer is {offer.status}",
                    status=offer.status
                )

            now = self.clock()
            previous = offer.status
            percentage = refund_percentage_for(scheduled_service_time(offer), now)

            offer.status = OfferStatus.CANCELLATION_REQUESTED
            offer.cancellation_requested_by = actor_id
            offer.cancellation_requested_at = now
            offer.cancellation_reason = reason or "No reason provided"
            offer.refund_percentage = percentage

            if offer.payment_status == PaymentStatus.ESCROWED and offer.payment_ref:
                try:
                    refund = await self.gateway.refund(db, offer.payment_ref, percentage)
                except PaymentGatewayError as e:
                    logger.error(f"Offer {offer_id}: refund of {offer.payment_ref} failed: {e}")
                    raise UpstreamPaymentFailure("Payment provider failed to process the refund")
                offer.refund_amount = refund.refund_amount
                offer.payment_status = (
                    PaymentStatus.REFUNDED if refund.provider_amount == 0 else PaymentStatus.PARTIAL_REFUND
                )
            else:
                offer.refund_amount = Decimal("0")

            offer.status = OfferStatus.CANCELLED

            job_request = await self._get_job_request(db, offer.job_request_id)
            job_request.status = JobRequestStatus.CANCELLED

            for user_id in (offer.seeker_id, offer.provider_id):
                add_notification(
                    db, user_id, NotificationType.SERVICE_CANCELLED, offer.id,
                    message=f"The service was cancelled; refund to the seeker: {percentage}%"
                )

        offer = await reload_offer(db, offer_id)
        logger.info(
            f"Offer {offer_id}: {previous} -> cancelled by {role} {actor_id}, "
            f"refund {offer.refund_percentage}%"
        )
        await publish_offer_event(
            OfferEvent.SERVICE_CANCELLED,
            offer,
            refund_percentage=str(offer.refund_percentage),
            cancelled_by=role
        )
        return offer

    # Helpers

    async def _get_job_request(self, db: AsyncSession, job_request_id: str) -> JobRequest:
        result = await db.execute(
            select(JobRequest).where(JobRequest.id == job_request_id).with_for_update()
        )
        job_request = result.scalar_one_or_none()
        if not job_request:
            raise NotFound("Job request not found", resource="job_request")
        return job_request

    async def _apply_capture(self, db: AsyncSession, offer: Offer) -> None:
        offer.status = OfferStatus.IN_PROGRESS
        offer.payment_status = PaymentStatus.ESCROWED
        offer.escrowed_at = self.clock()

        job_request = await self._get_job_request(db, offer.job_request_id)
        job_request.status = JobRequestStatus.IN_PROGRESS

        add_notification(db, offer.provider_id, NotificationType.PAYMENT_ESCROWED, offer.id)


# Singleton
lifecycle_coordinator = LifecycleCoordinator()


def get_lifecycle_coordinator() -> LifecycleCoordinator:
    """Dependency returning the coordinator used by the API."""
    return lifecycle_coordinator
