"""Payment collaborator: escrow charge, release and refund.

The coordinator only talks to the ``PaymentGateway`` interface. The default
``LedgerEscrowGateway`` keeps escrow as ``Payment`` rows in the same database
transaction as the offer, so a failed transition leaves no payment behind.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from naafe.models.payment import Payment, EscrowStatus

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


class PaymentGatewayError(Exception):
    """Raised when the payment provider rejects an operation."""


@dataclass(frozen=True)
class EscrowCharge:
    """Result of creating an escrow charge."""
    payment_ref: str
    captured: bool


@dataclass(frozen=True)
class RefundResult:
    """Split of escrowed funds after a refund."""
    payment_ref: str
    refund_amount: Decimal
    provider_amount: Decimal


def split_refund(amount: Decimal, percentage: Decimal) -> tuple[Decimal, Decimal]:
    """
    Split an escrowed amount into (refund to seeker, remainder to provider).

    Args:
        amount: Escrowed amount
        percentage: Refund percentage, 0-100

    Returns:
        Tuple of (refund_amount, provider_amount) rounded to cents
    """
    if percentage < 0 or percentage > 100:
        raise ValueError("Refund percentage must be between 0 and 100")
    refund = (amount * percentage / Decimal(100)).quantize(CENTS, rounding=ROUND_HALF_UP)
    return refund, (amount - refund).quantize(CENTS, rounding=ROUND_HALF_UP)


class PaymentGateway(ABC):
    """Interface the lifecycle coordinator relies on."""

    @abstractmethod
    async def create_escrow_charge(
        self,
        db: AsyncSession,
        offer_id: str,
        amount: Decimal,
        currency: str
    ) -> EscrowCharge:
        ...

    @abstractmethod
    async def release_funds(self, db: AsyncSession, payment_ref: str) -> None:
        ...

    @abstractmethod
    async def refund(self, db: AsyncSession, payment_ref: str, percentage: Decimal) -> RefundResult:
        ...


class LedgerEscrowGateway(PaymentGateway):
    """Internal escrow ledger. Charges are captured immediately."""

    async def _get_payment(self, db: AsyncSession, payment_ref: str) -> Payment:
        result = await db.execute(
            select(Payment).where(Payment.payment_ref == payment_ref).with_for_update()
        )
        payment = result.scalar_one_or_none()
        if not payment:
            raise PaymentGatewayError(f"Unknown payment reference: {payment_ref}")
        return payment

    async def create_escrow_charge(
        self,
        db: AsyncSession,
        offer_id: str,
        amount: Decimal,
        currency: str
    ) -> EscrowCharge:
        """Hold ``amount`` in escrow for an offer."""
        if amount is None or amount <= 0:
            raise PaymentGatewayError("Escrow amount must be positive")

        now = datetime.utcnow()
        payment = Payment(
            offer_id=offer_id,
            amount=amount,
            currency=currency,
            status=EscrowStatus.ESCROWED,
            escrowed_at=now,
        )
        db.add(payment)
        await db.flush()

        logger.info(f"Escrowed {amount} {currency} for offer {offer_id} as {payment.payment_ref}")
        return EscrowCharge(payment_ref=payment.payment_ref, captured=True)

    async def release_funds(self, db: AsyncSession, payment_ref: str) -> None:
        """Pay the full escrowed amount out to the provider."""
        payment = await self._get_payment(db, payment_ref)
        if payment.status != EscrowStatus.ESCROWED:
            raise PaymentGatewayError(f"Payment {payment_ref} is {payment.status}, cannot release")

        payment.status = EscrowStatus.RELEASED
        payment.provider_amount = payment.amount
        payment.refund_amount = Decimal("0")
        payment.released_at = datetime.utcnow()
        payment.settlement_note = "service_completed"
        await db.flush()

        logger.info(f"Released {payment.amount} {payment.currency} from {payment_ref}")

    async def refund(self, db: AsyncSession, payment_ref: str, percentage: Decimal) -> RefundResult:
        """Refund ``percentage`` of the escrow to the seeker, remainder to the provider."""
        payment = await self._get_payment(db, payment_ref)
        if payment.status != EscrowStatus.ESCROWED:
            raise PaymentGatewayError(f"Payment {payment_ref} is {payment.status}, cannot refund")

        refund_amount, provider_amount = split_refund(payment.amount, percentage)
        payment.status = EscrowStatus.REFUNDED if provider_amount == 0 else EscrowStatus.PARTIAL_REFUND
        payment.refund_amount = refund_amount
        payment.provider_amount = provider_amount
        payment.refunded_at = datetime.utcnow()
        payment.settlement_note = f"cancellation refund {percentage}%"
        await db.flush()

        logger.info(
            f"Refunded {refund_amount} {payment.currency} from {payment_ref} "
            f"({percentage}%), provider keeps {provider_amount}"
        )
        return RefundResult(
            payment_ref=payment_ref,
            refund_amount=refund_amount,
            provider_amount=provider_amount,
        )


# Default gateway
payment_gateway = LedgerEscrowGateway()
