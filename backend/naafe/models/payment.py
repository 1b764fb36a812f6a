"""Escrow payment records kept by the internal payment ledger."""

from datetime import datetime
from decimal import Decimal
import uuid

from sqlalchemy import String, Numeric, TIMESTAMP, Text
from sqlalchemy.orm import Mapped, mapped_column

from naafe.database import Base


class EscrowStatus:
    """Escrow payment statuses."""
    PENDING = "pending"
    ESCROWED = "escrowed"
    RELEASED = "released"
    REFUNDED = "refunded"
    PARTIAL_REFUND = "partial_refund"


def _payment_ref() -> str:
    return f"pay_{uuid.uuid4().hex}"


class Payment(Base):
    """Escrow charge held between acceptance and completion of a service."""

    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    payment_ref: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, default=_payment_ref)

    offer_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EGP")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=EscrowStatus.ESCROWED, index=True)

    # Settlement split
    provider_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    refund_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    settlement_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False, default=datetime.utcnow)
    escrowed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    released_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)

    def __repr__(self) -> str:
        return f"<Payment(ref={self.payment_ref}, amount={self.amount}, status={self.status})>"
