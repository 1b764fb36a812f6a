"""Offer database model with embedded negotiation, payment and cancellation state."""

from datetime import datetime, date
from decimal import Decimal
from typing import Any, Dict, List
import uuid

from sqlalchemy import String, Text, Integer, Boolean, Numeric, Date, ForeignKey, TIMESTAMP, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from naafe.database import Base


class OfferStatus:
    """Offer statuses."""
    PENDING = "pending"
    NEGOTIATING = "negotiating"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    CANCELLATION_REQUESTED = "cancellation_requested"

    ALL = (
        PENDING, NEGOTIATING, ACCEPTED, REJECTED,
        IN_PROGRESS, COMPLETED, CANCELLED, CANCELLATION_REQUESTED,
    )
    TERMINAL = frozenset({COMPLETED, CANCELLED, REJECTED})
    NEGOTIABLE = frozenset({PENDING, NEGOTIATING})
    CANCELLABLE = frozenset({ACCEPTED, IN_PROGRESS})


class PaymentStatus:
    """Escrow state of an offer as seen from the offer record."""
    NOT_PAID = "not_paid"
    PENDING = "pending"
    ESCROWED = "escrowed"
    RELEASED = "released"
    REFUNDED = "refunded"
    PARTIAL_REFUND = "partial_refund"


# Negotiable term name -> column attribute
TERM_FIELDS: Dict[str, str] = {
    "price": "negotiated_price",
    "date": "negotiated_date",
    "time": "negotiated_time",
    "materials": "negotiated_materials",
    "scope": "negotiated_scope",
}

class Offer(Base):
    """One provider's response to one job request."""

    __tablename__ = "offers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Participants
    job_request_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("job_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    seeker_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    provider_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    # Original proposal (reference data shown next to the negotiated terms)
    proposed_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EGP")
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    estimated_time_days: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    available_dates: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    time_preferences: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    status: Mapped[str] = mapped_column(String(30), nullable=False, default=OfferStatus.PENDING, index=True)

    # Negotiated terms
    negotiated_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    negotiated_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    negotiated_time: Mapped[str | None] = mapped_column(String(5), nullable=True)  # HH:MM
    negotiated_materials: Mapped[str | None] = mapped_column(Text, nullable=True)
    negotiated_scope: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Confirmations
    seeker_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    provider_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_modified_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    last_modified_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)

    # Escrow
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default=PaymentStatus.NOT_PAID)
    payment_ref: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    payment_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    escrowed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    released_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)

    # Cancellation
    cancellation_requested_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    cancellation_requested_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    refund_percentage: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    refund_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    # Optimistic concurrency
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    # Relationships
    job_request: Mapped["JobRequest"] = relationship("JobRequest", back_populates="offers")
    history: Mapped[List["NegotiationHistoryEntry"]] = relationship(
        "NegotiationHistoryEntry",
        back_populates="offer",
        order_by="NegotiationHistoryEntry.sequence",
        cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": version}

    def get_term(self, field: str) -> Any:
        return getattr(self, TERM_FIELDS[field])

    def set_term(self, field: str, value: Any) -> None:
        setattr(self, TERM_FIELDS[field], value)

    @property
    def terms(self) -> Dict[str, Any]:
        """Current negotiated terms keyed by term name."""
        return {field: self.get_term(field) for field in TERM_FIELDS}

    @property
    def has_negotiation(self) -> bool:
        return bool(self.history) or any(v is not None for v in self.terms.values())

    @property
    def missing_fields(self) -> List[str]:
        from naafe.services.negotiation_engine import agreement_state
        return agreement_state(self).missing_fields

    @property
    def pending_confirmations(self) -> List[str]:
        from naafe.services.negotiation_engine import agreement_state
        return agreement_state(self).pending_confirmations

    @property
    def can_accept_offer(self) -> bool:
        from naafe.services.negotiation_engine import agreement_state
        return agreement_state(self).can_accept

    @property
    def can_review(self) -> bool:
        return self.status == OfferStatus.COMPLETED

    def role_of(self, user_id: str) -> str | None:
        """Return "seeker", "provider" or None for a user id."""
        if user_id == self.seeker_id:
            return "seeker"
        if user_id == self.provider_id:
            return "provider"
        return None

    def __repr__(self) -> str:
        return f"<Offer(id={self.id}, job_request_id={self.job_request_id}, status={self.status})>"
