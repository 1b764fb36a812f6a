"""Append-only negotiation audit log."""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import String, Text, Integer, ForeignKey, TIMESTAMP, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from naafe.database import Base


CONFIRMATION_FIELD = "confirmation"


class NegotiationHistoryEntry(Base):
    """One recorded change to an offer's negotiation. Never updated or deleted."""

    __tablename__ = "negotiation_history"
    __table_args__ = (
        UniqueConstraint("offer_id", "sequence", name="uq_negotiation_history_offer_sequence"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    offer_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("offers.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    field: Mapped[str] = mapped_column(String(20), nullable=False)
    # price | date | time | materials | scope | confirmation

    old_value: Mapped[Any] = mapped_column(JSON, nullable=True)
    new_value: Mapped[Any] = mapped_column(JSON, nullable=True)
    changed_by: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False, default=datetime.utcnow)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    offer: Mapped["Offer"] = relationship("Offer", back_populates="history")

    def __repr__(self) -> str:
        return f"<NegotiationHistoryEntry(offer_id={self.offer_id}, seq={self.sequence}, field={self.field})>"
