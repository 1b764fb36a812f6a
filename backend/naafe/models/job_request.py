"""Job request database model."""

from datetime import datetime
from decimal import Decimal
from typing import List
import uuid

from sqlalchemy import String, Text, Numeric, ForeignKey, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from naafe.database import Base


class JobRequestStatus:
    """Job request statuses."""
    OPEN = "open"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class JobRequest(Base):
    """A seeker's request for a service that providers make offers on."""

    __tablename__ = "job_requests"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )

    seeker_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Request details
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    budget_min: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    budget_max: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EGP")
    deadline: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)

    # Status & assignment
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=JobRequestStatus.OPEN,
        index=True
    )  # open|assigned|in_progress|completed|cancelled
    assigned_provider_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )
    completed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)

    offers: Mapped[List["Offer"]] = relationship(
        "Offer",
        back_populates="job_request",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<JobRequest(id={self.id}, title={self.title}, status={self.status})>"
