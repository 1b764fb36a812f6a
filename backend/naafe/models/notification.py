"""In-app notification database model."""

from datetime import datetime
import uuid

from sqlalchemy import String, Text, ForeignKey, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from naafe.database import Base


class NotificationType:
    """Notification types."""
    OFFER_RECEIVED = "offer_received"
    OFFER_ACCEPTED = "offer_accepted"
    OFFER_REJECTED = "offer_rejected"
    AGREEMENT_REACHED = "agreement_reached"
    PAYMENT_ESCROWED = "payment_escrowed"
    PAYMENT_RELEASED = "payment_released"
    SERVICE_CANCELLED = "service_cancelled"


class Notification(Base):
    """Notification shown to a user about one of their offers."""

    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    offer_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("offers.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )

    type: Mapped[str] = mapped_column(String(30), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    # Read Status
    read_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False, default=datetime.utcnow, index=True)

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, user_id={self.user_id}, type={self.type})>"
