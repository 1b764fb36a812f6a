"""User database model."""

from datetime import datetime
from typing import List
import uuid

from sqlalchemy import String, TIMESTAMP, JSON
from sqlalchemy.orm import Mapped, mapped_column

from naafe.database import Base


class UserRole:
    """Roles a user may hold."""
    SEEKER = "seeker"
    PROVIDER = "provider"
    ADMIN = "admin"

    ALL = (SEEKER, PROVIDER, ADMIN)


class User(Base):
    """Marketplace user: seekers post job requests, providers make offers."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    roles: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    # Authentication
    api_key_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow
    )
    last_seen_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)

    def has_role(self, role: str) -> bool:
        return role in (self.roles or [])

    @property
    def is_admin(self) -> bool:
        return self.has_role(UserRole.ADMIN)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, roles={self.roles})>"
