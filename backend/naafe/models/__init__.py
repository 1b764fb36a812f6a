"""Database models package."""

from naafe.models.user import User, UserRole
from naafe.models.job_request import JobRequest, JobRequestStatus
from naafe.models.offer import Offer, OfferStatus, PaymentStatus, TERM_FIELDS
from naafe.models.negotiation_history import NegotiationHistoryEntry, CONFIRMATION_FIELD
from naafe.models.payment import Payment, EscrowStatus
from naafe.models.notification import Notification, NotificationType

__all__ = [
    "User",
    "UserRole",
    "JobRequest",
    "JobRequestStatus",
    "Offer",
    "OfferStatus",
    "PaymentStatus",
    "TERM_FIELDS",
    "NegotiationHistoryEntry",
    "CONFIRMATION_FIELD",
    "Payment",
    "EscrowStatus",
    "Notification",
    "NotificationType",
]
