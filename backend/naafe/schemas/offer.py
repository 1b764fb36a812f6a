"""
Offer and negotiation schemas.
"""

import datetime as dt
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from naafe.config import settings
from naafe.models.offer import Offer, TERM_FIELDS

TimePreference = Literal["morning", "afternoon", "evening", "flexible"]

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


# Requests

class OfferCreate(BaseModel):
    """Provider's proposal on a job request."""
    price: Decimal = Field(..., gt=0, description="Proposed price in the job request's currency")
    message: Optional[str] = Field(None, max_length=settings.OFFER_MESSAGE_MAX_LENGTH)
    estimated_time_days: int = Field(1, ge=1)
    available_dates: List[dt.date] = Field(default_factory=list)
    time_preferences: List[TimePreference] = Field(default_factory=list)


class OfferUpdate(BaseModel):
    """Edit of a pending proposal; only the fields sent are changed."""
    price: Optional[Decimal] = Field(None, gt=0)
    message: Optional[str] = Field(None, max_length=settings.OFFER_MESSAGE_MAX_LENGTH)
    estimated_time_days: Optional[int] = Field(None, ge=1)
    available_dates: Optional[List[dt.date]] = None
    time_preferences: Optional[List[TimePreference]] = None


class NegotiationTermsUpdate(BaseModel):
    """
    Partial terms proposal.

    Omitted fields are left alone; an explicit null clears a term.
    """
    model_config = ConfigDict(extra="forbid")

    price: Optional[Decimal] = Field(None, gt=0)
    date: Optional[dt.date] = None
    time: Optional[str] = Field(None, pattern=TIME_PATTERN, description="Time of day, HH:MM")
    materials: Optional[str] = Field(None, max_length=2000)
    scope: Optional[str] = Field(None, max_length=2000)
    base_version: Optional[int] = Field(
        None,
        ge=1,
        description="Offer version the proposal is based on; stale versions are rejected"
    )

    def proposed_terms(self) -> Dict[str, Any]:
        """Only the term fields the client actually sent."""
        return {
            field: getattr(self, field)
            for field in TERM_FIELDS
            if field in self.model_fields_set
        }


class OfferReject(BaseModel):
    """Reason for ending a negotiation."""
    reason: Optional[str] = Field(None, max_length=1000)


class CancellationRequest(BaseModel):
    """Request to cancel an accepted or in-progress service."""
    reason: Optional[str] = Field(None, max_length=1000)


class EscrowCapturedCallback(BaseModel):
    """Payment collaborator callback once escrow is funded."""
    offer_id: str
    payment_ref: str = Field(..., min_length=1, max_length=64)


# Responses

class NegotiationTerms(BaseModel):
    """Current working agreement."""
    price: Optional[Decimal] = None
    date: Optional[dt.date] = None
    time: Optional[str] = None
    materials: Optional[str] = None
    scope: Optional[str] = None


class ConfirmationStatus(BaseModel):
    seeker_confirmed: bool
    provider_confirmed: bool


class NegotiationHistoryEntryResponse(BaseModel):
    """One audit log entry."""
    id: str
    sequence: int
    field: str
    old_value: Any = None
    new_value: Any = None
    changed_by: str
    timestamp: dt.datetime
    note: Optional[str] = None

    class Config:
        from_attributes = True


class NegotiationHistoryList(BaseModel):
    """History page, newest first."""
    entries: List[NegotiationHistoryEntryResponse]
    total: int


class NegotiationResponse(BaseModel):
    """Negotiation state embedded in an offer."""
    terms: NegotiationTerms
    confirmation_status: ConfirmationStatus
    missing_fields: List[str]
    pending_confirmations: List[str]
    last_modified_by: Optional[str] = None
    last_modified_at: Optional[dt.datetime] = None
    history: List[NegotiationHistoryEntryResponse] = []

    @computed_field
    @property
    def can_accept_offer(self) -> bool:
        """Both parties confirmed and every term is set."""
        return not self.missing_fields and not self.pending_confirmations


class OfferProposal(BaseModel):
    """The provider's original submission."""
    price: Decimal
    currency: str
    message: Optional[str]
    estimated_time_days: int
    available_dates: List[dt.date]
    time_preferences: List[str]


class PaymentInfo(BaseModel):
    status: str
    payment_ref: Optional[str]
    amount: Optional[Decimal]
    escrowed_at: Optional[dt.datetime]
    released_at: Optional[dt.datetime]


class CancellationInfo(BaseModel):
    requested_by: str
    requested_at: dt.datetime
    reason: Optional[str]
    refund_percentage: Decimal
    refund_amount: Optional[Decimal]


class OfferResponse(BaseModel):
    """Offer with negotiation, payment and cancellation state."""
    id: str
    job_request_id: str
    seeker_id: str
    provider_id: str
    status: str
    version: int
    proposal: OfferProposal
    negotiation: Optional[NegotiationResponse] = None
    payment: PaymentInfo
    cancellation: Optional[CancellationInfo] = None
    can_accept_offer: bool
    can_review: bool
    created_at: dt.datetime
    updated_at: dt.datetime

    @classmethod
    def from_offer(cls, offer: Offer, include_history: bool = True) -> "OfferResponse":
        negotiation = None
        if offer.has_negotiation:
            history = sorted(offer.history, key=lambda e: e.sequence, reverse=True) if include_history else []
            negotiation = NegotiationResponse(
                terms=NegotiationTerms(**offer.terms),
                confirmation_status=ConfirmationStatus(
                    seeker_confirmed=bool(offer.seeker_confirmed),
                    provider_confirmed=bool(offer.provider_confirmed),
                ),
                missing_fields=offer.missing_fields,
                pending_confirmations=offer.pending_confirmations,
                last_modified_by=offer.last_modified_by,
                last_modified_at=offer.last_modified_at,
                history=[NegotiationHistoryEntryResponse.model_validate(e) for e in history],
            )

        cancellation = None
        if offer.cancellation_requested_at is not None:
            cancellation = CancellationInfo(
                requested_by=offer.cancellation_requested_by,
                requested_at=offer.cancellation_requested_at,
                reason=offer.cancellation_reason,
                refund_percentage=offer.refund_percentage,
                refund_amount=offer.refund_amount,
            )

        return cls(
            id=offer.id,
            job_request_id=offer.job_request_id,
            seeker_id=offer.seeker_id,
            provider_id=offer.provider_id,
            status=offer.status,
            version=offer.version,
            proposal=OfferProposal(
                price=offer.proposed_price,
                currency=offer.currency,
                message=offer.message,
                estimated_time_days=offer.estimated_time_days,
                available_dates=offer.available_dates or [],
                time_preferences=offer.time_preferences or [],
            ),
            negotiation=negotiation,
            payment=PaymentInfo(
                status=offer.payment_status,
                payment_ref=offer.payment_ref,
                amount=offer.payment_amount,
                escrowed_at=offer.escrowed_at,
                released_at=offer.released_at,
            ),
            cancellation=cancellation,
            can_accept_offer=offer.can_accept_offer,
            can_review=offer.can_review,
            created_at=offer.created_at,
            updated_at=offer.updated_at,
        )
