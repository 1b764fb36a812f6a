"""
Negotiation engine: pure state transitions on an offer's negotiated terms.

Nothing here touches the database, the payment collaborator or the event bus.
Each function mutates the in-memory offer and returns the history entries it
appended; persistence is the caller's job.
"""

from dataclasses import dataclass
from datetime import datetime, date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, List, Mapping, Optional

from naafe.core.errors import Forbidden, InvalidState, ValidationFailed
from naafe.models.offer import Offer, OfferStatus, TERM_FIELDS
from naafe.models.negotiation_history import NegotiationHistoryEntry, CONFIRMATION_FIELD

ROLES = ("seeker", "provider")

# Negotiated prices are stored as Numeric(12, 2)
CENTS = Decimal("0.01")


@dataclass(frozen=True)
class AgreementState:
    """
    Confirmation and completeness tracked independently.

    Confirming records intent even while terms are incomplete; only the
    combination of both makes an offer acceptable.
    """
    missing_fields: List[str]
    pending_confirmations: List[str]

    @property
    def terms_complete(self) -> bool:
        return not self.missing_fields

    @property
    def confirmed_by_both(self) -> bool:
        return not self.pending_confirmations

    @property
    def can_accept(self) -> bool:
        return self.terms_complete and self.confirmed_by_both


def _is_unset(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def agreement_state(offer: Offer) -> AgreementState:
    """Compute which terms are unset and which parties still have to confirm."""
    missing = [field for field in TERM_FIELDS if _is_unset(offer.get_term(field))]
    pending = []
    if not offer.seeker_confirmed:
        pending.append("seeker")
    if not offer.provider_confirmed:
        pending.append("provider")
    return AgreementState(missing_fields=missing, pending_confirmations=pending)


def require_party(offer: Offer, actor_id: str) -> str:
    """
    Resolve the actor's role on the offer.

    Raises:
        Forbidden: If the actor is neither the seeker nor the provider
    """
    role = offer.role_of(actor_id)
    if role is None:
        raise Forbidden("You are not a party to this offer")
    return role


def ensure_negotiable(offer: Offer) -> None:
    """
    Raises:
        InvalidState: If the offer no longer accepts negotiation changes
    """
    if offer.status in OfferStatus.TERMINAL:
        raise InvalidState(
            f"Offer is {offer.status}; negotiation cannot resume",
            status=offer.status
        )
    if offer.status not in OfferStatus.NEGOTIABLE:
        raise InvalidState(
            f"Terms are locked once the offer is {offer.status}",
            status=offer.status
        )


def normalize_term(field: str, value: Any) -> Any:
    """
    Coerce a proposed term value to the type stored on the offer.

    Raises:
        ValidationFailed: If the value cannot be interpreted for the field
    """
    if field not in TERM_FIELDS:
        raise ValidationFailed(f"Unknown negotiation field: {field}", field=field)
    if value is None:
        return None

    if field == "price":
        try:
            price = Decimal(str(value))
        except InvalidOperation:
            raise ValidationFailed("Price must be a number", field=field)
        if not price.is_finite() or price <= 0:
            raise ValidationFailed("Price must be a positive number", field=field)
        price = price.quantize(CENTS, rounding=ROUND_HALF_UP)
        if price <= 0:
            raise ValidationFailed("Price must be at least 0.01", field=field)
        return price

    if field == "date":
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        try:
            return date.fromisoformat(str(value))
        except ValueError:
            raise ValidationFailed("Date must be an ISO date (YYYY-MM-DD)", field=field)

    if field == "time":
        text = str(value).strip()
        try:
            parsed = datetime.strptime(text, "%H:%M")
        except ValueError:
            raise ValidationFailed("Time must be HH:MM", field=field)
        return parsed.strftime("%H:%M")

    text = str(value).strip()
    return text or None


def history_value(value: Any) -> Any:
    """JSON-safe representation of a term value for the audit log."""
    if isinstance(value, Decimal):
        return format(value.normalize(), "f") if value == value.to_integral() else str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def _append(
    offer: Offer,
    field: str,
    old_value: Any,
    new_value: Any,
    actor_id: str,
    now: datetime,
    note: Optional[str] = None
) -> NegotiationHistoryEntry:
    entry = NegotiationHistoryEntry(
        offer_id=offer.id,
        sequence=len(offer.history),
        field=field,
        old_value=old_value,
        new_value=new_value,
        changed_by=actor_id,
        timestamp=now,
        note=note,
    )
    offer.history.append(entry)
    return entry


def _touch(offer: Offer, actor_id: str, now: datetime) -> None:
    offer.last_modified_by = actor_id
    offer.last_modified_at = now


def apply_terms_update(
    offer: Offer,
    proposed_terms: Mapping[str, Any],
    actor_id: str,
    now: Optional[datetime] = None
) -> List[NegotiationHistoryEntry]:
    """
    Apply a partial terms proposal from one party.

    Only fields whose value actually differs are written and logged. If at
    least one field changed, both confirmations are cleared. Resubmitting the
    current terms changes nothing and returns an empty list.

    Args:
        offer: Offer being negotiated
        proposed_terms: Any subset of price, date, time, materials, scope
        actor_id: User proposing the terms
        now: Timestamp for history entries

    Returns:
        History entries appended by this call

    Raises:
        Forbidden: Actor is not a party
        InvalidState: Offer is not open for negotiation
        ValidationFailed: Unknown field or malformed value
    """
    now = now or datetime.utcnow()
    require_party(offer, actor_id)
    ensure_negotiable(offer)

    normalized = {field: normalize_term(field, value) for field, value in proposed_terms.items()}

    entries = []
    for field in TERM_FIELDS:
        if field not in normalized:
            continue
        old = offer.get_term(field)
        new = normalized[field]
        if old == new:
            continue
        entries.append(_append(offer, field, history_value(old), history_value(new), actor_id, now))
        offer.set_term(field, new)

    if not entries:
        return entries

    if offer.seeker_confirmed or offer.provider_confirmed:
        entries.append(_append(
            offer,
            CONFIRMATION_FIELD,
            {"seeker_confirmed": bool(offer.seeker_confirmed), "provider_confirmed": bool(offer.provider_confirmed)},
            {"seeker_confirmed": False, "provider_confirmed": False},
            actor_id,
            now,
            note="Confirmations reset due to negotiation change",
        ))
    offer.seeker_confirmed = False
    offer.provider_confirmed = False

    if offer.status == OfferStatus.PENDING:
        offer.status = OfferStatus.NEGOTIATING
    _touch(offer, actor_id, now)
    return entries


def confirm_terms(
    offer: Offer,
    actor_id: str,
    now: Optional[datetime] = None
) -> NegotiationHistoryEntry:
    """
    Record that one party agrees to the current terms.

    Confirming with incomplete terms is allowed; the offer only becomes
    acceptable once every term is set as well.

    Raises:
        Forbidden: Actor is not a party
        InvalidState: Offer is not open for negotiation
    """
    now = now or datetime.utcnow()
    role = require_party(offer, actor_id)
    ensure_negotiable(offer)

    flag = f"{role}_confirmed"
    previous = bool(getattr(offer, flag))
    setattr(offer, flag, True)

    if offer.status == OfferStatus.PENDING:
        offer.status = OfferStatus.NEGOTIATING
    _touch(offer, actor_id, now)
    return _append(
        offer,
        CONFIRMATION_FIELD,
        previous,
        role,
        actor_id,
        now,
        note="Party confirmed negotiation terms",
    )


def reset_confirmations(
    offer: Offer,
    actor_id: str,
    now: Optional[datetime] = None
) -> NegotiationHistoryEntry:
    """
    Clear both confirmations without changing any term.

    Always appends a history marker, even if nothing was confirmed.

    Raises:
        Forbidden: Actor is not a party
        InvalidState: Offer is not open for negotiation
    """
    now = now or datetime.utcnow()
    require_party(offer, actor_id)
    ensure_negotiable(offer)

    previous = {
        "seeker_confirmed": bool(offer.seeker_confirmed),
        "provider_confirmed": bool(offer.provider_confirmed),
    }
    offer.seeker_confirmed = False
    offer.provider_confirmed = False
    _touch(offer, actor_id, now)
    return _append(
        offer,
        CONFIRMATION_FIELD,
        previous,
        {"seeker_confirmed": False, "provider_confirmed": False},
        actor_id,
        now,
        note="reset",
    )
