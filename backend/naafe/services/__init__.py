"""Business logic services package."""

from naafe.services.negotiation_engine import (
    AgreementState,
    agreement_state,
    apply_terms_update,
    confirm_terms,
    reset_confirmations,
)
from naafe.services.lifecycle import LifecycleCoordinator, lifecycle_coordinator, refund_percentage_for
from naafe.services.payment_gateway import PaymentGateway, LedgerEscrowGateway, PaymentGatewayError

__all__ = [
    "AgreementState",
    "agreement_state",
    "apply_terms_update",
    "confirm_terms",
    "reset_confirmations",
    "LifecycleCoordinator",
    "lifecycle_coordinator",
    "refund_percentage_for",
    "PaymentGateway",
    "LedgerEscrowGateway",
    "PaymentGatewayError",
]
