"""Domain error taxonomy with stable error codes.

Services raise these; the API layer turns them into
``{"detail": {"code": ..., "message": ...}}`` responses.
"""

from typing import Any, Dict, List, Optional


class NaafeError(Exception):
    """Base class for errors that cross the service boundary."""

    code: str = "ERROR"
    status_code: int = 400

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_detail(self) -> Dict[str, Any]:
        """Build the error envelope body."""
        return {"code": self.code, "message": self.message, **self.extra}


class NotFound(NaafeError):
    """Offer, job request or other referenced record does not exist."""
    code = "NOT_FOUND"
    status_code = 404


class Forbidden(NaafeError):
    """Actor is not a party to the offer, or has the wrong role for the action."""
    code = "FORBIDDEN"
    status_code = 403


class InvalidState(NaafeError):
    """Requested transition is illegal for the current status."""
    code = "INVALID_STATE"
    status_code = 409

    def __init__(self, message: str, status: Optional[str] = None, **extra: Any):
        if status is not None:
            extra["status"] = status
        super().__init__(message, **extra)


class AgreementIncomplete(NaafeError):
    """Accept attempted before both confirmations and all five terms are in place."""
    code = "AGREEMENT_INCOMPLETE"
    status_code = 409

    def __init__(
        self,
        message: str,
        missing_fields: List[str],
        pending_confirmations: List[str],
    ):
        super().__init__(
            message,
            missing_fields=list(missing_fields),
            pending_confirmations=list(pending_confirmations),
        )
        self.missing_fields = list(missing_fields)
        self.pending_confirmations = list(pending_confirmations)


class UpstreamPaymentFailure(NaafeError):
    """Payment collaborator rejected a charge, release or refund."""
    code = "PAYMENT_FAILED"
    status_code = 502


class ConcurrentModification(NaafeError):
    """The offer changed underneath the caller; re-fetch and retry."""
    code = "CONCURRENT_MODIFICATION"
    status_code = 409


class ValidationFailed(NaafeError):
    """Request is well-formed but violates a business rule."""
    code = "VALIDATION_FAILED"
    status_code = 422
