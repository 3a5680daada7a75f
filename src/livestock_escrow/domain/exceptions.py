"""Domain exceptions for the livestock escrow pipeline.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware:
not-found -> 404, forbidden -> 403, everything else -> 400.
"""

from __future__ import annotations


class LivestockEscrowError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "LIVESTOCK_ESCROW_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Not Found ---


class EntityNotFoundError(LivestockEscrowError):
    """Raised when a referenced pipeline entity does not exist."""

    entity = "Entity"

    def __init__(self, entity_id: int | str) -> None:
        super().__init__(
            message=f"{self.entity} not found: {entity_id}",
            code=f"{self.entity.upper()}_NOT_FOUND",
        )
        self.entity_id = entity_id


class LoadNotFoundError(EntityNotFoundError):
    entity = "Load"


class OfferNotFoundError(EntityNotFoundError):
    entity = "Offer"


class TripNotFoundError(EntityNotFoundError):
    entity = "Trip"


class PaymentNotFoundError(EntityNotFoundError):
    entity = "Payment"


class DisputeNotFoundError(EntityNotFoundError):
    entity = "Dispute"


# --- State Errors ---


class InvalidStateTransitionError(LivestockEscrowError):
    """Raised when an operation is attempted from a status that does not permit it.

    Also raised when a guarded update finds the row no longer in the expected
    status, i.e. another request changed it first.
    """

    def __init__(
        self,
        current_state: str,
        attempted: str,
        message: str | None = None,
    ) -> None:
        super().__init__(
            message=message or f"Invalid state transition: {current_state} -> {attempted}",
            code="INVALID_STATE",
        )
        self.current_state = current_state
        self.attempted = attempted


class EscrowNotFundedError(LivestockEscrowError):
    """Raised when an operation needs an ESCROW_FUNDED payment."""

    def __init__(self, payment_status: str | None, action: str) -> None:
        super().__init__(
            message=f"Escrow must be funded to {action} (payment is {payment_status})",
            code="ESCROW_NOT_FUNDED",
        )
        self.payment_status = payment_status


# --- Authorization Errors ---


class UnauthenticatedError(LivestockEscrowError):
    """Raised when a request arrives without a usable caller identity."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="UNAUTHENTICATED")


class ForbiddenError(LivestockEscrowError):
    """Raised when the caller is not permitted to perform an action."""

    def __init__(self, action: str, resource: str) -> None:
        super().__init__(
            message=f"Not allowed to {action.lower().replace('_', ' ')} on {resource}",
            code="FORBIDDEN",
        )
        self.action = action
        self.resource = resource


class SelfBidNotAllowedError(LivestockEscrowError):
    """Raised when a company bids on its own load."""

    def __init__(self, load_id: int) -> None:
        super().__init__(
            message=f"You cannot bid on your own load: {load_id}",
            code="SELF_BID_NOT_ALLOWED",
        )


# --- Input Errors ---


class InvalidInputError(LivestockEscrowError):
    """Raised when an operation receives malformed input."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message=message, code="VALIDATION_ERROR")
        self.field = field


# --- Conflicts ---


class ConflictError(LivestockEscrowError):
    """Base exception for requests that conflict with existing records."""


class DisputeAlreadyOpenError(ConflictError):
    """Raised when a payment already has an OPEN or UNDER_REVIEW dispute."""

    def __init__(self, payment_id: int, dispute_id: int) -> None:
        super().__init__(
            message=f"Payment {payment_id} already has an open dispute: {dispute_id}",
            code="DISPUTE_ALREADY_OPEN",
        )
        self.payment_id = payment_id
        self.dispute_id = dispute_id


class SplitValidationError(ConflictError):
    """Raised when a split resolution does not add up to the payment amount."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="SPLIT_VALIDATION_ERROR")
