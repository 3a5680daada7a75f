"""Domain layer: statuses, state machines, authorization and errors. No framework code."""

from livestock_escrow.domain.authorization import Action, Caller, ensure_permitted
from livestock_escrow.domain.enums import (
    DisputeStatus,
    EventType,
    LoadStatus,
    OfferStatus,
    PaymentStatus,
    Role,
    TripStatus,
)
from livestock_escrow.domain.exceptions import (
    EntityNotFoundError,
    ForbiddenError,
    InvalidStateTransitionError,
    LivestockEscrowError,
)
from livestock_escrow.domain.state_machine import (
    DisputeStateMachine,
    LoadStateMachine,
    OfferStateMachine,
    PaymentStateMachine,
    TripStateMachine,
    validate_transition,
)

__all__ = [
    "Action",
    "Caller",
    "ensure_permitted",
    "DisputeStatus",
    "EventType",
    "LoadStatus",
    "OfferStatus",
    "PaymentStatus",
    "Role",
    "TripStatus",
    "EntityNotFoundError",
    "ForbiddenError",
    "InvalidStateTransitionError",
    "LivestockEscrowError",
    "DisputeStateMachine",
    "LoadStateMachine",
    "OfferStateMachine",
    "PaymentStateMachine",
    "TripStateMachine",
    "validate_transition",
]
