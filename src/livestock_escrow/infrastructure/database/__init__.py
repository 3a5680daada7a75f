"""Database infrastructure: engine, ORM models, and repositories."""

from livestock_escrow.infrastructure.database.engine import (
    close_db,
    get_async_session,
    get_session_factory,
    init_db,
)
from livestock_escrow.infrastructure.database.orm_models import (
    Base,
    Dispute,
    Load,
    Offer,
    Payment,
    PipelineEvent,
    Trip,
)
from livestock_escrow.infrastructure.database.repositories import (
    DisputeRepository,
    EventRepository,
    LoadRepository,
    OfferRepository,
    PaymentRepository,
    TripRepository,
)

__all__ = [
    "Base",
    "Dispute",
    "Load",
    "Offer",
    "Payment",
    "PipelineEvent",
    "Trip",
    "DisputeRepository",
    "EventRepository",
    "LoadRepository",
    "OfferRepository",
    "PaymentRepository",
    "TripRepository",
    "get_async_session",
    "get_session_factory",
    "init_db",
    "close_db",
]
