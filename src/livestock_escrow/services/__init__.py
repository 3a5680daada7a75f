"""Application services: use case orchestration."""

from livestock_escrow.services.dispute_service import DisputeService
from livestock_escrow.services.escrow_service import EscrowService
from livestock_escrow.services.offer_service import OfferService
from livestock_escrow.services.payment_service import DummyPaymentProvider
from livestock_escrow.services.scheduler import AutoReleaseScheduler
from livestock_escrow.services.trip_service import TripService

__all__ = [
    "AutoReleaseScheduler",
    "DisputeService",
    "DummyPaymentProvider",
    "EscrowService",
    "OfferService",
    "TripService",
]
