"""Shared plumbing for the pipeline services.

Every service works on one AsyncSession (one request, one transaction) and
moves entities the same way: validate the move against the entity's state
machine, apply it with a guarded UPDATE, then append one audit event.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from livestock_escrow.config import Settings, get_settings
from livestock_escrow.domain.enums import EventType
from livestock_escrow.domain.exceptions import (
    DisputeNotFoundError,
    InvalidInputError,
    LoadNotFoundError,
    OfferNotFoundError,
    PaymentNotFoundError,
    TripNotFoundError,
)
from livestock_escrow.domain.state_machine import (
    LoadStateMachine,
    PaymentStateMachine,
    TripStateMachine,
    validate_transition,
)
from livestock_escrow.infrastructure.database.orm_models import (
    Dispute,
    Load,
    Offer,
    Payment,
    Trip,
    utcnow,
)
from livestock_escrow.infrastructure.database.repositories import (
    DisputeRepository,
    EventRepository,
    LoadRepository,
    OfferRepository,
    PaymentRepository,
    StatusRepository,
    TripRepository,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession
    from statemachine import StateMachine

Clock = Callable[[], datetime]

# Load event fired when a trip closes, keyed by how the payment ended.
LOAD_EVENT_COMPLETE = "complete"
LOAD_EVENT_CANCEL = "cancel_load"

# Money columns are Numeric(12, 2).
CENT = Decimal("0.01")
MAX_AMOUNT = Decimal("9999999999.99")


def to_money(field: str, value: Any) -> Decimal:
    """Parse an amount that fits the money columns exactly, without rounding."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidInputError(field, f"{field} must be a number.") from None
    if not amount.is_finite():
        raise InvalidInputError(field, f"{field} must be a number.")
    if abs(amount) > MAX_AMOUNT:
        raise InvalidInputError(field, f"{field} must not exceed {MAX_AMOUNT}.")
    if amount != amount.quantize(CENT):
        raise InvalidInputError(field, f"{field} must have at most 2 decimal places.")
    return amount.quantize(CENT)


@dataclass
class EscrowOutcome:
    """Entities changed by a settlement or dispute operation."""

    payment: Payment
    trip: Trip
    load: Load
    dispute: Dispute | None = None


class PipelineService:
    """Base class holding repositories, settings and the clock."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._clock = clock or utcnow
        self._load_repo = LoadRepository(session)
        self._offer_repo = OfferRepository(session)
        self._trip_repo = TripRepository(session)
        self._payment_repo = PaymentRepository(session)
        self._dispute_repo = DisputeRepository(session)
        self._event_repo = EventRepository(session)

    def _now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _get_load_or_raise(self, load_id: int) -> Load:
        load = await self._load_repo.get_by_id(load_id)
        if load is None:
            raise LoadNotFoundError(load_id)
        return load

    async def _get_offer_or_raise(self, offer_id: int) -> Offer:
        offer = await self._offer_repo.get_by_id(offer_id)
        if offer is None:
            raise OfferNotFoundError(offer_id)
        return offer

    async def _get_trip_or_raise(self, trip_id: int) -> Trip:
        trip = await self._trip_repo.get_by_id(trip_id)
        if trip is None:
            raise TripNotFoundError(trip_id)
        return trip

    async def _get_payment_or_raise(self, payment_id: int) -> Payment:
        payment = await self._payment_repo.get_by_id(payment_id)
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        return payment

    async def _get_dispute_or_raise(self, dispute_id: int) -> Dispute:
        dispute = await self._dispute_repo.get_by_id(dispute_id)
        if dispute is None:
            raise DisputeNotFoundError(dispute_id)
        return dispute

    async def _get_trip_payment(self, trip: Trip) -> Payment:
        payment = await self._payment_repo.get_by_trip(trip.id)
        if payment is None:
            raise PaymentNotFoundError(f"trip {trip.id}")
        return payment

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _transition(
        self,
        repo: StatusRepository,
        entity: Any,
        machine_cls: type[StateMachine],
        event_name: str,
        *,
        load_id: int,
        event_type: EventType,
        actor: str,
        metadata: dict | None = None,
        **values: Any,
    ) -> str:
        """Validate, apply and audit one status change. Returns the old status."""
        old_status = entity.status
        new_status = validate_transition(machine_cls, old_status, event_name)
        await repo.compare_and_set(
            entity,
            old_status,
            status=new_status,
            updated_at=self._now(),
            **values,
        )
        await self._event_repo.record(
            load_id=load_id,
            entity_type=repo.model.__name__.upper(),
            entity_id=entity.id,
            event_type=event_type,
            old_status=old_status,
            new_status=new_status,
            actor=actor,
            metadata=metadata,
        )
        return old_status

    async def _settle_payment(
        self,
        payment: Payment,
        trip: Trip,
        event_name: str,
        actor: str,
        metadata: dict | None = None,
        **values: Any,
    ) -> None:
        """Move a funded payment to a terminal status and clear its timer."""
        await self._transition(
            self._payment_repo,
            payment,
            PaymentStateMachine,
            event_name,
            load_id=trip.load_id,
            event_type=EventType.PAYMENT_SETTLED,
            actor=actor,
            metadata=metadata,
            auto_release_at=None,
            **values,
        )

    async def _close_out(
        self,
        trip: Trip,
        actor: str,
        load_event: str = LOAD_EVENT_COMPLETE,
    ) -> Load:
        """Close the trip and finish its load once the payment reached a terminal status."""
        await self._transition(
            self._trip_repo,
            trip,
            TripStateMachine,
            "close_trip",
            load_id=trip.load_id,
            event_type=EventType.TRIP_CLOSED,
            actor=actor,
        )
        load = await self._get_load_or_raise(trip.load_id)
        await self._transition(
            self._load_repo,
            load,
            LoadStateMachine,
            load_event,
            load_id=load.id,
            event_type=EventType.LOAD_STATUS_CHANGED,
            actor=actor,
        )
        return load
