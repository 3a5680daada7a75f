"""Trip Service: execution of an awarded load.

A trip moves PENDING_ESCROW -> READY_TO_START (on funding, see EscrowService)
-> IN_PROGRESS -> DELIVERED_AWAITING_CONFIRMATION -> DELIVERED_CONFIRMED.
Starting requires a funded escrow; confirming delivery arms the payment's
auto-release timer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from livestock_escrow.domain.authorization import (
    Action,
    Caller,
    ensure_permitted,
    trip_permissions,
)
from livestock_escrow.domain.enums import EventType, PaymentStatus, TripStatus
from livestock_escrow.domain.exceptions import (
    EscrowNotFundedError,
    InvalidInputError,
    InvalidStateTransitionError,
)
from livestock_escrow.domain.state_machine import (
    LoadStateMachine,
    TripStateMachine,
    validate_transition,
)
from livestock_escrow.logging_config import get_logger
from livestock_escrow.services.base import PipelineService

if TYPE_CHECKING:
    from livestock_escrow.infrastructure.database.orm_models import (
        Load,
        Payment,
        PipelineEvent,
        Trip,
    )

logger = get_logger(__name__)

ASSIGNABLE_TRIP_STATUSES = (TripStatus.PENDING_ESCROW, TripStatus.READY_TO_START)


class TripService(PipelineService):
    """Manages trip assignment and progress."""

    async def _load_trip(self, caller: Caller, trip_id: int) -> tuple[Trip, Load, frozenset]:
        trip = await self._get_trip_or_raise(trip_id)
        load = await self._get_load_or_raise(trip.load_id)
        return trip, load, trip_permissions(caller, trip, load)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_trip(self, caller: Caller, trip_id: int) -> Trip:
        trip, _load, permitted = await self._load_trip(caller, trip_id)
        ensure_permitted(caller, Action.VIEW_TRIP, permitted, f"trip {trip.id}")
        return trip

    async def get_events(self, caller: Caller, trip_id: int) -> list[PipelineEvent]:
        """Audit trail of the trip's load, from the first offer to settlement."""
        trip, load, permitted = await self._load_trip(caller, trip_id)
        ensure_permitted(caller, Action.VIEW_TRIP_EVENTS, permitted, f"trip {trip.id}")
        return await self._event_repo.get_by_load(load.id)

    # ------------------------------------------------------------------
    # Assignment
    # ------------------------------------------------------------------

    async def assign_driver(self, caller: Caller, trip_id: int, driver_id: str | None) -> Trip:
        return await self._assign(
            caller, trip_id, Action.ASSIGN_DRIVER, "assigned_driver_id", "driver_id", driver_id
        )

    async def assign_vehicle(self, caller: Caller, trip_id: int, vehicle_id: str | None) -> Trip:
        return await self._assign(
            caller, trip_id, Action.ASSIGN_VEHICLE, "assigned_vehicle_id", "vehicle_id", vehicle_id
        )

    async def _assign(
        self,
        caller: Caller,
        trip_id: int,
        action: Action,
        column: str,
        field: str,
        value: str | None,
    ) -> Trip:
        trip, _load, permitted = await self._load_trip(caller, trip_id)
        ensure_permitted(caller, action, permitted, f"trip {trip.id}")

        if trip.status not in ASSIGNABLE_TRIP_STATUSES:
            raise InvalidStateTransitionError(
                current_state=trip.status,
                attempted=str(action),
                message=f"Cannot set {field} on a trip in {trip.status}.",
            )
        if not value or not value.strip():
            raise InvalidInputError(field, f"{field} is required.")

        await self._trip_repo.compare_and_set(
            trip,
            ASSIGNABLE_TRIP_STATUSES,
            updated_at=self._now(),
            **{column: value.strip()},
        )
        event_type = (
            EventType.DRIVER_ASSIGNED
            if action == Action.ASSIGN_DRIVER
            else EventType.VEHICLE_ASSIGNED
        )
        await self._event_repo.record(
            load_id=trip.load_id,
            entity_type="TRIP",
            entity_id=trip.id,
            event_type=event_type,
            old_status=trip.status,
            new_status=trip.status,
            actor=caller.user_id,
            metadata={field: getattr(trip, column)},
        )

        logger.info("trip.assigned", trip_id=trip.id, **{field: value.strip()})
        return trip

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    async def start_trip(self, caller: Caller, trip_id: int) -> tuple[Trip, Load]:
        """Start a READY_TO_START trip; the escrow must be funded."""
        trip, load, permitted = await self._load_trip(caller, trip_id)
        ensure_permitted(caller, Action.START_TRIP, permitted, f"trip {trip.id}")

        payment = await self._payment_repo.get_by_trip(trip.id)
        if payment is None or payment.status != PaymentStatus.ESCROW_FUNDED:
            raise EscrowNotFundedError(payment.status if payment else None, "start the trip")

        now = self._now()
        await self._transition(
            self._trip_repo,
            trip,
            TripStateMachine,
            "start_trip",
            load_id=load.id,
            event_type=EventType.TRIP_STARTED,
            actor=caller.user_id,
            started_at=now,
        )
        await self._transition(
            self._load_repo,
            load,
            LoadStateMachine,
            "dispatch",
            load_id=load.id,
            event_type=EventType.LOAD_STATUS_CHANGED,
            actor=caller.user_id,
        )

        logger.info("trip.started", trip_id=trip.id, load_id=load.id, by=caller.user_id)
        return trip, load

    async def mark_delivered(self, caller: Caller, trip_id: int) -> tuple[Trip, Load]:
        trip, load, permitted = await self._load_trip(caller, trip_id)
        ensure_permitted(caller, Action.MARK_DELIVERED, permitted, f"trip {trip.id}")

        await self._transition(
            self._trip_repo,
            trip,
            TripStateMachine,
            "mark_delivered",
            load_id=load.id,
            event_type=EventType.TRIP_DELIVERED,
            actor=caller.user_id,
            delivered_at=self._now(),
        )
        await self._transition(
            self._load_repo,
            load,
            LoadStateMachine,
            "deliver",
            load_id=load.id,
            event_type=EventType.LOAD_STATUS_CHANGED,
            actor=caller.user_id,
        )

        logger.info("trip.delivered", trip_id=trip.id, load_id=load.id)
        return trip, load

    async def confirm_delivery(self, caller: Caller, trip_id: int) -> tuple[Trip, Payment]:
        """Shipper confirms delivery; the payment auto-releases after the hold window."""
        trip, load, permitted = await self._load_trip(caller, trip_id)
        ensure_permitted(caller, Action.CONFIRM_DELIVERY, permitted, f"trip {trip.id}")

        validate_transition(TripStateMachine, trip.status, "confirm_delivery")
        payment = await self._payment_repo.get_by_trip(trip.id)
        if payment is None or payment.status != PaymentStatus.ESCROW_FUNDED:
            raise EscrowNotFundedError(payment.status if payment else None, "confirm delivery")

        now = self._now()
        await self._transition(
            self._trip_repo,
            trip,
            TripStateMachine,
            "confirm_delivery",
            load_id=load.id,
            event_type=EventType.DELIVERY_CONFIRMED,
            actor=caller.user_id,
            delivered_confirmed_at=now,
        )

        release_at = now + self._settings.escrow_hold_window
        await self._payment_repo.compare_and_set(
            payment,
            PaymentStatus.ESCROW_FUNDED,
            auto_release_at=release_at,
            updated_at=now,
        )
        await self._event_repo.record(
            load_id=load.id,
            entity_type="PAYMENT",
            entity_id=payment.id,
            event_type=EventType.AUTO_RELEASE_ARMED,
            old_status=payment.status,
            new_status=payment.status,
            actor=caller.user_id,
            metadata={"auto_release_at": release_at.isoformat()},
        )

        logger.info(
            "trip.delivery_confirmed",
            trip_id=trip.id,
            payment_id=payment.id,
            auto_release_at=release_at.isoformat(),
        )
        return trip, payment
