"""Dispute Service: holding, reviewing and resolving a funded escrow.

Opening a dispute parks the trip in DISPUTED and clears the payment's
auto-release timer. An admin resolves it by releasing, refunding or splitting
the escrow, which closes the trip and completes the load. Cancelling the last
open dispute returns the trip to DELIVERED_CONFIRMED and re-arms the timer.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from livestock_escrow.domain.authorization import (
    Action,
    Caller,
    admin_permissions,
    dispute_permissions,
    ensure_permitted,
    trip_permissions,
)
from livestock_escrow.domain.enums import DisputeStatus, EventType, PaymentStatus, TripStatus
from livestock_escrow.domain.exceptions import (
    DisputeAlreadyOpenError,
    EscrowNotFundedError,
    InvalidInputError,
    InvalidStateTransitionError,
    SplitValidationError,
)
from livestock_escrow.domain.state_machine import (
    DisputeStateMachine,
    PaymentStateMachine,
    TripStateMachine,
    validate_transition,
)
from livestock_escrow.infrastructure.database.orm_models import Dispute
from livestock_escrow.logging_config import get_logger
from livestock_escrow.services.base import EscrowOutcome, PipelineService, to_money

if TYPE_CHECKING:
    from livestock_escrow.infrastructure.database.orm_models import Payment, Trip

logger = get_logger(__name__)

# dispute event -> (payment event, resolution)
RESOLUTIONS = {
    "resolve_release": ("release_to_hauler", DisputeStatus.RESOLVED_RELEASE_TO_HAULER),
    "resolve_refund": ("refund_to_shipper", DisputeStatus.RESOLVED_REFUND_TO_SHIPPER),
    "resolve_split": ("split_between_parties", DisputeStatus.RESOLVED_SPLIT),
}


class DisputeService(PipelineService):
    """Manages the dispute lifecycle of escrowed payments."""

    # ------------------------------------------------------------------
    # Open
    # ------------------------------------------------------------------

    async def open_dispute(
        self,
        caller: Caller,
        trip_id: int,
        reason_code: str | None,
        description: str | None = None,
        requested_action: str | None = None,
    ) -> Dispute:
        """Open a dispute against a delivered trip's funded escrow."""
        trip = await self._get_trip_or_raise(trip_id)
        load = await self._get_load_or_raise(trip.load_id)
        ensure_permitted(
            caller, Action.OPEN_DISPUTE, trip_permissions(caller, trip, load), f"trip {trip.id}"
        )

        if not reason_code or not reason_code.strip():
            raise InvalidInputError("reason_code", "reason_code is required.")

        payment = await self._payment_repo.get_by_trip(trip.id)
        if payment is None or payment.status != PaymentStatus.ESCROW_FUNDED:
            raise EscrowNotFundedError(payment.status if payment else None, "open a dispute")

        active = await self._dispute_repo.get_active_for_payment(payment.id)
        if active is not None:
            raise DisputeAlreadyOpenError(payment.id, active.id)

        # The trip moves first: its guarded UPDATE admits one opener per trip.
        try:
            await self._transition(
                self._trip_repo,
                trip,
                TripStateMachine,
                "open_dispute",
                load_id=load.id,
                event_type=EventType.TRIP_DISPUTED,
                actor=caller.user_id,
                metadata={"reason_code": reason_code.strip()},
            )
        except InvalidStateTransitionError:
            active = await self._dispute_repo.get_active_for_payment(payment.id)
            if active is not None:
                raise DisputeAlreadyOpenError(payment.id, active.id) from None
            raise

        now = self._now()
        # Guarded on ESCROW_FUNDED: a payment released by the sweep cannot be disputed.
        await self._payment_repo.compare_and_set(
            payment,
            PaymentStatus.ESCROW_FUNDED,
            auto_release_at=None,
            updated_at=now,
        )

        dispute = await self._dispute_repo.create(
            Dispute(
                trip_id=trip.id,
                payment_id=payment.id,
                opened_by_company_id=caller.company_id,
                opened_by_user_id=caller.user_id,
                status=DisputeStatus.OPEN.value,
                reason_code=reason_code.strip(),
                description=description,
                requested_action=requested_action,
                opened_at=now,
                created_at=now,
                updated_at=now,
            )
        )
        await self._event_repo.record(
            load_id=load.id,
            entity_type="DISPUTE",
            entity_id=dispute.id,
            event_type=EventType.DISPUTE_OPENED,
            old_status=None,
            new_status=DisputeStatus.OPEN,
            actor=caller.user_id,
            metadata={"reason_code": dispute.reason_code, "payment_id": payment.id},
        )

        logger.info(
            "dispute.opened",
            dispute_id=dispute.id,
            trip_id=trip.id,
            payment_id=payment.id,
            by=caller.user_id,
            reason_code=dispute.reason_code,
        )
        return dispute

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_dispute(self, caller: Caller, dispute_id: int) -> Dispute:
        dispute = await self._get_dispute_or_raise(dispute_id)
        trip = await self._get_trip_or_raise(dispute.trip_id)
        load = await self._get_load_or_raise(trip.load_id)
        ensure_permitted(
            caller,
            Action.VIEW_DISPUTE,
            dispute_permissions(caller, dispute, trip, load),
            f"dispute {dispute.id}",
        )
        return dispute

    async def list_disputes(self, caller: Caller, trip_id: int) -> list[Dispute]:
        trip = await self._get_trip_or_raise(trip_id)
        load = await self._get_load_or_raise(trip.load_id)
        ensure_permitted(
            caller, Action.VIEW_DISPUTE, trip_permissions(caller, trip, load), f"trip {trip.id}"
        )
        return await self._dispute_repo.list_for_trip(trip.id)

    # ------------------------------------------------------------------
    # Admin review & resolution
    # ------------------------------------------------------------------

    async def start_review(self, caller: Caller, dispute_id: int) -> Dispute:
        ensure_permitted(
            caller, Action.REVIEW_DISPUTE, admin_permissions(caller), f"dispute {dispute_id}"
        )
        dispute = await self._get_dispute_or_raise(dispute_id)
        trip = await self._get_trip_or_raise(dispute.trip_id)

        await self._transition(
            self._dispute_repo,
            dispute,
            DisputeStateMachine,
            "start_review",
            load_id=trip.load_id,
            event_type=EventType.DISPUTE_REVIEW_STARTED,
            actor=caller.user_id,
        )
        logger.info("dispute.review_started", dispute_id=dispute.id, admin=caller.user_id)
        return dispute

    async def resolve_release(self, caller: Caller, dispute_id: int) -> EscrowOutcome:
        return await self._resolve(caller, dispute_id, "resolve_release")

    async def resolve_refund(self, caller: Caller, dispute_id: int) -> EscrowOutcome:
        return await self._resolve(caller, dispute_id, "resolve_refund")

    async def resolve_split(
        self,
        caller: Caller,
        dispute_id: int,
        amount_to_hauler: Decimal | None,
        amount_to_shipper: Decimal | None,
    ) -> EscrowOutcome:
        """Split the escrow. A missing share counts as zero; the shares must add up exactly."""
        return await self._resolve(
            caller,
            dispute_id,
            "resolve_split",
            amount_to_hauler=amount_to_hauler,
            amount_to_shipper=amount_to_shipper,
        )

    async def _resolve(
        self,
        caller: Caller,
        dispute_id: int,
        event_name: str,
        amount_to_hauler: Decimal | None = None,
        amount_to_shipper: Decimal | None = None,
    ) -> EscrowOutcome:
        ensure_permitted(
            caller, Action.RESOLVE_DISPUTE, admin_permissions(caller), f"dispute {dispute_id}"
        )
        dispute = await self._get_dispute_or_raise(dispute_id)
        validate_transition(DisputeStateMachine, dispute.status, event_name)

        payment = await self._get_payment_or_raise(dispute.payment_id)
        trip = await self._get_trip_or_raise(dispute.trip_id)
        payment_event, resolution = RESOLUTIONS[event_name]

        amounts: dict = {}
        if resolution == DisputeStatus.RESOLVED_SPLIT:
            amounts = self._validate_split(payment, amount_to_hauler, amount_to_shipper)
        validate_transition(PaymentStateMachine, payment.status, payment_event)

        now = self._now()
        await self._transition(
            self._dispute_repo,
            dispute,
            DisputeStateMachine,
            event_name,
            load_id=trip.load_id,
            event_type=EventType.DISPUTE_RESOLVED,
            actor=caller.user_id,
            metadata={k: str(v) for k, v in amounts.items()} or None,
            resolution_type=resolution.value,
            resolved_by_user_id=caller.user_id,
            resolved_at=now,
            **amounts,
        )
        await self._settle_payment(
            payment,
            trip,
            payment_event,
            caller.user_id,
            metadata={"dispute_id": dispute.id},
            **amounts,
        )
        load = await self._close_out(trip, caller.user_id)

        logger.info(
            "dispute.resolved",
            dispute_id=dispute.id,
            resolution=resolution.value,
            payment_id=payment.id,
            admin=caller.user_id,
        )
        return EscrowOutcome(payment=payment, trip=trip, load=load, dispute=dispute)

    @staticmethod
    def _validate_split(
        payment: Payment,
        amount_to_hauler: Decimal | None,
        amount_to_shipper: Decimal | None,
    ) -> dict:
        to_hauler = to_money(
            "amount_to_hauler", 0 if amount_to_hauler is None else amount_to_hauler
        )
        to_shipper = to_money(
            "amount_to_shipper", 0 if amount_to_shipper is None else amount_to_shipper
        )
        if to_hauler < 0 or to_shipper < 0:
            raise SplitValidationError("Split amounts must not be negative.")
        if to_hauler + to_shipper != Decimal(payment.amount):
            raise SplitValidationError(
                f"Split amounts must add up to the payment amount {payment.amount} "
                f"(got {to_hauler} + {to_shipper})."
            )
        return {
            "resolution_amount_to_hauler": to_hauler,
            "resolution_amount_to_shipper": to_shipper,
        }

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    async def cancel_dispute(self, caller: Caller, dispute_id: int) -> EscrowOutcome:
        """The opener (or an admin) withdraws an OPEN dispute."""
        dispute = await self._get_dispute_or_raise(dispute_id)
        trip = await self._get_trip_or_raise(dispute.trip_id)
        load = await self._get_load_or_raise(trip.load_id)
        ensure_permitted(
            caller,
            Action.CANCEL_DISPUTE,
            dispute_permissions(caller, dispute, trip, load),
            f"dispute {dispute.id}",
        )

        await self._transition(
            self._dispute_repo,
            dispute,
            DisputeStateMachine,
            "cancel_dispute",
            load_id=load.id,
            event_type=EventType.DISPUTE_CANCELLED,
            actor=caller.user_id,
        )

        payment = await self._get_payment_or_raise(dispute.payment_id)
        remaining = await self._dispute_repo.get_active_for_payment(
            dispute.payment_id, exclude_id=dispute.id
        )
        if remaining is None:
            await self._resume_after_dispute(caller, dispute, trip, payment)

        logger.info("dispute.cancelled", dispute_id=dispute.id, by=caller.user_id)
        return EscrowOutcome(payment=payment, trip=trip, load=load, dispute=dispute)

    async def _resume_after_dispute(
        self, caller: Caller, dispute: Dispute, trip: Trip, payment: Payment
    ) -> None:
        if trip.status == TripStatus.DISPUTED:
            # Disputes opened before confirmation still resume as confirmed.
            confirmed: dict = {}
            if trip.delivered_confirmed_at is None:
                confirmed["delivered_confirmed_at"] = self._now()
            await self._transition(
                self._trip_repo,
                trip,
                TripStateMachine,
                "cancel_dispute",
                load_id=trip.load_id,
                event_type=EventType.TRIP_RESUMED,
                actor=caller.user_id,
                **confirmed,
            )

        if payment.status == PaymentStatus.ESCROW_FUNDED:
            release_at = self._now() + self._settings.escrow_hold_window
            await self._payment_repo.compare_and_set(
                payment,
                PaymentStatus.ESCROW_FUNDED,
                auto_release_at=release_at,
                updated_at=self._now(),
            )
            await self._event_repo.record(
                load_id=trip.load_id,
                entity_type="PAYMENT",
                entity_id=payment.id,
                event_type=EventType.AUTO_RELEASE_ARMED,
                old_status=payment.status,
                new_status=payment.status,
                actor=caller.user_id,
                metadata={"auto_release_at": release_at.isoformat(), "dispute_id": dispute.id},
            )
            logger.info(
                "escrow.auto_release_rearmed",
                payment_id=payment.id,
                auto_release_at=release_at.isoformat(),
            )
