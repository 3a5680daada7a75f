"""Escrow Service: funding, timed release and forced settlement of payments.

This is the application layer that coordinates between:
    - The payment provider adapter (funding intents, webhook signatures)
    - Domain state machines (transition guard)
    - Repositories (guarded updates)
    - Event log (audit trail)

Funding and release are both status-guarded, so provider webhook replays and
overlapping auto-release sweeps are no-ops rather than double transitions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from livestock_escrow.domain.authorization import (
    Action,
    Caller,
    admin_permissions,
    ensure_permitted,
    trip_permissions,
)
from livestock_escrow.domain.enums import (
    DisputeStatus,
    EventType,
    PaymentStatus,
    ProviderEvent,
    TripStatus,
)
from livestock_escrow.domain.exceptions import (
    EscrowNotFundedError,
    InvalidInputError,
    InvalidStateTransitionError,
)
from livestock_escrow.domain.state_machine import (
    DisputeStateMachine,
    PaymentStateMachine,
    TripStateMachine,
    validate_transition,
)
from livestock_escrow.logging_config import get_logger
from livestock_escrow.services.base import LOAD_EVENT_CANCEL, EscrowOutcome, PipelineService
from livestock_escrow.services.payment_service import DummyPaymentProvider

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from livestock_escrow.config import Settings
    from livestock_escrow.infrastructure.database.orm_models import Payment
    from livestock_escrow.services.base import Clock

logger = get_logger(__name__)

PROVIDER_ACTOR = "PROVIDER"
SYSTEM_ACTOR = "SYSTEM"

# payment event -> (dispute event, resolution) when an admin forces settlement
FORCED_RESOLUTIONS = {
    "release_to_hauler": ("resolve_release", DisputeStatus.RESOLVED_RELEASE_TO_HAULER),
    "refund_to_shipper": ("resolve_refund", DisputeStatus.RESOLVED_REFUND_TO_SHIPPER),
}


@dataclass
class FundingIntent:
    payment: Payment
    client_secret: str


class EscrowService(PipelineService):
    """Manages the escrow payment lifecycle."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        clock: Clock | None = None,
        provider: DummyPaymentProvider | None = None,
    ) -> None:
        super().__init__(session, settings=settings, clock=clock)
        self._provider = provider or DummyPaymentProvider(self._settings.payment_webhook_secret)

    @property
    def provider(self) -> DummyPaymentProvider:
        return self._provider

    # ------------------------------------------------------------------
    # Funding
    # ------------------------------------------------------------------

    async def get_payment_for_trip(self, caller: Caller, trip_id: int) -> Payment:
        trip = await self._get_trip_or_raise(trip_id)
        load = await self._get_load_or_raise(trip.load_id)
        ensure_permitted(
            caller, Action.VIEW_PAYMENT, trip_permissions(caller, trip, load), f"trip {trip.id}"
        )
        return await self._get_trip_payment(trip)

    async def create_funding_intent(self, caller: Caller, trip_id: int) -> FundingIntent:
        """Return the funding intent for a trip's escrow, minting one on first call.

        Does not change the payment's status; funding is confirmed by the
        provider webhook.
        """
        trip = await self._get_trip_or_raise(trip_id)
        load = await self._get_load_or_raise(trip.load_id)
        ensure_permitted(
            caller,
            Action.CREATE_FUNDING_INTENT,
            trip_permissions(caller, trip, load),
            f"trip {trip.id}",
        )

        if trip.status != TripStatus.PENDING_ESCROW:
            raise InvalidStateTransitionError(
                current_state=trip.status,
                attempted="CREATE_FUNDING_INTENT",
                message="Trip must be PENDING_ESCROW to create a payment intent.",
            )
        payment = await self._get_trip_payment(trip)

        if payment.external_intent_id is None:
            intent_id = self._provider.create_intent(payment.amount, payment.currency)
            await self._payment_repo.compare_and_set(
                payment,
                PaymentStatus.AWAITING_FUNDING,
                external_intent_id=intent_id,
                updated_at=self._now(),
            )
            await self._event_repo.record(
                load_id=load.id,
                entity_type="PAYMENT",
                entity_id=payment.id,
                event_type=EventType.FUNDING_INTENT_CREATED,
                old_status=payment.status,
                new_status=payment.status,
                actor=caller.user_id,
                metadata={"external_intent_id": intent_id},
            )
            logger.info("escrow.intent_created", payment_id=payment.id, intent_id=intent_id)

        return FundingIntent(
            payment=payment,
            client_secret=self._provider.client_secret(payment.external_intent_id),
        )

    async def handle_provider_event(
        self,
        external_intent_id: str | None,
        event: str | None,
        external_charge_id: str | None = None,
    ) -> Payment | None:
        """Apply a provider webhook call.

        Unknown intents and unknown events are acknowledged and ignored.
        Returns the affected payment, or None when nothing was applied.
        """
        if not external_intent_id or not event:
            raise InvalidInputError(
                "external_intent_id" if not external_intent_id else "event",
                "external_intent_id and event are required.",
            )

        payment = await self._payment_repo.get_by_intent(external_intent_id)
        if payment is None:
            logger.warning("escrow.webhook_unknown_intent", intent_id=external_intent_id)
            return None

        if event == ProviderEvent.PAYMENT_SUCCEEDED:
            return await self._mark_funded(payment, external_charge_id)
        if event == ProviderEvent.PAYMENT_FAILED:
            return await self._mark_funding_failed(payment)

        logger.info(
            "escrow.webhook_ignored_event", intent_id=external_intent_id, webhook_event=event
        )
        return None

    async def _mark_funded(
        self, payment: Payment, external_charge_id: str | None
    ) -> Payment | None:
        if payment.status != PaymentStatus.AWAITING_FUNDING:
            logger.info("escrow.webhook_replay", payment_id=payment.id, status=payment.status)
            return None

        trip = await self._get_trip_or_raise(payment.trip_id)
        values: dict = {}
        if external_charge_id:
            values["external_charge_id"] = external_charge_id
        try:
            await self._transition(
                self._payment_repo,
                payment,
                PaymentStateMachine,
                "confirm_funding",
                load_id=trip.load_id,
                event_type=EventType.ESCROW_FUNDED,
                actor=PROVIDER_ACTOR,
                metadata={"external_charge_id": external_charge_id},
                **values,
            )
        except InvalidStateTransitionError:
            # Funded by a concurrent delivery of the same event; nothing was written.
            logger.info("escrow.webhook_replay", payment_id=payment.id)
            return None

        if trip.status == TripStatus.PENDING_ESCROW:
            await self._transition(
                self._trip_repo,
                trip,
                TripStateMachine,
                "fund_escrow",
                load_id=trip.load_id,
                event_type=EventType.TRIP_READY,
                actor=PROVIDER_ACTOR,
            )

        logger.info(
            "escrow.funded",
            payment_id=payment.id,
            trip_id=trip.id,
            charge_id=external_charge_id,
        )
        return payment

    async def _mark_funding_failed(self, payment: Payment) -> Payment | None:
        if payment.status != PaymentStatus.AWAITING_FUNDING:
            # A funded or settled escrow never goes back to awaiting funding.
            logger.warning(
                "escrow.webhook_stale_failure", payment_id=payment.id, status=payment.status
            )
            return None

        trip = await self._get_trip_or_raise(payment.trip_id)
        await self._event_repo.record(
            load_id=trip.load_id,
            entity_type="PAYMENT",
            entity_id=payment.id,
            event_type=EventType.FUNDING_FAILED,
            old_status=payment.status,
            new_status=payment.status,
            actor=PROVIDER_ACTOR,
        )
        logger.warning("escrow.funding_failed", payment_id=payment.id, trip_id=trip.id)
        return payment

    # ------------------------------------------------------------------
    # Auto-release
    # ------------------------------------------------------------------

    async def run_auto_release(self, caller: Caller | None = None) -> list[int]:
        """Release every due, undisputed escrow to its hauler.

        Called by the background scheduler (no caller) or by an admin.
        Returns the ids of the payments released by this run.
        """
        if caller is not None:
            ensure_permitted(
                caller, Action.RUN_AUTO_RELEASE, admin_permissions(caller), "auto-release"
            )
        actor = caller.user_id if caller is not None else SYSTEM_ACTOR
        now = self._now()

        released: list[int] = []
        for payment in await self._payment_repo.due_for_release(now):
            old_status = payment.status
            if not await self._payment_repo.release_if_due(payment, now):
                continue

            trip = await self._get_trip_or_raise(payment.trip_id)
            await self._event_repo.record(
                load_id=trip.load_id,
                entity_type="PAYMENT",
                entity_id=payment.id,
                event_type=EventType.PAYMENT_SETTLED,
                old_status=old_status,
                new_status=payment.status,
                actor=actor,
                metadata={"reason": "auto_release"},
            )
            await self._close_out(trip, actor)
            released.append(payment.id)
            logger.info("escrow.auto_released", payment_id=payment.id, trip_id=trip.id)

        logger.info("escrow.auto_release_sweep", released=len(released))
        return released

    # ------------------------------------------------------------------
    # Admin settlement
    # ------------------------------------------------------------------

    async def force_release(self, caller: Caller, payment_id: int) -> EscrowOutcome:
        """Admin releases a funded escrow to the hauler."""
        return await self._force_settle(
            caller, payment_id, Action.FORCE_RELEASE, "release_to_hauler"
        )

    async def force_refund(self, caller: Caller, payment_id: int) -> EscrowOutcome:
        """Admin refunds a funded escrow to the shipper."""
        return await self._force_settle(
            caller, payment_id, Action.FORCE_REFUND, "refund_to_shipper"
        )

    async def _force_settle(
        self,
        caller: Caller,
        payment_id: int,
        action: Action,
        event_name: str,
    ) -> EscrowOutcome:
        """Settle a funded escrow, resolving its active dispute along the way."""
        ensure_permitted(caller, action, admin_permissions(caller), f"payment {payment_id}")
        payment = await self._get_payment_or_raise(payment_id)

        if payment.status == PaymentStatus.AWAITING_FUNDING:
            raise EscrowNotFundedError(payment.status, str(action).lower().replace("_", " "))
        validate_transition(PaymentStateMachine, payment.status, event_name)

        trip = await self._get_trip_or_raise(payment.trip_id)
        now = self._now()
        active = await self._dispute_repo.get_active_for_payment(payment.id)
        if active is not None:
            dispute_event, resolution = FORCED_RESOLUTIONS[event_name]
            await self._transition(
                self._dispute_repo,
                active,
                DisputeStateMachine,
                dispute_event,
                load_id=trip.load_id,
                event_type=EventType.DISPUTE_RESOLVED,
                actor=caller.user_id,
                metadata={"reason": str(action)},
                resolution_type=resolution.value,
                resolved_by_user_id=caller.user_id,
                resolved_at=now,
            )

        await self._settle_payment(
            payment, trip, event_name, caller.user_id, metadata={"reason": str(action)}
        )
        load = await self._close_out(trip, caller.user_id)

        logger.info(
            "escrow.force_settled",
            payment_id=payment.id,
            status=payment.status,
            dispute_id=active.id if active is not None else None,
            admin=caller.user_id,
        )
        return EscrowOutcome(payment=payment, trip=trip, load=load, dispute=active)

    async def cancel_unfunded(self, caller: Caller, payment_id: int) -> EscrowOutcome:
        """Admin abandons an escrow that was never funded; the load is cancelled."""
        ensure_permitted(
            caller, Action.CANCEL_ESCROW, admin_permissions(caller), f"payment {payment_id}"
        )
        payment = await self._get_payment_or_raise(payment_id)
        trip = await self._get_trip_or_raise(payment.trip_id)

        await self._transition(
            self._payment_repo,
            payment,
            PaymentStateMachine,
            "cancel_payment",
            load_id=trip.load_id,
            event_type=EventType.PAYMENT_CANCELLED,
            actor=caller.user_id,
        )
        load = await self._close_out(trip, caller.user_id, load_event=LOAD_EVENT_CANCEL)

        logger.info(
            "escrow.cancelled", payment_id=payment.id, trip_id=trip.id, admin=caller.user_id
        )
        return EscrowOutcome(payment=payment, trip=trip, load=load)
