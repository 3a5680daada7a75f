"""Offer Service: the bidding half of the pipeline.

Haulers bid on PUBLISHED loads; the shipper accepts exactly one bid, which
awards the load, expires every competing bid and opens the trip and its
escrow payment in the same transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from livestock_escrow.domain.authorization import (
    Action,
    Caller,
    ensure_permitted,
    load_permissions,
    offer_permissions,
)
from livestock_escrow.domain.enums import (
    EventType,
    LoadStatus,
    OfferStatus,
    PaymentStatus,
    TripStatus,
)
from livestock_escrow.domain.exceptions import (
    InvalidInputError,
    InvalidStateTransitionError,
    SelfBidNotAllowedError,
)
from livestock_escrow.domain.state_machine import (
    LoadStateMachine,
    OfferStateMachine,
    validate_transition,
)
from livestock_escrow.infrastructure.database.orm_models import Load, Offer, Payment, Trip
from livestock_escrow.logging_config import get_logger
from livestock_escrow.services.base import PipelineService, to_money

logger = get_logger(__name__)


@dataclass
class OfferPage:
    items: list[Offer]
    page: int
    page_size: int
    total: int


@dataclass
class AwardResult:
    """Everything an accepted offer produces."""

    offer: Offer
    trip: Trip
    payment: Payment
    load: Load


class OfferService(PipelineService):
    """Manages hauler offers on loads."""

    # ------------------------------------------------------------------
    # Creation & listing
    # ------------------------------------------------------------------

    async def create_offer(
        self,
        caller: Caller,
        load_id: int,
        offered_amount: Decimal,
        currency: str | None = None,
        message: str | None = None,
        expires_at: datetime | None = None,
    ) -> Offer:
        """Place a PENDING bid on a PUBLISHED load."""
        load = await self._get_load_or_raise(load_id)

        if load.status != LoadStatus.PUBLISHED:
            raise InvalidStateTransitionError(
                current_state=load.status,
                attempted="CREATE_OFFER",
                message="Offers can only be placed on PUBLISHED loads.",
            )
        if caller.company_id is not None and caller.company_id == load.shipper_company_id:
            raise SelfBidNotAllowedError(load.id)
        ensure_permitted(
            caller, Action.CREATE_OFFER, load_permissions(caller, load), f"load {load.id}"
        )

        if offered_amount is None:
            raise InvalidInputError("offered_amount", "offered_amount must be a positive number.")
        amount = to_money("offered_amount", offered_amount)
        if amount <= 0:
            raise InvalidInputError("offered_amount", "offered_amount must be a positive number.")
        if expires_at is not None and expires_at <= self._now():
            raise InvalidInputError("expires_at", "expires_at must be in the future.")

        offer = Offer(
            load_id=load.id,
            hauler_company_id=caller.company_id,
            created_by_user_id=caller.user_id,
            offered_amount=amount,
            currency=currency or load.currency,
            message=message,
            status=OfferStatus.PENDING.value,
            expires_at=expires_at,
            created_at=self._now(),
            updated_at=self._now(),
        )
        offer = await self._offer_repo.create(offer)

        await self._event_repo.record(
            load_id=load.id,
            entity_type="OFFER",
            entity_id=offer.id,
            event_type=EventType.OFFER_CREATED,
            old_status=None,
            new_status=OfferStatus.PENDING,
            actor=caller.user_id,
            metadata={"offered_amount": str(offer.offered_amount), "currency": offer.currency},
        )

        logger.info(
            "offer.created",
            offer_id=offer.id,
            load_id=load.id,
            hauler_company_id=offer.hauler_company_id,
            amount=str(offer.offered_amount),
        )
        return offer

    async def list_offers(
        self,
        caller: Caller,
        load_id: int,
        page: int = 1,
        page_size: int | None = None,
    ) -> OfferPage:
        """List a load's offers. Haulers only ever see their own company's bids."""
        load = await self._get_load_or_raise(load_id)

        if page < 1:
            raise InvalidInputError("page", "page must be >= 1.")
        if page_size is None:
            page_size = self._settings.offers_page_size_default
        if page_size < 1:
            raise InvalidInputError("page_size", "page_size must be >= 1.")
        page_size = min(page_size, self._settings.offers_page_size_max)

        permitted = load_permissions(caller, load)
        if Action.LIST_ALL_OFFERS in permitted:
            hauler_filter = None
        else:
            ensure_permitted(caller, Action.LIST_OWN_OFFERS, permitted, f"load {load.id}")
            hauler_filter = caller.company_id

        items, total = await self._offer_repo.list_for_load(
            load.id,
            hauler_company_id=hauler_filter,
            offset=(page - 1) * page_size,
            limit=page_size,
        )
        return OfferPage(items=items, page=page, page_size=page_size, total=total)

    async def get_offer(self, caller: Caller, offer_id: int) -> Offer:
        offer = await self._get_offer_or_raise(offer_id)
        load = await self._get_load_or_raise(offer.load_id)
        ensure_permitted(
            caller, Action.VIEW_OFFER, offer_permissions(caller, offer, load), f"offer {offer.id}"
        )
        return offer

    # ------------------------------------------------------------------
    # Withdraw / reject
    # ------------------------------------------------------------------

    async def withdraw_offer(self, caller: Caller, offer_id: int) -> Offer:
        """The bidding hauler pulls a PENDING offer."""
        offer = await self._get_offer_or_raise(offer_id)
        load = await self._get_load_or_raise(offer.load_id)
        ensure_permitted(
            caller,
            Action.WITHDRAW_OFFER,
            offer_permissions(caller, offer, load),
            f"offer {offer.id}",
        )

        await self._transition(
            self._offer_repo,
            offer,
            OfferStateMachine,
            "withdraw",
            load_id=load.id,
            event_type=EventType.OFFER_WITHDRAWN,
            actor=caller.user_id,
        )
        logger.info("offer.withdrawn", offer_id=offer.id, load_id=load.id)
        return offer

    async def reject_offer(self, caller: Caller, offer_id: int) -> Offer:
        """The shipper turns down a PENDING offer."""
        offer = await self._get_offer_or_raise(offer_id)
        load = await self._get_load_or_raise(offer.load_id)
        ensure_permitted(
            caller,
            Action.REJECT_OFFER,
            offer_permissions(caller, offer, load),
            f"offer {offer.id}",
        )

        now = self._now()
        await self._transition(
            self._offer_repo,
            offer,
            OfferStateMachine,
            "reject",
            load_id=load.id,
            event_type=EventType.OFFER_REJECTED,
            actor=caller.user_id,
            rejected_at=now,
        )
        logger.info("offer.rejected", offer_id=offer.id, load_id=load.id)
        return offer

    # ------------------------------------------------------------------
    # Accept
    # ------------------------------------------------------------------

    async def accept_offer(self, caller: Caller, offer_id: int) -> AwardResult:
        """Award the load to one offer.

        The load is claimed first (PUBLISHED -> AWAITING_ESCROW), then the
        offer (PENDING -> ACCEPTED), so two accepts on the same load, or an
        accept racing a withdraw, cannot both succeed. Competing PENDING
        offers expire, and the trip and its escrow payment are created.
        """
        offer = await self._get_offer_or_raise(offer_id)
        load = await self._get_load_or_raise(offer.load_id)
        ensure_permitted(
            caller,
            Action.ACCEPT_OFFER,
            offer_permissions(caller, offer, load),
            f"offer {offer.id}",
        )

        validate_transition(LoadStateMachine, load.status, "award")
        validate_transition(OfferStateMachine, offer.status, "accept")
        now = self._now()
        if offer.expires_at is not None and offer.expires_at <= now:
            raise InvalidStateTransitionError(
                current_state=offer.status,
                attempted=OfferStatus.ACCEPTED,
                message=f"Offer {offer.id} expired at {offer.expires_at.isoformat()}.",
            )

        await self._transition(
            self._load_repo,
            load,
            LoadStateMachine,
            "award",
            load_id=load.id,
            event_type=EventType.LOAD_AWARDED,
            actor=caller.user_id,
            metadata={"offer_id": offer.id},
            awarded_offer_id=offer.id,
        )
        await self._transition(
            self._offer_repo,
            offer,
            OfferStateMachine,
            "accept",
            load_id=load.id,
            event_type=EventType.OFFER_ACCEPTED,
            actor=caller.user_id,
            accepted_at=now,
        )

        expired_ids = await self._offer_repo.expire_pending_siblings(load.id, offer.id, now)
        for expired_id in expired_ids:
            await self._event_repo.record(
                load_id=load.id,
                entity_type="OFFER",
                entity_id=expired_id,
                event_type=EventType.OFFER_EXPIRED,
                old_status=OfferStatus.PENDING,
                new_status=OfferStatus.EXPIRED,
                actor=caller.user_id,
                metadata={"accepted_offer_id": offer.id},
            )

        trip = await self._trip_repo.create(
            Trip(
                load_id=load.id,
                offer_id=offer.id,
                hauler_company_id=offer.hauler_company_id,
                status=TripStatus.PENDING_ESCROW.value,
                created_at=now,
                updated_at=now,
            )
        )
        await self._event_repo.record(
            load_id=load.id,
            entity_type="TRIP",
            entity_id=trip.id,
            event_type=EventType.TRIP_CREATED,
            old_status=None,
            new_status=TripStatus.PENDING_ESCROW,
            actor=caller.user_id,
        )

        payment = await self._payment_repo.create(
            Payment(
                trip_id=trip.id,
                payer_company_id=load.shipper_company_id,
                beneficiary_company_id=offer.hauler_company_id,
                amount=offer.offered_amount,
                currency=offer.currency,
                status=PaymentStatus.AWAITING_FUNDING.value,
                is_escrow=True,
                external_provider=self._settings.payment_provider_name,
                created_at=now,
                updated_at=now,
            )
        )
        await self._event_repo.record(
            load_id=load.id,
            entity_type="PAYMENT",
            entity_id=payment.id,
            event_type=EventType.PAYMENT_CREATED,
            old_status=None,
            new_status=PaymentStatus.AWAITING_FUNDING,
            actor=caller.user_id,
            metadata={"amount": str(payment.amount), "currency": payment.currency},
        )

        logger.info(
            "offer.accepted",
            offer_id=offer.id,
            load_id=load.id,
            trip_id=trip.id,
            payment_id=payment.id,
            expired_offer_ids=expired_ids,
        )
        return AwardResult(offer=offer, trip=trip, payment=payment, load=load)
