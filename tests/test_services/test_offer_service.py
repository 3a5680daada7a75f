"""Tests for OfferService against a temporary SQLite database."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from livestock_escrow.domain.enums import (
    EventType,
    LoadStatus,
    OfferStatus,
    PaymentStatus,
    TripStatus,
)
from livestock_escrow.domain.exceptions import (
    ForbiddenError,
    InvalidInputError,
    InvalidStateTransitionError,
    LoadNotFoundError,
    OfferNotFoundError,
    SelfBidNotAllowedError,
)
from livestock_escrow.infrastructure.database.orm_models import Load, Offer, Payment, Trip
from livestock_escrow.infrastructure.database.repositories import EventRepository
from livestock_escrow.services import OfferService


class TestCreateOffer:
    @pytest.mark.asyncio
    async def test_creates_pending_offer_in_load_currency(self, pipeline, hauler) -> None:
        load = await pipeline.publish_load(currency="CAD")
        offer = await pipeline.offers.create_offer(
            hauler, load.id, Decimal("900.00"), message="Two decks, washed out"
        )

        assert offer.status == OfferStatus.PENDING
        assert offer.currency == "CAD"
        assert offer.hauler_company_id == "H1"
        assert offer.created_by_user_id == "u-hauler-1"

        events = await EventRepository(pipeline.session).get_by_load(load.id)
        assert [e.event_type for e in events] == [EventType.OFFER_CREATED]

    @pytest.mark.asyncio
    async def test_unknown_load(self, pipeline, hauler) -> None:
        with pytest.raises(LoadNotFoundError) as exc_info:
            await pipeline.offers.create_offer(hauler, 999, Decimal("10"))
        assert exc_info.value.code == "LOAD_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_load_must_be_published(self, pipeline, hauler) -> None:
        load = await pipeline.publish_load(status=LoadStatus.DRAFT)
        with pytest.raises(InvalidStateTransitionError):
            await pipeline.offers.create_offer(hauler, load.id, Decimal("900"))

    @pytest.mark.asyncio
    async def test_shipper_cannot_bid_on_own_load(self, pipeline, shipper) -> None:
        load = await pipeline.publish_load()
        with pytest.raises(SelfBidNotAllowedError):
            await pipeline.offers.create_offer(shipper, load.id, Decimal("900"))

    @pytest.mark.asyncio
    async def test_driver_cannot_bid(self, pipeline, driver) -> None:
        load = await pipeline.publish_load()
        with pytest.raises(ForbiddenError):
            await pipeline.offers.create_offer(driver, load.id, Decimal("900"))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
    async def test_amount_must_be_positive(self, pipeline, hauler, amount) -> None:
        load = await pipeline.publish_load()
        with pytest.raises(InvalidInputError) as exc_info:
            await pipeline.offers.create_offer(hauler, load.id, amount)
        assert exc_info.value.field == "offered_amount"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [Decimal("0.004"), Decimal("950.505")])
    async def test_sub_cent_amount_rejected(self, pipeline, shipper, hauler, amount) -> None:
        load = await pipeline.publish_load()
        with pytest.raises(InvalidInputError) as exc_info:
            await pipeline.offers.create_offer(hauler, load.id, amount)
        assert exc_info.value.code == "VALIDATION_ERROR"
        assert exc_info.value.field == "offered_amount"
        page = await pipeline.offers.list_offers(shipper, load.id)
        assert page.total == 0

    @pytest.mark.asyncio
    async def test_amount_beyond_column_width_rejected(self, pipeline, hauler) -> None:
        load = await pipeline.publish_load()
        with pytest.raises(InvalidInputError) as exc_info:
            await pipeline.offers.create_offer(hauler, load.id, Decimal("10000000000.00"))
        assert exc_info.value.field == "offered_amount"

    @pytest.mark.asyncio
    async def test_amount_stored_to_the_cent(self, pipeline, hauler) -> None:
        load = await pipeline.publish_load()
        offer = await pipeline.offers.create_offer(hauler, load.id, Decimal("950.5"))
        assert offer.offered_amount == Decimal("950.50")
        assert str(offer.offered_amount) == "950.50"

    @pytest.mark.asyncio
    async def test_expiry_must_be_in_the_future(self, pipeline, hauler, clock) -> None:
        load = await pipeline.publish_load()
        with pytest.raises(InvalidInputError) as exc_info:
            await pipeline.offers.create_offer(
                hauler, load.id, Decimal("900"), expires_at=clock() - timedelta(minutes=1)
            )
        assert exc_info.value.field == "expires_at"


class TestListOffers:
    @pytest.mark.asyncio
    async def test_shipper_sees_all_hauler_sees_own(
        self, pipeline, shipper, hauler, rival_hauler
    ) -> None:
        load = await pipeline.publish_load()
        await pipeline.offers.create_offer(hauler, load.id, Decimal("900"))
        await pipeline.offers.create_offer(rival_hauler, load.id, Decimal("950"))
        await pipeline.offers.create_offer(hauler, load.id, Decimal("880"))

        everything = await pipeline.offers.list_offers(shipper, load.id)
        assert everything.total == 3
        assert [o.offered_amount for o in everything.items] == [
            Decimal("900"), Decimal("950"), Decimal("880"),
        ]

        own = await pipeline.offers.list_offers(rival_hauler, load.id)
        assert own.total == 1
        assert own.items[0].hauler_company_id == "H2"

    @pytest.mark.asyncio
    async def test_pagination_and_clamping(self, pipeline, shipper, hauler) -> None:
        load = await pipeline.publish_load()
        for amount in ("900", "910", "920"):
            await pipeline.offers.create_offer(hauler, load.id, Decimal(amount))

        page = await pipeline.offers.list_offers(shipper, load.id, page=2, page_size=2)
        assert page.total == 3
        assert len(page.items) == 1
        assert page.items[0].offered_amount == Decimal("920")

        clamped = await pipeline.offers.list_offers(shipper, load.id, page_size=10_000)
        assert clamped.page_size == pipeline.settings.offers_page_size_max

    @pytest.mark.asyncio
    async def test_bad_page_rejected(self, pipeline, shipper) -> None:
        load = await pipeline.publish_load()
        with pytest.raises(InvalidInputError):
            await pipeline.offers.list_offers(shipper, load.id, page=0)


class TestWithdrawAndReject:
    @pytest.mark.asyncio
    async def test_hauler_withdraws(self, pipeline, hauler) -> None:
        load = await pipeline.publish_load()
        offer = await pipeline.offers.create_offer(hauler, load.id, Decimal("900"))
        withdrawn = await pipeline.offers.withdraw_offer(hauler, offer.id)
        assert withdrawn.status == OfferStatus.WITHDRAWN

    @pytest.mark.asyncio
    async def test_shipper_cannot_withdraw(self, pipeline, shipper, hauler) -> None:
        load = await pipeline.publish_load()
        offer = await pipeline.offers.create_offer(hauler, load.id, Decimal("900"))
        with pytest.raises(ForbiddenError):
            await pipeline.offers.withdraw_offer(shipper, offer.id)

    @pytest.mark.asyncio
    async def test_reject_sets_timestamp(self, pipeline, shipper, hauler, clock) -> None:
        load = await pipeline.publish_load()
        offer = await pipeline.offers.create_offer(hauler, load.id, Decimal("900"))
        rejected = await pipeline.offers.reject_offer(shipper, offer.id)
        assert rejected.status == OfferStatus.REJECTED
        assert rejected.rejected_at == clock()

    @pytest.mark.asyncio
    async def test_rejected_offer_cannot_be_withdrawn(self, pipeline, shipper, hauler) -> None:
        load = await pipeline.publish_load()
        offer = await pipeline.offers.create_offer(hauler, load.id, Decimal("900"))
        await pipeline.offers.reject_offer(shipper, offer.id)
        with pytest.raises(InvalidStateTransitionError):
            await pipeline.offers.withdraw_offer(hauler, offer.id)

    @pytest.mark.asyncio
    async def test_unknown_offer(self, pipeline, shipper) -> None:
        with pytest.raises(OfferNotFoundError):
            await pipeline.offers.reject_offer(shipper, 404)


class TestAcceptOffer:
    @pytest.mark.asyncio
    async def test_accept_awards_load_and_expires_siblings(
        self, pipeline, shipper, hauler, rival_hauler
    ) -> None:
        load = await pipeline.publish_load()
        losing = await pipeline.offers.create_offer(hauler, load.id, Decimal("900.00"))
        winning = await pipeline.offers.create_offer(rival_hauler, load.id, Decimal("950.00"))

        result = await pipeline.offers.accept_offer(shipper, winning.id)

        assert result.offer.status == OfferStatus.ACCEPTED
        assert result.load.status == LoadStatus.AWAITING_ESCROW
        assert result.load.awarded_offer_id == winning.id
        assert losing.status == OfferStatus.EXPIRED

        assert result.trip.status == TripStatus.PENDING_ESCROW
        assert result.trip.hauler_company_id == "H2"
        assert result.payment.status == PaymentStatus.AWAITING_FUNDING
        assert result.payment.amount == Decimal("950.00")
        assert result.payment.payer_company_id == "S1"
        assert result.payment.beneficiary_company_id == "H2"
        assert result.payment.is_escrow is True
        assert result.payment.auto_release_at is None

        events = await EventRepository(pipeline.session).get_by_load(load.id)
        types = [e.event_type for e in events]
        assert types.count(EventType.OFFER_EXPIRED) == 1
        assert EventType.LOAD_AWARDED in types
        assert types[-2:] == [EventType.TRIP_CREATED, EventType.PAYMENT_CREATED]

    @pytest.mark.asyncio
    async def test_only_one_offer_accepted(self, pipeline, shipper, hauler, rival_hauler) -> None:
        load = await pipeline.publish_load()
        first = await pipeline.offers.create_offer(hauler, load.id, Decimal("900"))
        second = await pipeline.offers.create_offer(rival_hauler, load.id, Decimal("950"))
        await pipeline.offers.accept_offer(shipper, first.id)

        with pytest.raises(InvalidStateTransitionError):
            await pipeline.offers.accept_offer(shipper, second.id)

        accepted = await pipeline.session.scalars(
            select(Offer).where(Offer.load_id == load.id, Offer.status == OfferStatus.ACCEPTED)
        )
        assert [o.id for o in accepted] == [first.id]

    @pytest.mark.asyncio
    async def test_hauler_cannot_accept(self, pipeline, hauler) -> None:
        load = await pipeline.publish_load()
        offer = await pipeline.offers.create_offer(hauler, load.id, Decimal("900"))
        with pytest.raises(ForbiddenError):
            await pipeline.offers.accept_offer(hauler, offer.id)

    @pytest.mark.asyncio
    async def test_expired_offer_cannot_be_accepted(self, pipeline, shipper, hauler, clock) -> None:
        load = await pipeline.publish_load()
        offer = await pipeline.offers.create_offer(
            hauler, load.id, Decimal("900"), expires_at=clock() + timedelta(hours=1)
        )
        clock.advance(hours=2)
        with pytest.raises(InvalidStateTransitionError):
            await pipeline.offers.accept_offer(shipper, offer.id)

    @pytest.mark.asyncio
    async def test_stale_accept_leaves_no_partial_writes(
        self, session_factory, settings, clock, shipper, hauler
    ) -> None:
        async with session_factory() as setup:
            load = Load(shipper_company_id="S1", status=LoadStatus.PUBLISHED.value, currency="USD")
            setup.add(load)
            await setup.flush()
            offer = await OfferService(setup, settings=settings, clock=clock).create_offer(
                hauler, load.id, Decimal("900")
            )
            await setup.commit()
            load_id, offer_id = load.id, offer.id

        async with session_factory() as stale:
            svc = OfferService(stale, settings=settings, clock=clock)
            # Read the load while it is still PUBLISHED.
            await svc.get_offer(shipper, offer_id)

            async with session_factory() as other:
                other_load = await other.get(Load, load_id)
                other_load.status = LoadStatus.CANCELLED.value
                await other.commit()

            with pytest.raises(InvalidStateTransitionError):
                await svc.accept_offer(shipper, offer_id)
            await stale.rollback()

        async with session_factory() as check:
            assert (await check.get(Offer, offer_id)).status == OfferStatus.PENDING
            assert (await check.get(Load, load_id)).status == LoadStatus.CANCELLED
            assert (await check.scalars(select(Trip))).all() == []
            assert (await check.scalars(select(Payment))).all() == []
