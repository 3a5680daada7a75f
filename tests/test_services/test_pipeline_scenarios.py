"""End-to-end pipeline scenarios at the service layer.

A: two bids, one accepted. B: funding, driver assignment and start.
C: delivery, confirmation and timed release. D: dispute settled by a split.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from livestock_escrow.domain.authorization import Caller
from livestock_escrow.domain.enums import (
    DisputeStatus,
    LoadStatus,
    OfferStatus,
    PaymentStatus,
    ProviderEvent,
    Role,
    TripStatus,
)

pytestmark = pytest.mark.integration


async def _scenario_a(pipeline, shipper, hauler, rival_hauler):  # noqa: ANN001, ANN202
    load = await pipeline.publish_load(asking_amount=Decimal("1000.00"))
    o1 = await pipeline.offers.create_offer(hauler, load.id, Decimal("900.00"))
    o2 = await pipeline.offers.create_offer(rival_hauler, load.id, Decimal("950.00"))
    result = await pipeline.offers.accept_offer(shipper, o2.id)
    return load, o1, o2, result


async def _scenario_b(pipeline, shipper, rival_hauler, result):  # noqa: ANN001, ANN202
    intent = await pipeline.escrow.create_funding_intent(shipper, result.trip.id)
    await pipeline.escrow.handle_provider_event(
        intent.payment.external_intent_id,
        ProviderEvent.PAYMENT_SUCCEEDED.value,
        external_charge_id="ch_scenario",
    )
    await pipeline.trips.assign_driver(rival_hauler, result.trip.id, "D1")


class TestPipelineScenarios:
    @pytest.mark.asyncio
    async def test_a_offer_award(self, pipeline, shipper, hauler, rival_hauler) -> None:
        load, o1, o2, result = await _scenario_a(pipeline, shipper, hauler, rival_hauler)

        assert o2.status == OfferStatus.ACCEPTED
        assert o1.status == OfferStatus.EXPIRED
        assert load.status == LoadStatus.AWAITING_ESCROW
        assert result.trip.offer_id == o2.id
        assert result.payment.trip_id == result.trip.id
        assert result.payment.amount == Decimal("950.00")

    @pytest.mark.asyncio
    async def test_b_funding_and_start_by_driver(
        self, pipeline, shipper, hauler, rival_hauler
    ) -> None:
        load, _o1, _o2, result = await _scenario_a(pipeline, shipper, hauler, rival_hauler)
        await _scenario_b(pipeline, shipper, rival_hauler, result)

        assert result.payment.status == PaymentStatus.ESCROW_FUNDED
        assert result.trip.status == TripStatus.READY_TO_START

        d1 = Caller(user_id="D1", role=Role.DRIVER, company_id="H2")
        await pipeline.trips.start_trip(d1, result.trip.id)

        assert result.trip.status == TripStatus.IN_PROGRESS
        assert load.status == LoadStatus.IN_TRANSIT

    @pytest.mark.asyncio
    async def test_c_delivery_and_timed_release(
        self, pipeline, shipper, hauler, rival_hauler, clock
    ) -> None:
        load, _o1, _o2, result = await _scenario_a(pipeline, shipper, hauler, rival_hauler)
        await _scenario_b(pipeline, shipper, rival_hauler, result)
        await pipeline.trips.start_trip(rival_hauler, result.trip.id)

        await pipeline.trips.mark_delivered(rival_hauler, result.trip.id)
        assert result.trip.status == TripStatus.DELIVERED_AWAITING_CONFIRMATION

        await pipeline.trips.confirm_delivery(shipper, result.trip.id)
        assert result.trip.status == TripStatus.DELIVERED_CONFIRMED
        assert result.payment.auto_release_at == clock() + timedelta(hours=24)

        assert await pipeline.escrow.run_auto_release() == []

        clock.advance(hours=24)
        assert await pipeline.escrow.run_auto_release() == [result.payment.id]
        assert result.payment.status == PaymentStatus.RELEASED_TO_HAULER
        assert result.trip.status == TripStatus.CLOSED
        assert load.status == LoadStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_d_dispute_with_split(
        self, pipeline, shipper, hauler, rival_hauler, admin, clock
    ) -> None:
        load, _o1, _o2, result = await _scenario_a(pipeline, shipper, hauler, rival_hauler)
        await _scenario_b(pipeline, shipper, rival_hauler, result)
        await pipeline.trips.start_trip(rival_hauler, result.trip.id)
        await pipeline.trips.mark_delivered(rival_hauler, result.trip.id)
        await pipeline.trips.confirm_delivery(shipper, result.trip.id)

        clock.advance(hours=3)
        dispute = await pipeline.disputes.open_dispute(shipper, result.trip.id, "LIVESTOCK_INJURED")
        assert result.payment.auto_release_at is None
        assert result.trip.status == TripStatus.DISPUTED

        outcome = await pipeline.disputes.resolve_split(
            admin, dispute.id, Decimal("700.00"), Decimal("250.00")
        )

        assert outcome.dispute.status == DisputeStatus.RESOLVED_SPLIT
        assert outcome.payment.status == PaymentStatus.SPLIT_BETWEEN_PARTIES
        assert outcome.payment.resolution_amount_to_hauler == Decimal("700.00")
        assert outcome.payment.resolution_amount_to_shipper == Decimal("250.00")
        assert outcome.trip.status == TripStatus.CLOSED
        assert outcome.load is load
        assert load.status == LoadStatus.COMPLETED
