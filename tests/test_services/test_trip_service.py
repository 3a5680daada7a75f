"""Tests for TripService: assignment, start, delivery and confirmation."""

from __future__ import annotations

from datetime import timedelta

import pytest

from livestock_escrow.domain.authorization import Caller
from livestock_escrow.domain.enums import EventType, LoadStatus, Role, TripStatus
from livestock_escrow.domain.exceptions import (
    EscrowNotFundedError,
    ForbiddenError,
    InvalidInputError,
    InvalidStateTransitionError,
    TripNotFoundError,
)


class TestAssignment:
    @pytest.mark.asyncio
    async def test_hauler_assigns_driver_and_vehicle(self, pipeline, shipper, hauler) -> None:
        award = await pipeline.award(shipper, hauler)

        trip = await pipeline.trips.assign_driver(hauler, award.trip.id, " D1 ")
        trip = await pipeline.trips.assign_vehicle(hauler, award.trip.id, "TRAILER-7")

        assert trip.assigned_driver_id == "D1"
        assert trip.assigned_vehicle_id == "TRAILER-7"
        assert trip.status == TripStatus.PENDING_ESCROW

        events = await pipeline.trips.get_events(hauler, trip.id)
        assert [e.event_type for e in events][-2:] == [
            EventType.DRIVER_ASSIGNED,
            EventType.VEHICLE_ASSIGNED,
        ]
        assert events[-2].metadata_json == {"driver_id": "D1"}

    @pytest.mark.asyncio
    async def test_shipper_cannot_assign(self, pipeline, shipper, hauler) -> None:
        award = await pipeline.award(shipper, hauler)
        with pytest.raises(ForbiddenError):
            await pipeline.trips.assign_driver(shipper, award.trip.id, "D1")

    @pytest.mark.asyncio
    async def test_driver_id_required(self, pipeline, shipper, hauler) -> None:
        award = await pipeline.award(shipper, hauler)
        with pytest.raises(InvalidInputError) as exc_info:
            await pipeline.trips.assign_driver(hauler, award.trip.id, "  ")
        assert exc_info.value.field == "driver_id"

    @pytest.mark.asyncio
    async def test_no_assignment_once_started(self, pipeline, shipper, hauler) -> None:
        award = await pipeline.award(shipper, hauler)
        await pipeline.fund(shipper, award.trip)
        await pipeline.trips.start_trip(hauler, award.trip.id)
        with pytest.raises(InvalidStateTransitionError):
            await pipeline.trips.assign_vehicle(hauler, award.trip.id, "TRAILER-7")


class TestStartTrip:
    @pytest.mark.asyncio
    async def test_cannot_start_unfunded_trip(self, pipeline, shipper, hauler) -> None:
        award = await pipeline.award(shipper, hauler)
        with pytest.raises(EscrowNotFundedError) as exc_info:
            await pipeline.trips.start_trip(hauler, award.trip.id)
        assert exc_info.value.code == "ESCROW_NOT_FUNDED"
        assert award.trip.status == TripStatus.PENDING_ESCROW

    @pytest.mark.asyncio
    async def test_assigned_driver_starts(self, pipeline, shipper, hauler, clock) -> None:
        award = await pipeline.award(shipper, hauler)
        await pipeline.fund(shipper, award.trip)
        await pipeline.trips.assign_driver(hauler, award.trip.id, "D7")

        assigned = Caller(user_id="D7", role=Role.DRIVER, company_id="H-contract")
        trip, load = await pipeline.trips.start_trip(assigned, award.trip.id)

        assert trip.status == TripStatus.IN_PROGRESS
        assert trip.started_at == clock()
        assert load is award.load
        assert load.status == LoadStatus.IN_TRANSIT

    @pytest.mark.asyncio
    async def test_stranger_cannot_start(self, pipeline, shipper, hauler, outsider) -> None:
        award = await pipeline.award(shipper, hauler)
        await pipeline.fund(shipper, award.trip)
        with pytest.raises(ForbiddenError):
            await pipeline.trips.start_trip(outsider, award.trip.id)

    @pytest.mark.asyncio
    async def test_unknown_trip(self, pipeline, hauler) -> None:
        with pytest.raises(TripNotFoundError):
            await pipeline.trips.start_trip(hauler, 12345)


class TestDelivery:
    @pytest.mark.asyncio
    async def test_mark_delivered_moves_trip_and_load(self, pipeline, shipper, hauler) -> None:
        award = await pipeline.award(shipper, hauler)
        await pipeline.fund(shipper, award.trip)
        trip = await pipeline.delivered(shipper, hauler, award.trip)

        assert trip.status == TripStatus.DELIVERED_AWAITING_CONFIRMATION
        assert award.load.status == LoadStatus.DELIVERED

    @pytest.mark.asyncio
    async def test_shipper_cannot_mark_delivered(self, pipeline, shipper, hauler) -> None:
        award = await pipeline.award(shipper, hauler)
        await pipeline.fund(shipper, award.trip)
        await pipeline.trips.start_trip(hauler, award.trip.id)
        with pytest.raises(ForbiddenError):
            await pipeline.trips.mark_delivered(shipper, award.trip.id)

    @pytest.mark.asyncio
    async def test_confirm_arms_auto_release(self, pipeline, shipper, hauler, clock) -> None:
        award = await pipeline.award(shipper, hauler)
        await pipeline.fund(shipper, award.trip)
        await pipeline.delivered(shipper, hauler, award.trip)

        trip, payment = await pipeline.trips.confirm_delivery(shipper, award.trip.id)

        assert trip.status == TripStatus.DELIVERED_CONFIRMED
        assert trip.delivered_confirmed_at == clock()
        assert payment.auto_release_at == clock() + timedelta(hours=24)

    @pytest.mark.asyncio
    async def test_hauler_cannot_confirm(self, pipeline, shipper, hauler) -> None:
        award = await pipeline.award(shipper, hauler)
        await pipeline.fund(shipper, award.trip)
        await pipeline.delivered(shipper, hauler, award.trip)
        with pytest.raises(ForbiddenError):
            await pipeline.trips.confirm_delivery(hauler, award.trip.id)

    @pytest.mark.asyncio
    async def test_confirm_requires_delivery(self, pipeline, shipper, hauler) -> None:
        award = await pipeline.award(shipper, hauler)
        await pipeline.fund(shipper, award.trip)
        with pytest.raises(InvalidStateTransitionError):
            await pipeline.trips.confirm_delivery(shipper, award.trip.id)


class TestReads:
    @pytest.mark.asyncio
    async def test_support_reads_trip(self, pipeline, shipper, hauler, support) -> None:
        award = await pipeline.award(shipper, hauler)
        trip = await pipeline.trips.get_trip(support, award.trip.id)
        assert trip.id == award.trip.id

    @pytest.mark.asyncio
    async def test_rival_cannot_read_trip(self, pipeline, shipper, hauler, rival_hauler) -> None:
        award = await pipeline.award(shipper, hauler)
        with pytest.raises(ForbiddenError):
            await pipeline.trips.get_trip(rival_hauler, award.trip.id)
