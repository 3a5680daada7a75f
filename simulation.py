#!/usr/bin/env python3
"""Livestock Escrow: End-to-End Simulation.

Drives a load through the pipeline with a shipper, two hauler companies, a
driver and a platform admin. Every step runs in its own session and commits,
as an API request would.

    Scenario 1: Offer Award
        - Two haulers bid on a published load
        - The shipper accepts the second bid -> trip + escrow payment created,
          the other bid expires

    Scenario 2: Funding and Start
        - The shipper funds the escrow through the payment provider
        - The hauler assigns a driver, who starts the trip

    Scenario 3: Delivery and Timed Release
        - The hauler marks delivery, the shipper confirms it
        - 24 simulated hours later the auto-release sweep pays the hauler

    Scenario 4: Dispute Settled by Split
        - The shipper disputes a confirmed delivery, freezing the release timer
        - An admin splits the escrow between the parties

Usage:
    # SQLite in-memory (default, no database server needed):
    uv run python simulation.py

    # Against the configured DATABASE_URL (e.g. PostgreSQL via docker compose):
    uv run python simulation.py --configured-db

    # Run a specific scenario:
    uv run python simulation.py --scenario 4
"""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from livestock_escrow.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from livestock_escrow.config import Settings, get_settings  # noqa: E402
from livestock_escrow.domain.authorization import Caller  # noqa: E402
from livestock_escrow.domain.enums import LoadStatus, ProviderEvent, Role  # noqa: E402
from livestock_escrow.infrastructure.database.engine import (  # noqa: E402
    build_engine,
    build_session_factory,
    create_tables,
)
from livestock_escrow.infrastructure.database.orm_models import Load  # noqa: E402
from livestock_escrow.services import (  # noqa: E402
    DisputeService,
    EscrowService,
    OfferService,
    TripService,
)

SHIPPER = Caller(user_id="shipper-ana", role=Role.SHIPPER_OWNER, company_id="ranch-co")
HAULER_A = Caller(user_id="hauler-bo", role=Role.HAULER_OWNER, company_id="prairie-haul")
HAULER_B = Caller(user_id="hauler-cy", role=Role.HAULER_DISPATCHER, company_id="summit-freight")
DRIVER = Caller(user_id="driver-dee", role=Role.DRIVER, company_id="summit-freight")
ADMIN = Caller(user_id="admin-eli", role=Role.SUPER_ADMIN)


class SimulatedClock:
    """Clock the scenarios move forward to reach timer deadlines."""

    def __init__(self) -> None:
        self.now = datetime.now(UTC).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)
        logger.info("clock.advanced", now=self.now.isoformat())


@dataclass
class Services:
    offers: OfferService
    trips: TripService
    escrow: EscrowService
    disputes: DisputeService


@dataclass
class Simulation:
    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    clock: SimulatedClock

    @asynccontextmanager
    async def step(self) -> AsyncIterator[Services]:
        """One committed unit of work, like a single API request."""
        async with self.session_factory() as session:
            try:
                yield Services(
                    offers=OfferService(session, settings=self.settings, clock=self.clock),
                    trips=TripService(session, settings=self.settings, clock=self.clock),
                    escrow=EscrowService(session, settings=self.settings, clock=self.clock),
                    disputes=DisputeService(session, settings=self.settings, clock=self.clock),
                )
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def publish_load(self, asking_amount: Decimal) -> int:
        """Stand in for the listing service, which owns load creation."""
        async with self.session_factory() as session:
            load = Load(
                shipper_company_id=SHIPPER.company_id,
                status=LoadStatus.PUBLISHED.value,
                currency="USD",
                asking_amount=asking_amount,
            )
            session.add(load)
            await session.commit()
            logger.info("SHIPPER: Load published", load_id=load.id, asking=str(asking_amount))
            return load.id


# ---------------------------------------------------------------------------
# Pretty printing
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    print(f"\n--- {text} ---\n")


async def print_audit_trail(sim: Simulation, trip_id: int) -> None:
    """Print every recorded event for the trip's load in order."""
    async with sim.step() as svc:
        events = await svc.trips.get_events(ADMIN, trip_id)
    print("\n  Audit Trail:")
    for i, evt in enumerate(events, 1):
        old = evt.old_status or "-"
        new = evt.new_status or "-"
        print(f"    {i}. [{evt.event_type}] {evt.entity_type} {old} -> {new} (by {evt.actor})")
    print()


# ---------------------------------------------------------------------------
# Scenario steps
# ---------------------------------------------------------------------------
async def award_load(sim: Simulation) -> int:
    """Publish a load, collect two bids and accept the second. Returns the trip id."""
    load_id = await sim.publish_load(Decimal("1000.00"))

    async with sim.step() as svc:
        first = await svc.offers.create_offer(HAULER_A, load_id, Decimal("900.00"))
        second = await svc.offers.create_offer(
            HAULER_B, load_id, Decimal("950.00"), message="Double-deck trailer, leaving at dawn"
        )
    logger.info("HAULERS: Bids placed", first=first.id, second=second.id)

    async with sim.step() as svc:
        result = await svc.offers.accept_offer(SHIPPER, second.id)
    logger.info(
        "SHIPPER: Offer accepted",
        offer_id=result.offer.id,
        trip_id=result.trip.id,
        payment_id=result.payment.id,
        amount=str(result.payment.amount),
    )

    async with sim.step() as svc:
        page = await svc.offers.list_offers(SHIPPER, load_id)
    for offer in page.items:
        print(
            f"  offer {offer.id}: {offer.hauler_company_id} "
            f"{offer.offered_amount} {offer.status}"
        )
    return result.trip.id


async def fund_and_start(sim: Simulation, trip_id: int) -> None:
    async with sim.step() as svc:
        intent = await svc.escrow.create_funding_intent(SHIPPER, trip_id)
    logger.info("SHIPPER: Funding intent created", intent_id=intent.payment.external_intent_id)

    async with sim.step() as svc:
        await svc.escrow.handle_provider_event(
            intent.payment.external_intent_id,
            ProviderEvent.PAYMENT_SUCCEEDED.value,
            external_charge_id=f"ch_{trip_id}",
        )
    logger.info("PROVIDER: Payment succeeded", trip_id=trip_id)

    async with sim.step() as svc:
        await svc.trips.assign_driver(HAULER_B, trip_id, DRIVER.user_id)
        await svc.trips.assign_vehicle(HAULER_B, trip_id, "TRAILER-42")
        trip, _ = await svc.trips.start_trip(DRIVER, trip_id)
    logger.info("DRIVER: Trip started", trip_id=trip_id, status=trip.status)


async def deliver_and_confirm(sim: Simulation, trip_id: int) -> None:
    async with sim.step() as svc:
        await svc.trips.mark_delivered(DRIVER, trip_id)
    logger.info("DRIVER: Livestock delivered", trip_id=trip_id)

    async with sim.step() as svc:
        _, payment = await svc.trips.confirm_delivery(SHIPPER, trip_id)
    logger.info(
        "SHIPPER: Delivery confirmed",
        trip_id=trip_id,
        auto_release_at=payment.auto_release_at.isoformat(),
    )


async def scenario_1_offer_award(sim: Simulation) -> None:
    banner("SCENARIO 1: Offer Award")
    trip_id = await award_load(sim)
    await print_audit_trail(sim, trip_id)


async def scenario_2_funding_and_start(sim: Simulation) -> None:
    banner("SCENARIO 2: Funding and Start")
    trip_id = await award_load(sim)
    section("Funding the escrow")
    await fund_and_start(sim, trip_id)
    await print_audit_trail(sim, trip_id)


async def scenario_3_timed_release(sim: Simulation) -> None:
    banner("SCENARIO 3: Delivery and Timed Release")
    trip_id = await award_load(sim)
    await fund_and_start(sim, trip_id)
    section("Delivery")
    await deliver_and_confirm(sim, trip_id)

    section("Auto-release sweep")
    async with sim.step() as svc:
        early = await svc.escrow.run_auto_release()
    print(f"  released before the hold window: {early}")

    sim.clock.advance(hours=sim.settings.escrow_hold_hours)
    async with sim.step() as svc:
        released = await svc.escrow.run_auto_release()
    print(f"  released after the hold window: {released}")
    await print_audit_trail(sim, trip_id)


async def scenario_4_dispute_split(sim: Simulation) -> None:
    banner("SCENARIO 4: Dispute Settled by Split")
    trip_id = await award_load(sim)
    await fund_and_start(sim, trip_id)
    await deliver_and_confirm(sim, trip_id)

    section("Dispute")
    sim.clock.advance(hours=3)
    async with sim.step() as svc:
        dispute = await svc.disputes.open_dispute(
            SHIPPER,
            trip_id,
            "LIVESTOCK_INJURED",
            description="Two head arrived lame",
            requested_action="PARTIAL_REFUND",
        )
    logger.info("SHIPPER: Dispute opened", dispute_id=dispute.id)

    async with sim.step() as svc:
        await svc.disputes.start_review(ADMIN, dispute.id)
        outcome = await svc.disputes.resolve_split(
            ADMIN, dispute.id, Decimal("700.00"), Decimal("250.00")
        )
    logger.info(
        "ADMIN: Dispute resolved",
        dispute_id=outcome.dispute.id,
        status=outcome.dispute.status,
        to_hauler=str(outcome.payment.resolution_amount_to_hauler),
        to_shipper=str(outcome.payment.resolution_amount_to_shipper),
    )
    await print_audit_trail(sim, trip_id)


SCENARIOS = {
    1: scenario_1_offer_award,
    2: scenario_2_funding_and_start,
    3: scenario_3_timed_release,
    4: scenario_4_dispute_split,
}


async def run(scenario: int = 0, use_configured_db: bool = False) -> None:
    """Run one scenario, or all of them when ``scenario`` is 0."""
    if use_configured_db:
        settings = get_settings()
    else:
        settings = Settings(database_url="sqlite+aiosqlite:///:memory:", auto_release_enabled=False)

    engine = build_engine(settings)
    await create_tables(engine)
    sim = Simulation(
        settings=settings,
        session_factory=build_session_factory(engine),
        clock=SimulatedClock(),
    )

    try:
        if scenario == 0:
            for fn in SCENARIOS.values():
                await fn(sim)
        elif scenario in SCENARIOS:
            await SCENARIOS[scenario](sim)
        else:
            print(f"Unknown scenario {scenario}. Available: {', '.join(map(str, SCENARIOS))}")
            return

        print("\n" + "=" * 70)
        print("  ALL SCENARIOS COMPLETED SUCCESSFULLY")
        print("=" * 70 + "\n")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Livestock Escrow Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1-4). Default: run all.",
    )
    parser.add_argument(
        "--configured-db",
        action="store_true",
        help="Use DATABASE_URL from the environment instead of SQLite in-memory.",
    )
    args = parser.parse_args()
    asyncio.run(run(args.scenario, use_configured_db=args.configured_db))
