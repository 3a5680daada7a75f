"""Shared test fixtures for the livestock escrow test suite.

Provides:
    - A temporary SQLite database (sqlite+aiosqlite) with the schema created
    - A frozen, advanceable clock injected into the services
    - Callers for every party in the pipeline
    - A ``pipeline`` helper that drives a load through award, funding and delivery
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from livestock_escrow.config import Settings
from livestock_escrow.domain.authorization import Caller
from livestock_escrow.domain.enums import LoadStatus, ProviderEvent, Role
from livestock_escrow.infrastructure.database.engine import build_session_factory, create_tables
from livestock_escrow.infrastructure.database.orm_models import Load, Payment, Trip
from livestock_escrow.services import DisputeService, EscrowService, OfferService, TripService
from livestock_escrow.services.offer_service import AwardResult


class FrozenClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


# ---------------------------------------------------------------------------
# Infrastructure Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def database_url(tmp_path) -> str:  # noqa: ANN001
    return f"sqlite+aiosqlite:///{tmp_path / 'pipeline.db'}"


@pytest.fixture
def settings(database_url: str) -> Settings:
    return Settings(
        database_url=database_url,
        app_env="development",
        escrow_hold_hours=24,
        payment_webhook_secret="",
        auto_release_enabled=False,
        offers_page_size_default=20,
        offers_page_size_max=100,
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2025, 3, 1, 12, 0, tzinfo=UTC))


@pytest_asyncio.fixture
async def engine(database_url: str):  # noqa: ANN201
    engine = create_async_engine(database_url)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:  # noqa: ANN001
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory: async_sessionmaker[AsyncSession]):  # noqa: ANN201
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Caller Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def shipper() -> Caller:
    return Caller(user_id="u-shipper", role=Role.SHIPPER_OWNER, company_id="S1")


@pytest.fixture
def hauler() -> Caller:
    return Caller(user_id="u-hauler-1", role=Role.HAULER_OWNER, company_id="H1")


@pytest.fixture
def rival_hauler() -> Caller:
    return Caller(user_id="u-hauler-2", role=Role.HAULER_DISPATCHER, company_id="H2")


@pytest.fixture
def driver() -> Caller:
    return Caller(user_id="D1", role=Role.DRIVER, company_id="H1")


@pytest.fixture
def admin() -> Caller:
    return Caller(user_id="u-admin", role=Role.SUPER_ADMIN)


@pytest.fixture
def support() -> Caller:
    return Caller(user_id="u-support", role=Role.READ_ONLY_SUPPORT)


@pytest.fixture
def outsider() -> Caller:
    return Caller(user_id="u-outsider", role=Role.HAULER_OWNER, company_id="H9")


# ---------------------------------------------------------------------------
# Pipeline Helper
# ---------------------------------------------------------------------------


@dataclass
class Pipeline:
    """Services bound to one session plus shortcuts to reach a given stage."""

    session: AsyncSession
    settings: Settings
    clock: FrozenClock
    offers: OfferService
    trips: TripService
    escrow: EscrowService
    disputes: DisputeService

    async def publish_load(
        self,
        shipper_company_id: str = "S1",
        asking_amount: Decimal | None = Decimal("1000.00"),
        status: LoadStatus = LoadStatus.PUBLISHED,
        currency: str = "USD",
    ) -> Load:
        load = Load(
            shipper_company_id=shipper_company_id,
            status=status.value,
            currency=currency,
            asking_amount=asking_amount,
        )
        self.session.add(load)
        await self.session.flush()
        return load

    async def award(
        self,
        shipper: Caller,
        hauler: Caller,
        amount: Decimal = Decimal("950.00"),
    ) -> AwardResult:
        load = await self.publish_load(shipper_company_id=shipper.company_id)
        offer = await self.offers.create_offer(hauler, load.id, amount)
        return await self.offers.accept_offer(shipper, offer.id)

    async def fund(self, shipper: Caller, trip: Trip, charge_id: str = "ch_test") -> Payment:
        intent = await self.escrow.create_funding_intent(shipper, trip.id)
        payment = await self.escrow.handle_provider_event(
            intent.payment.external_intent_id,
            ProviderEvent.PAYMENT_SUCCEEDED.value,
            external_charge_id=charge_id,
        )
        assert payment is not None
        return payment

    async def delivered(self, shipper: Caller, hauler: Caller, trip: Trip) -> Trip:
        """Start and deliver a funded trip, leaving it awaiting confirmation."""
        await self.trips.start_trip(hauler, trip.id)
        trip, _ = await self.trips.mark_delivered(hauler, trip.id)
        return trip

    async def confirmed(self, shipper: Caller, hauler: Caller) -> AwardResult:
        """Award, fund, deliver and confirm a trip."""
        award = await self.award(shipper, hauler)
        await self.fund(shipper, award.trip)
        await self.delivered(shipper, hauler, award.trip)
        await self.trips.confirm_delivery(shipper, award.trip.id)
        return award


@pytest.fixture
def pipeline(session: AsyncSession, settings: Settings, clock: FrozenClock) -> Pipeline:
    return Pipeline(
        session=session,
        settings=settings,
        clock=clock,
        offers=OfferService(session, settings=settings, clock=clock),
        trips=TripService(session, settings=settings, clock=clock),
        escrow=EscrowService(session, settings=settings, clock=clock),
        disputes=DisputeService(session, settings=settings, clock=clock),
    )
