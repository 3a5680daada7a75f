"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).

Every status change goes through ``compare_and_set``: a single
``UPDATE ... WHERE id = :id AND status IN (:expected)``. When another request
moved the row first the update matches nothing and InvalidStateTransitionError
is raised, which rolls the whole request back.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING, Any, ClassVar

from sqlalchemy import exists, func, select, update
from sqlalchemy.orm.attributes import set_committed_value

from livestock_escrow.domain.enums import (
    ACTIVE_DISPUTE_STATUSES,
    OfferStatus,
    PaymentStatus,
)
from livestock_escrow.domain.exceptions import InvalidStateTransitionError
from livestock_escrow.infrastructure.database.orm_models import (
    Dispute,
    Load,
    Offer,
    Payment,
    PipelineEvent,
    Trip,
    utcnow,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from livestock_escrow.domain.enums import EventType


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, enum.Enum) else value


def _active_dispute_exists():
    """Correlated EXISTS over OPEN/UNDER_REVIEW disputes of the outer payment row."""
    return (
        exists()
        .where(
            Dispute.payment_id == Payment.id,
            Dispute.status.in_([s.value for s in ACTIVE_DISPUTE_STATUSES]),
        )
        .correlate(Payment)
    )


class StatusRepository:
    """Shared point lookup, insert and guarded status update."""

    model: ClassVar[type]

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, entity):  # noqa: ANN001, ANN201
        """Insert a new row and flush so its id is assigned."""
        self._session.add(entity)
        await self._session.flush()
        return entity

    async def get_by_id(self, entity_id: int):  # noqa: ANN201
        result = await self._session.execute(
            select(self.model).where(self.model.id == entity_id)
        )
        return result.scalar_one_or_none()

    async def compare_and_set(
        self,
        entity,  # noqa: ANN001
        expected: str | Iterable[str],
        **values: Any,
    ):  # noqa: ANN201
        """Apply ``values`` only if the row is still in an ``expected`` status.

        The in-memory entity is updated to match the row on success.

        Raises:
            InvalidStateTransitionError: If the row left the expected status.
        """
        expected_values = [_plain(expected)] if isinstance(expected, str) else [
            _plain(s) for s in expected
        ]
        values = {key: _plain(value) for key, value in values.items()}
        values.setdefault("updated_at", utcnow())

        result = await self._session.execute(
            update(self.model)
            .where(self.model.id == entity.id, self.model.status.in_(expected_values))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidStateTransitionError(
                current_state=str(entity.status),
                attempted=str(values.get("status", entity.status)),
                message=(
                    f"{self.model.__name__} {entity.id} is no longer "
                    f"{' or '.join(expected_values)}"
                ),
            )

        for key, value in values.items():
            set_committed_value(entity, key, value)
        return entity


class LoadRepository(StatusRepository):
    """Data access for loads."""

    model = Load


class OfferRepository(StatusRepository):
    """Data access for load offers."""

    model = Offer

    async def list_for_load(
        self,
        load_id: int,
        hauler_company_id: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Offer], int]:
        """Page through a load's offers in insertion order.

        Returns:
            The requested page and the total number of matching offers.
        """
        criteria = [Offer.load_id == load_id]
        if hauler_company_id is not None:
            criteria.append(Offer.hauler_company_id == hauler_company_id)

        total = await self._session.scalar(
            select(func.count()).select_from(Offer).where(*criteria)
        )
        result = await self._session.execute(
            select(Offer).where(*criteria).order_by(Offer.id.asc()).offset(offset).limit(limit)
        )
        return list(result.scalars().all()), int(total or 0)

    async def expire_pending_siblings(
        self,
        load_id: int,
        accepted_offer_id: int,
        now: datetime,
    ) -> list[int]:
        """Expire every other PENDING offer on the load. Returns the expired ids."""
        result = await self._session.execute(
            update(Offer)
            .where(
                Offer.load_id == load_id,
                Offer.id != accepted_offer_id,
                Offer.status == OfferStatus.PENDING.value,
            )
            .values(status=OfferStatus.EXPIRED.value, updated_at=now)
            .returning(Offer.id)
            .execution_options(synchronize_session="evaluate")
        )
        return sorted(result.scalars().all())


class TripRepository(StatusRepository):
    """Data access for trips."""

    model = Trip

    async def get_by_offer(self, offer_id: int) -> Trip | None:
        result = await self._session.execute(select(Trip).where(Trip.offer_id == offer_id))
        return result.scalar_one_or_none()


class PaymentRepository(StatusRepository):
    """Data access for escrow payments."""

    model = Payment

    async def get_by_trip(self, trip_id: int) -> Payment | None:
        result = await self._session.execute(select(Payment).where(Payment.trip_id == trip_id))
        return result.scalar_one_or_none()

    async def get_by_intent(self, external_intent_id: str) -> Payment | None:
        result = await self._session.execute(
            select(Payment).where(Payment.external_intent_id == external_intent_id)
        )
        return result.scalar_one_or_none()

    async def due_for_release(self, now: datetime) -> list[Payment]:
        """Funded payments whose hold timer has passed and that carry no active dispute.

        Rows already locked by a concurrent sweep are skipped on backends that
        support it; the release update re-checks everything regardless.
        """
        result = await self._session.execute(
            select(Payment)
            .where(
                Payment.status == PaymentStatus.ESCROW_FUNDED.value,
                Payment.auto_release_at.is_not(None),
                Payment.auto_release_at <= now,
                ~_active_dispute_exists(),
            )
            .order_by(Payment.id.asc())
            .with_for_update(skip_locked=True)
        )
        return list(result.scalars().all())

    async def release_if_due(self, payment: Payment, now: datetime) -> bool:
        """Release a funded payment to the hauler if it is still due and undisputed.

        The due timer and the dispute check are evaluated by the UPDATE itself,
        never from a previously read row.
        """
        values = {
            "status": PaymentStatus.RELEASED_TO_HAULER.value,
            "auto_release_at": None,
            "updated_at": now,
        }
        result = await self._session.execute(
            update(Payment)
            .where(
                Payment.id == payment.id,
                Payment.status == PaymentStatus.ESCROW_FUNDED.value,
                Payment.auto_release_at.is_not(None),
                Payment.auto_release_at <= now,
                ~_active_dispute_exists(),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        for key, value in values.items():
            set_committed_value(payment, key, value)
        return True


class DisputeRepository(StatusRepository):
    """Data access for disputes."""

    model = Dispute

    async def list_for_trip(self, trip_id: int) -> list[Dispute]:
        result = await self._session.execute(
            select(Dispute).where(Dispute.trip_id == trip_id).order_by(Dispute.id.asc())
        )
        return list(result.scalars().all())

    async def get_active_for_payment(
        self,
        payment_id: int,
        exclude_id: int | None = None,
    ) -> Dispute | None:
        """Return the payment's OPEN/UNDER_REVIEW dispute, if any."""
        stmt = select(Dispute).where(
            Dispute.payment_id == payment_id,
            Dispute.status.in_([s.value for s in ACTIVE_DISPUTE_STATUSES]),
        )
        if exclude_id is not None:
            stmt = stmt.where(Dispute.id != exclude_id)
        result = await self._session.execute(stmt.order_by(Dispute.id.asc()).limit(1))
        return result.scalar_one_or_none()


class EventRepository:
    """Data access for the append-only audit event log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        load_id: int,
        entity_type: str,
        entity_id: int,
        event_type: EventType,
        old_status: str | None,
        new_status: str | None,
        actor: str = "SYSTEM",
        metadata: dict | None = None,
    ) -> PipelineEvent:
        """Append a new audit event. This is the ONLY write operation allowed."""
        evt = PipelineEvent(
            load_id=load_id,
            entity_type=entity_type,
            entity_id=entity_id,
            event_type=_plain(event_type),
            old_status=_plain(old_status),
            new_status=_plain(new_status),
            actor=actor,
            metadata_json=metadata,
        )
        self._session.add(evt)
        await self._session.flush()
        return evt

    async def get_by_load(self, load_id: int) -> list[PipelineEvent]:
        """Fetch all events for a load in chronological order."""
        result = await self._session.execute(
            select(PipelineEvent)
            .where(PipelineEvent.load_id == load_id)
            .order_by(PipelineEvent.id.asc())
        )
        return list(result.scalars().all())
