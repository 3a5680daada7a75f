"""SQLAlchemy 2.0 ORM models for the livestock escrow pipeline.

Six tables:
    1. loads            - Freight postings (owned by the listing subsystem; the
                          pipeline only moves status and awarded_offer_id).
    2. load_offers      - Hauler bids on a load.
    3. trips            - Execution record of an accepted offer (1:1 with it).
    4. payments         - Escrow payment of a trip (1:1 with it).
    5. disputes         - Disputes raised against a funded payment.
    6. pipeline_events  - Append-only audit log of every status transition.

Design decisions:
    - Integer autoincrement primary keys (monotonically increasing ids).
    - Decimal for money (Numeric(12, 2), no floating point rounding).
    - Timezone-aware UTC timestamps on every backend, including SQLite.
    - CHECK constraints on status columns to reject unknown values at DB level.
    - Partial unique indexes for "one ACCEPTED offer per load" and "one
      OPEN/UNDER_REVIEW dispute per payment".
    - pipeline_events is append-only: no UPDATE or DELETE at the application level.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal  # noqa: TC003 - needed at runtime by SQLAlchemy Mapped[]

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from livestock_escrow.domain.enums import (
    DisputeStatus,
    LoadStatus,
    OfferStatus,
    PaymentStatus,
    TripStatus,
)


def utcnow() -> datetime:
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator):
    """DateTime that always binds UTC and always loads timezone-aware values.

    SQLite has no timezone support and hands back naive datetimes; those are
    stored as UTC and re-tagged on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):  # noqa: ANN001
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        value = value.astimezone(UTC)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):  # noqa: ANN001
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


JSONType = JSON().with_variant(JSONB(), "postgresql")
Money = Numeric(12, 2)


def _status_check(column: str, enum_cls: type, name: str) -> CheckConstraint:
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return CheckConstraint(f"{column} IN ({values})", name=name)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )


# ---------------------------------------------------------------------------
# 1. loads
# ---------------------------------------------------------------------------
class Load(TimestampMixin, Base):
    """A freight posting by a shipper company."""

    __tablename__ = "loads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shipper_company_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=LoadStatus.DRAFT.value,
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    asking_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    # Plain column: the offer table already points at loads.
    awarded_offer_id: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        default=None,
        comment="Accepted offer id, set when the load is awarded",
    )

    __table_args__ = (
        _status_check("status", LoadStatus, "ck_load_valid_status"),
        Index("idx_load_shipper", "shipper_company_id"),
        Index("idx_load_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Load id={self.id} status={self.status} shipper={self.shipper_company_id}>"


# ---------------------------------------------------------------------------
# 2. load_offers
# ---------------------------------------------------------------------------
class Offer(TimestampMixin, Base):
    """A hauler company's bid on a load."""

    __tablename__ = "load_offers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    load_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("loads.id", ondelete="CASCADE"),
        nullable=False,
    )
    hauler_company_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_by_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    offered_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=OfferStatus.PENDING.value,
    )
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    __table_args__ = (
        _status_check("status", OfferStatus, "ck_offer_valid_status"),
        CheckConstraint("offered_amount > 0", name="ck_offer_positive_amount"),
        Index("idx_offer_load", "load_id"),
        Index("idx_offer_hauler", "hauler_company_id"),
        Index(
            "uq_offer_accepted_per_load",
            "load_id",
            unique=True,
            postgresql_where=text("status = 'ACCEPTED'"),
            sqlite_where=text("status = 'ACCEPTED'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Offer id={self.id} load={self.load_id} status={self.status}>"


# ---------------------------------------------------------------------------
# 3. trips
# ---------------------------------------------------------------------------
class Trip(TimestampMixin, Base):
    """Execution of an accepted offer."""

    __tablename__ = "trips"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    load_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("loads.id", ondelete="CASCADE"),
        nullable=False,
    )
    offer_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("load_offers.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    hauler_company_id: Mapped[str] = mapped_column(String(64), nullable=False)
    assigned_driver_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    assigned_vehicle_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        default=TripStatus.PENDING_ESCROW.value,
    )
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    delivered_confirmed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )

    __table_args__ = (
        _status_check("status", TripStatus, "ck_trip_valid_status"),
        Index("idx_trip_load", "load_id"),
        Index("idx_trip_hauler", "hauler_company_id"),
        Index("idx_trip_driver", "assigned_driver_id"),
    )

    def __repr__(self) -> str:
        return f"<Trip id={self.id} load={self.load_id} status={self.status}>"


# ---------------------------------------------------------------------------
# 4. payments
# ---------------------------------------------------------------------------
class Payment(TimestampMixin, Base):
    """Escrowed payment from the shipper (payer) to the hauler (beneficiary)."""

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trip_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("trips.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    payer_company_id: Mapped[str] = mapped_column(String(64), nullable=False)
    beneficiary_company_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=PaymentStatus.AWAITING_FUNDING.value,
    )
    is_escrow: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    auto_release_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
        comment="Set while funded, confirmed and undisputed",
    )
    external_provider: Mapped[str] = mapped_column(String(32), nullable=False)
    external_intent_id: Mapped[str | None] = mapped_column(
        String(128), nullable=True, unique=True
    )
    external_charge_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    resolution_amount_to_hauler: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    resolution_amount_to_shipper: Mapped[Decimal | None] = mapped_column(Money, nullable=True)

    __table_args__ = (
        _status_check("status", PaymentStatus, "ck_payment_valid_status"),
        CheckConstraint("amount > 0", name="ck_payment_positive_amount"),
        Index("idx_payment_status_release", "status", "auto_release_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Payment id={self.id} trip={self.trip_id} status={self.status} "
            f"amount={self.amount} {self.currency}>"
        )


# ---------------------------------------------------------------------------
# 5. disputes
# ---------------------------------------------------------------------------
class Dispute(TimestampMixin, Base):
    """A dispute holding a funded payment until an admin resolves it."""

    __tablename__ = "disputes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trip_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("trips.id", ondelete="CASCADE"),
        nullable=False,
    )
    payment_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("payments.id", ondelete="CASCADE"),
        nullable=False,
    )
    opened_by_company_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    opened_by_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        default=DisputeStatus.OPEN.value,
    )
    reason_code: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    requested_action: Mapped[str | None] = mapped_column(String(64), nullable=True)
    resolution_type: Mapped[str | None] = mapped_column(String(40), nullable=True)
    resolution_amount_to_hauler: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    resolution_amount_to_shipper: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    resolved_by_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    opened_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    __table_args__ = (
        _status_check("status", DisputeStatus, "ck_dispute_valid_status"),
        Index("idx_dispute_trip", "trip_id"),
        Index("idx_dispute_payment", "payment_id"),
        Index(
            "uq_dispute_active_per_payment",
            "payment_id",
            unique=True,
            postgresql_where=text("status IN ('OPEN', 'UNDER_REVIEW')"),
            sqlite_where=text("status IN ('OPEN', 'UNDER_REVIEW')"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Dispute id={self.id} payment={self.payment_id} status={self.status}>"


# ---------------------------------------------------------------------------
# 6. pipeline_events (Append-Only Audit Log)
# ---------------------------------------------------------------------------
class PipelineEvent(Base):
    """Immutable audit record of one status transition.

    This table is APPEND-ONLY. Events are grouped by load so a trip's whole
    history, from offers to settlement, reads back in one query.
    """

    __tablename__ = "pipeline_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    load_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("loads.id", ondelete="CASCADE"),
        nullable=False,
    )
    entity_type: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="LOAD, OFFER, TRIP, PAYMENT or DISPUTE",
    )
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    old_status: Mapped[str | None] = mapped_column(String(40), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(40), nullable=True)
    actor: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default="SYSTEM",
        comment="User id of the caller, or SYSTEM / PROVIDER",
    )
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
        default=None,
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_event_load", "load_id"),
        Index("idx_event_entity", "entity_type", "entity_id"),
        Index("idx_event_type", "event_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<PipelineEvent id={self.id} {self.entity_type}:{self.entity_id} "
            f"type={self.event_type} {self.old_status}->{self.new_status}>"
        )
