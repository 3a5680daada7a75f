"""Domain enumerations for the livestock escrow pipeline.

Canonical statuses of every pipeline entity, caller roles, provider webhook
events and audit event types. Framework-agnostic (no SQLAlchemy, no FastAPI).
"""

import enum


class LoadStatus(enum.StrEnum):
    """Lifecycle of a freight posting. The listing subsystem owns DRAFT/PUBLISHED."""

    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    AWAITING_ESCROW = "AWAITING_ESCROW"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class OfferStatus(enum.StrEnum):
    """A hauler's bid. Everything except PENDING is terminal."""

    PENDING = "PENDING"
    WITHDRAWN = "WITHDRAWN"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    ACCEPTED = "ACCEPTED"

    @property
    def is_closed(self) -> bool:
        """Whether the offer's message thread is closed to new messages."""
        return self in (OfferStatus.WITHDRAWN, OfferStatus.REJECTED, OfferStatus.EXPIRED)


class TripStatus(enum.StrEnum):
    """Execution record of an accepted offer. See domain/state_machine.py."""

    PENDING_ESCROW = "PENDING_ESCROW"
    READY_TO_START = "READY_TO_START"
    IN_PROGRESS = "IN_PROGRESS"
    DELIVERED_AWAITING_CONFIRMATION = "DELIVERED_AWAITING_CONFIRMATION"
    DELIVERED_CONFIRMED = "DELIVERED_CONFIRMED"
    DISPUTED = "DISPUTED"
    CLOSED = "CLOSED"


class PaymentStatus(enum.StrEnum):
    """Escrow payment lifecycle."""

    AWAITING_FUNDING = "AWAITING_FUNDING"
    ESCROW_FUNDED = "ESCROW_FUNDED"
    RELEASED_TO_HAULER = "RELEASED_TO_HAULER"
    REFUNDED_TO_SHIPPER = "REFUNDED_TO_SHIPPER"
    SPLIT_BETWEEN_PARTIES = "SPLIT_BETWEEN_PARTIES"
    CANCELLED = "CANCELLED"


class DisputeStatus(enum.StrEnum):
    """Dispute lifecycle. Resolution values double as the dispute's resolution_type."""

    OPEN = "OPEN"
    UNDER_REVIEW = "UNDER_REVIEW"
    RESOLVED_RELEASE_TO_HAULER = "RESOLVED_RELEASE_TO_HAULER"
    RESOLVED_REFUND_TO_SHIPPER = "RESOLVED_REFUND_TO_SHIPPER"
    RESOLVED_SPLIT = "RESOLVED_SPLIT"
    CANCELLED = "CANCELLED"

    @property
    def is_active(self) -> bool:
        """OPEN and UNDER_REVIEW disputes hold the payment."""
        return self in (DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW)

    @property
    def is_closed(self) -> bool:
        return not self.is_active


ACTIVE_DISPUTE_STATUSES = (DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW)


class Role(enum.StrEnum):
    """Caller roles supplied by the identity collaborator."""

    SUPER_ADMIN = "SUPER_ADMIN"
    SHIPPER_OWNER = "SHIPPER_OWNER"
    SHIPPER_STAFF = "SHIPPER_STAFF"
    HAULER_OWNER = "HAULER_OWNER"
    HAULER_DISPATCHER = "HAULER_DISPATCHER"
    DRIVER = "DRIVER"
    READ_ONLY_SUPPORT = "READ_ONLY_SUPPORT"

    @classmethod
    def parse(cls, raw: str) -> "Role":
        """Accept ``super-admin`` / ``Hauler_Owner`` style spellings.

        Raises:
            ValueError: If the role is unknown.
        """
        return cls(raw.strip().upper().replace("-", "_"))


HAULER_ROLES = frozenset({Role.HAULER_OWNER, Role.HAULER_DISPATCHER})


class ProviderEvent(enum.StrEnum):
    """Events the stand-in payment provider delivers to the webhook."""

    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"


class EventType(enum.StrEnum):
    """Types of audit events recorded in the pipeline_events table.

    Every status transition performed by the pipeline produces exactly one event.
    """

    # Offers
    OFFER_CREATED = "OFFER_CREATED"
    OFFER_WITHDRAWN = "OFFER_WITHDRAWN"
    OFFER_REJECTED = "OFFER_REJECTED"
    OFFER_EXPIRED = "OFFER_EXPIRED"
    OFFER_ACCEPTED = "OFFER_ACCEPTED"

    # Award
    TRIP_CREATED = "TRIP_CREATED"
    PAYMENT_CREATED = "PAYMENT_CREATED"
    LOAD_AWARDED = "LOAD_AWARDED"

    # Trip progress
    DRIVER_ASSIGNED = "DRIVER_ASSIGNED"
    VEHICLE_ASSIGNED = "VEHICLE_ASSIGNED"
    TRIP_READY = "TRIP_READY"
    TRIP_STARTED = "TRIP_STARTED"
    TRIP_DELIVERED = "TRIP_DELIVERED"
    DELIVERY_CONFIRMED = "DELIVERY_CONFIRMED"
    TRIP_DISPUTED = "TRIP_DISPUTED"
    TRIP_RESUMED = "TRIP_RESUMED"
    TRIP_CLOSED = "TRIP_CLOSED"
    LOAD_STATUS_CHANGED = "LOAD_STATUS_CHANGED"

    # Escrow
    FUNDING_INTENT_CREATED = "FUNDING_INTENT_CREATED"
    ESCROW_FUNDED = "ESCROW_FUNDED"
    FUNDING_FAILED = "FUNDING_FAILED"
    AUTO_RELEASE_ARMED = "AUTO_RELEASE_ARMED"
    PAYMENT_SETTLED = "PAYMENT_SETTLED"
    PAYMENT_CANCELLED = "PAYMENT_CANCELLED"

    # Disputes
    DISPUTE_OPENED = "DISPUTE_OPENED"
    DISPUTE_REVIEW_STARTED = "DISPUTE_REVIEW_STARTED"
    DISPUTE_RESOLVED = "DISPUTE_RESOLVED"
    DISPUTE_CANCELLED = "DISPUTE_CANCELLED"
