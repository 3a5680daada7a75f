"""Pydantic schemas for the pipeline API.

These schemas define the request/response shapes for the REST API. They are
separate from the ORM models to maintain clean boundaries between the API and
database layers. Money is carried as Decimal and serialized as a string.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from livestock_escrow.domain.enums import DisputeStatus, OfferStatus

if TYPE_CHECKING:
    from livestock_escrow.services.base import EscrowOutcome

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateOfferRequest(BaseModel):
    """Request body for placing a bid on a load."""

    offered_amount: Decimal = Field(
        ...,
        gt=0,
        max_digits=12,
        decimal_places=2,
        description="Bid amount; positive, at most 2 decimal places",
        examples=["1500.00"],
    )
    currency: str | None = Field(
        default=None,
        min_length=3,
        max_length=3,
        description="ISO currency code; defaults to the load's currency",
    )
    message: str | None = Field(default=None, max_length=5000)
    expires_at: datetime | None = Field(
        default=None,
        description="Optional expiry; the offer cannot be accepted afterwards",
    )

    @field_validator("expires_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class AssignDriverRequest(BaseModel):
    driver_id: str | None = Field(default=None, max_length=64)


class AssignVehicleRequest(BaseModel):
    vehicle_id: str | None = Field(default=None, max_length=64)


class ProviderWebhookRequest(BaseModel):
    """Payload the payment provider posts when a funding attempt settles."""

    external_intent_id: str | None = None
    event: str | None = Field(
        default=None,
        description="payment_succeeded or payment_failed; other events are ignored",
    )
    external_charge_id: str | None = None


class OpenDisputeRequest(BaseModel):
    reason_code: str | None = Field(default=None, max_length=64, examples=["LIVESTOCK_INJURED"])
    description: str | None = Field(default=None, max_length=5000)
    requested_action: str | None = Field(default=None, max_length=64)


class ResolveSplitRequest(BaseModel):
    """Request body for splitting a disputed escrow between the parties."""

    amount_to_hauler: Decimal | None = Field(
        default=None, ge=0, max_digits=12, decimal_places=2, description="Missing counts as 0"
    )
    amount_to_shipper: Decimal | None = Field(
        default=None, ge=0, max_digits=12, decimal_places=2, description="Missing counts as 0"
    )


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class LoadResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    shipper_company_id: str
    status: str
    currency: str
    asking_amount: Decimal | None
    awarded_offer_id: int | None
    created_at: datetime
    updated_at: datetime


class OfferResponse(BaseModel):
    """Response schema for a load offer."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    load_id: int
    hauler_company_id: str
    created_by_user_id: str
    offered_amount: Decimal
    currency: str
    message: str | None
    status: str
    expires_at: datetime | None
    accepted_at: datetime | None
    rejected_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def is_closed(self) -> bool:
        """Closed offers no longer accept chat messages."""
        return OfferStatus(self.status).is_closed


class OfferListResponse(BaseModel):
    items: list[OfferResponse]
    page: int
    page_size: int
    total: int


class TripResponse(BaseModel):
    """Response schema for a trip."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    load_id: int
    offer_id: int
    hauler_company_id: str
    assigned_driver_id: str | None
    assigned_vehicle_id: str | None
    status: str
    started_at: datetime | None
    delivered_at: datetime | None
    delivered_confirmed_at: datetime | None
    created_at: datetime
    updated_at: datetime


class PaymentResponse(BaseModel):
    """Response schema for an escrow payment."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    trip_id: int
    payer_company_id: str
    beneficiary_company_id: str
    amount: Decimal
    currency: str
    status: str
    is_escrow: bool
    auto_release_at: datetime | None
    external_provider: str
    external_intent_id: str | None
    external_charge_id: str | None
    resolution_amount_to_hauler: Decimal | None
    resolution_amount_to_shipper: Decimal | None
    created_at: datetime
    updated_at: datetime


class DisputeResponse(BaseModel):
    """Response schema for a dispute."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    trip_id: int
    payment_id: int
    opened_by_company_id: str | None
    opened_by_user_id: str
    status: str
    reason_code: str
    description: str | None
    requested_action: str | None
    resolution_type: str | None
    resolution_amount_to_hauler: Decimal | None
    resolution_amount_to_shipper: Decimal | None
    resolved_by_user_id: str | None
    opened_at: datetime
    resolved_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def is_closed(self) -> bool:
        return DisputeStatus(self.status).is_closed


class PipelineEventResponse(BaseModel):
    """Response schema for an audit event."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    load_id: int
    entity_type: str
    entity_id: int
    event_type: str
    old_status: str | None
    new_status: str | None
    actor: str
    metadata: dict | None = Field(default=None, validation_alias="metadata_json")
    created_at: datetime


class AcceptOfferResponse(BaseModel):
    offer: OfferResponse
    trip: TripResponse
    payment: PaymentResponse
    load: LoadResponse


class ConfirmDeliveryResponse(BaseModel):
    trip: TripResponse
    payment: PaymentResponse


class FundingIntentResponse(BaseModel):
    payment: PaymentResponse
    client_secret: str


class TripProgressResponse(BaseModel):
    trip: TripResponse
    load: LoadResponse


class ResolutionResponse(BaseModel):
    """A settled or withdrawn dispute with every entity it moved."""

    dispute: DisputeResponse
    payment: PaymentResponse
    trip: TripResponse
    load: LoadResponse

    @classmethod
    def from_outcome(cls, outcome: EscrowOutcome) -> ResolutionResponse:
        return cls(
            dispute=DisputeResponse.model_validate(outcome.dispute),
            payment=PaymentResponse.model_validate(outcome.payment),
            trip=TripResponse.model_validate(outcome.trip),
            load=LoadResponse.model_validate(outcome.load),
        )


class SettlementResponse(BaseModel):
    """An admin settlement; ``dispute`` is the dispute it resolved, if any."""

    payment: PaymentResponse
    trip: TripResponse
    load: LoadResponse
    dispute: DisputeResponse | None = None

    @classmethod
    def from_outcome(cls, outcome: EscrowOutcome) -> SettlementResponse:
        return cls(
            payment=PaymentResponse.model_validate(outcome.payment),
            trip=TripResponse.model_validate(outcome.trip),
            load=LoadResponse.model_validate(outcome.load),
            dispute=(
                DisputeResponse.model_validate(outcome.dispute)
                if outcome.dispute is not None
                else None
            ),
        )


class AutoReleaseResponse(BaseModel):
    released_payment_ids: list[int]


class AckResponse(BaseModel):
    ok: bool = True


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    scheduler: str = "unknown"
