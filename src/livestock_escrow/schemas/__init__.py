"""Pydantic API schemas."""

from livestock_escrow.schemas.pipeline import (
    AcceptOfferResponse,
    AckResponse,
    AssignDriverRequest,
    AssignVehicleRequest,
    AutoReleaseResponse,
    ConfirmDeliveryResponse,
    CreateOfferRequest,
    DisputeResponse,
    FundingIntentResponse,
    HealthResponse,
    LoadResponse,
    OfferListResponse,
    OfferResponse,
    OpenDisputeRequest,
    PaymentResponse,
    PipelineEventResponse,
    ProviderWebhookRequest,
    ResolutionResponse,
    ResolveSplitRequest,
    SettlementResponse,
    TripProgressResponse,
    TripResponse,
)

__all__ = [
    "AcceptOfferResponse",
    "AckResponse",
    "AssignDriverRequest",
    "AssignVehicleRequest",
    "AutoReleaseResponse",
    "ConfirmDeliveryResponse",
    "CreateOfferRequest",
    "DisputeResponse",
    "FundingIntentResponse",
    "HealthResponse",
    "LoadResponse",
    "OfferListResponse",
    "OfferResponse",
    "OpenDisputeRequest",
    "PaymentResponse",
    "PipelineEventResponse",
    "ProviderWebhookRequest",
    "ResolutionResponse",
    "ResolveSplitRequest",
    "SettlementResponse",
    "TripProgressResponse",
    "TripResponse",
]
