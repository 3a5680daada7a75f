"""Escrow payment REST API routes.

Routes:
    POST   /api/v1/trips/{trip_id}/escrow/payment-intent - Shipper gets a funding intent
    GET    /api/v1/trips/{trip_id}/payment               - Get the trip's escrow payment
    POST   /api/v1/webhooks/payment-provider             - Provider funding callbacks
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Request
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from livestock_escrow.api.deps import get_app_settings, get_caller, get_clock, get_db_session
from livestock_escrow.config import Settings
from livestock_escrow.domain.authorization import Caller
from livestock_escrow.domain.exceptions import ForbiddenError, InvalidInputError
from livestock_escrow.logging_config import get_logger
from livestock_escrow.schemas.pipeline import (
    AckResponse,
    FundingIntentResponse,
    PaymentResponse,
    ProviderWebhookRequest,
)
from livestock_escrow.services.base import Clock
from livestock_escrow.services.escrow_service import EscrowService

router = APIRouter(prefix="/api/v1", tags=["Payments"])
logger = get_logger(__name__)


def get_escrow_service(
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock),
) -> EscrowService:
    return EscrowService(session, settings=settings, clock=clock)


@router.post(
    "/trips/{trip_id}/escrow/payment-intent",
    response_model=FundingIntentResponse,
    summary="Create or fetch the funding intent for a trip's escrow",
)
async def create_payment_intent(
    trip_id: int,
    caller: Caller = Depends(get_caller),
    svc: EscrowService = Depends(get_escrow_service),
) -> FundingIntentResponse:
    intent = await svc.create_funding_intent(caller, trip_id)
    return FundingIntentResponse(
        payment=PaymentResponse.model_validate(intent.payment),
        client_secret=intent.client_secret,
    )


@router.get(
    "/trips/{trip_id}/payment",
    response_model=PaymentResponse,
    summary="Get the escrow payment for a trip",
)
async def get_trip_payment(
    trip_id: int,
    caller: Caller = Depends(get_caller),
    svc: EscrowService = Depends(get_escrow_service),
) -> PaymentResponse:
    return PaymentResponse.model_validate(await svc.get_payment_for_trip(caller, trip_id))


@router.post(
    "/webhooks/payment-provider",
    response_model=AckResponse,
    summary="Receive a payment provider event",
)
async def payment_provider_webhook(
    request: Request,
    x_provider_signature: str | None = Header(default=None),
    svc: EscrowService = Depends(get_escrow_service),
) -> AckResponse:
    """Apply a funding result reported by the payment provider.

    The raw body is checked against ``X-Provider-Signature`` before it is
    parsed. Unknown intents and events are acknowledged without effect.
    """
    body = await request.body()
    if not svc.provider.verify_signature(body, x_provider_signature):
        logger.warning("escrow.webhook_bad_signature")
        raise ForbiddenError("receive_webhook", "payment provider webhook")

    try:
        payload = ProviderWebhookRequest.model_validate_json(body or b"{}")
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "body"
        raise InvalidInputError(field, f"Invalid webhook payload: {first.get('msg')}") from exc

    await svc.handle_provider_event(
        payload.external_intent_id,
        payload.event,
        external_charge_id=payload.external_charge_id,
    )
    return AckResponse()
