"""Load offer REST API routes.

Routes:
    POST   /api/v1/loads/{load_id}/offers          - Place a bid
    GET    /api/v1/loads/{load_id}/offers          - List bids (paginated)
    GET    /api/v1/load-offers/{offer_id}          - Get a bid
    POST   /api/v1/load-offers/{offer_id}/withdraw - Hauler withdraws
    POST   /api/v1/load-offers/{offer_id}/reject   - Shipper rejects
    POST   /api/v1/load-offers/{offer_id}/accept   - Shipper accepts (awards the load)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from livestock_escrow.api.deps import get_app_settings, get_caller, get_clock, get_db_session
from livestock_escrow.config import Settings
from livestock_escrow.domain.authorization import Caller
from livestock_escrow.schemas.pipeline import (
    AcceptOfferResponse,
    CreateOfferRequest,
    LoadResponse,
    OfferListResponse,
    OfferResponse,
    PaymentResponse,
    TripResponse,
)
from livestock_escrow.services.base import Clock
from livestock_escrow.services.offer_service import OfferService

router = APIRouter(prefix="/api/v1", tags=["Offers"])


def get_offer_service(
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock),
) -> OfferService:
    return OfferService(session, settings=settings, clock=clock)


@router.post(
    "/loads/{load_id}/offers",
    response_model=OfferResponse,
    status_code=201,
    summary="Place an offer on a published load",
)
async def create_offer(
    load_id: int,
    request: CreateOfferRequest,
    caller: Caller = Depends(get_caller),
    svc: OfferService = Depends(get_offer_service),
) -> OfferResponse:
    offer = await svc.create_offer(
        caller,
        load_id,
        offered_amount=request.offered_amount,
        currency=request.currency,
        message=request.message,
        expires_at=request.expires_at,
    )
    return OfferResponse.model_validate(offer)


@router.get(
    "/loads/{load_id}/offers",
    response_model=OfferListResponse,
    summary="List offers on a load",
)
async def list_offers(
    load_id: int,
    page: int = Query(default=1),
    page_size: int | None = Query(default=None, alias="pageSize"),
    caller: Caller = Depends(get_caller),
    svc: OfferService = Depends(get_offer_service),
) -> OfferListResponse:
    """Shippers see every offer on their load; haulers see only their own."""
    result = await svc.list_offers(caller, load_id, page=page, page_size=page_size)
    return OfferListResponse(
        items=[OfferResponse.model_validate(o) for o in result.items],
        page=result.page,
        page_size=result.page_size,
        total=result.total,
    )


@router.get(
    "/load-offers/{offer_id}",
    response_model=OfferResponse,
    summary="Get an offer",
)
async def get_offer(
    offer_id: int,
    caller: Caller = Depends(get_caller),
    svc: OfferService = Depends(get_offer_service),
) -> OfferResponse:
    return OfferResponse.model_validate(await svc.get_offer(caller, offer_id))


@router.post(
    "/load-offers/{offer_id}/withdraw",
    response_model=OfferResponse,
    summary="Withdraw a pending offer",
)
async def withdraw_offer(
    offer_id: int,
    caller: Caller = Depends(get_caller),
    svc: OfferService = Depends(get_offer_service),
) -> OfferResponse:
    return OfferResponse.model_validate(await svc.withdraw_offer(caller, offer_id))


@router.post(
    "/load-offers/{offer_id}/reject",
    response_model=OfferResponse,
    summary="Reject a pending offer",
)
async def reject_offer(
    offer_id: int,
    caller: Caller = Depends(get_caller),
    svc: OfferService = Depends(get_offer_service),
) -> OfferResponse:
    return OfferResponse.model_validate(await svc.reject_offer(caller, offer_id))


@router.post(
    "/load-offers/{offer_id}/accept",
    response_model=AcceptOfferResponse,
    status_code=201,
    summary="Accept an offer and open the trip and escrow",
)
async def accept_offer(
    offer_id: int,
    caller: Caller = Depends(get_caller),
    svc: OfferService = Depends(get_offer_service),
) -> AcceptOfferResponse:
    result = await svc.accept_offer(caller, offer_id)
    return AcceptOfferResponse(
        offer=OfferResponse.model_validate(result.offer),
        trip=TripResponse.model_validate(result.trip),
        payment=PaymentResponse.model_validate(result.payment),
        load=LoadResponse.model_validate(result.load),
    )
