"""Dispute REST API routes for the trip parties.

Routes:
    POST   /api/v1/trips/{trip_id}/disputes       - Open a dispute
    GET    /api/v1/trips/{trip_id}/disputes       - List a trip's disputes
    GET    /api/v1/disputes/{dispute_id}          - Get a dispute
    POST   /api/v1/disputes/{dispute_id}/cancel   - Opener or admin cancels

Review and resolution live under the admin routes.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from livestock_escrow.api.deps import get_app_settings, get_caller, get_clock, get_db_session
from livestock_escrow.config import Settings
from livestock_escrow.domain.authorization import Caller
from livestock_escrow.schemas.pipeline import (
    DisputeResponse,
    OpenDisputeRequest,
    ResolutionResponse,
)
from livestock_escrow.services.base import Clock
from livestock_escrow.services.dispute_service import DisputeService

router = APIRouter(prefix="/api/v1", tags=["Disputes"])


def get_dispute_service(
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock),
) -> DisputeService:
    return DisputeService(session, settings=settings, clock=clock)


@router.post(
    "/trips/{trip_id}/disputes",
    response_model=DisputeResponse,
    status_code=201,
    summary="Open a dispute against a trip's escrow",
)
async def open_dispute(
    trip_id: int,
    request: OpenDisputeRequest,
    caller: Caller = Depends(get_caller),
    svc: DisputeService = Depends(get_dispute_service),
) -> DisputeResponse:
    dispute = await svc.open_dispute(
        caller,
        trip_id,
        reason_code=request.reason_code,
        description=request.description,
        requested_action=request.requested_action,
    )
    return DisputeResponse.model_validate(dispute)


@router.get(
    "/trips/{trip_id}/disputes",
    response_model=list[DisputeResponse],
    summary="List disputes for a trip",
)
async def list_disputes(
    trip_id: int,
    caller: Caller = Depends(get_caller),
    svc: DisputeService = Depends(get_dispute_service),
) -> list[DisputeResponse]:
    disputes = await svc.list_disputes(caller, trip_id)
    return [DisputeResponse.model_validate(d) for d in disputes]


@router.get("/disputes/{dispute_id}", response_model=DisputeResponse, summary="Get a dispute")
async def get_dispute(
    dispute_id: int,
    caller: Caller = Depends(get_caller),
    svc: DisputeService = Depends(get_dispute_service),
) -> DisputeResponse:
    return DisputeResponse.model_validate(await svc.get_dispute(caller, dispute_id))


@router.post(
    "/disputes/{dispute_id}/cancel",
    response_model=ResolutionResponse,
    summary="Cancel an open dispute and resume the trip",
)
async def cancel_dispute(
    dispute_id: int,
    caller: Caller = Depends(get_caller),
    svc: DisputeService = Depends(get_dispute_service),
) -> ResolutionResponse:
    return ResolutionResponse.from_outcome(await svc.cancel_dispute(caller, dispute_id))
