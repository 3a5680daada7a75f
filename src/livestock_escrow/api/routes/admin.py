"""Admin REST API routes: dispute resolution and forced escrow settlement.

Routes:
    POST   /api/v1/admin/disputes/{dispute_id}/start-review
    POST   /api/v1/admin/disputes/{dispute_id}/resolve-release
    POST   /api/v1/admin/disputes/{dispute_id}/resolve-refund
    POST   /api/v1/admin/disputes/{dispute_id}/resolve-split
    POST   /api/v1/admin/payments/{payment_id}/force-release
    POST   /api/v1/admin/payments/{payment_id}/force-refund
    POST   /api/v1/admin/payments/{payment_id}/cancel
    POST   /api/v1/admin/payments/run-auto-release

Every route requires SUPER_ADMIN; the services enforce it.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from livestock_escrow.api.deps import get_app_settings, get_caller, get_clock, get_db_session
from livestock_escrow.config import Settings
from livestock_escrow.domain.authorization import Caller
from livestock_escrow.schemas.pipeline import (
    AutoReleaseResponse,
    DisputeResponse,
    ResolutionResponse,
    ResolveSplitRequest,
    SettlementResponse,
)
from livestock_escrow.services.base import Clock
from livestock_escrow.services.dispute_service import DisputeService
from livestock_escrow.services.escrow_service import EscrowService

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


def get_dispute_service(
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock),
) -> DisputeService:
    return DisputeService(session, settings=settings, clock=clock)


def get_escrow_service(
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock),
) -> EscrowService:
    return EscrowService(session, settings=settings, clock=clock)


# ---------------------------------------------------------------------------
# Disputes
# ---------------------------------------------------------------------------


@router.post(
    "/disputes/{dispute_id}/start-review",
    response_model=DisputeResponse,
    summary="Move a dispute under review",
)
async def start_review(
    dispute_id: int,
    caller: Caller = Depends(get_caller),
    svc: DisputeService = Depends(get_dispute_service),
) -> DisputeResponse:
    return DisputeResponse.model_validate(await svc.start_review(caller, dispute_id))


@router.post(
    "/disputes/{dispute_id}/resolve-release",
    response_model=ResolutionResponse,
    summary="Resolve a dispute by releasing the escrow to the hauler",
)
async def resolve_release(
    dispute_id: int,
    caller: Caller = Depends(get_caller),
    svc: DisputeService = Depends(get_dispute_service),
) -> ResolutionResponse:
    return ResolutionResponse.from_outcome(await svc.resolve_release(caller, dispute_id))


@router.post(
    "/disputes/{dispute_id}/resolve-refund",
    response_model=ResolutionResponse,
    summary="Resolve a dispute by refunding the escrow to the shipper",
)
async def resolve_refund(
    dispute_id: int,
    caller: Caller = Depends(get_caller),
    svc: DisputeService = Depends(get_dispute_service),
) -> ResolutionResponse:
    return ResolutionResponse.from_outcome(await svc.resolve_refund(caller, dispute_id))


@router.post(
    "/disputes/{dispute_id}/resolve-split",
    response_model=ResolutionResponse,
    summary="Resolve a dispute by splitting the escrow",
)
async def resolve_split(
    dispute_id: int,
    request: ResolveSplitRequest,
    caller: Caller = Depends(get_caller),
    svc: DisputeService = Depends(get_dispute_service),
) -> ResolutionResponse:
    outcome = await svc.resolve_split(
        caller,
        dispute_id,
        amount_to_hauler=request.amount_to_hauler,
        amount_to_shipper=request.amount_to_shipper,
    )
    return ResolutionResponse.from_outcome(outcome)


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


@router.post(
    "/payments/run-auto-release",
    response_model=AutoReleaseResponse,
    summary="Release every escrow whose hold window has passed",
)
async def run_auto_release(
    caller: Caller = Depends(get_caller),
    svc: EscrowService = Depends(get_escrow_service),
) -> AutoReleaseResponse:
    released = await svc.run_auto_release(caller)
    return AutoReleaseResponse(released_payment_ids=released)


@router.post(
    "/payments/{payment_id}/force-release",
    response_model=SettlementResponse,
    summary="Force-release a funded escrow to the hauler, resolving any open dispute",
)
async def force_release(
    payment_id: int,
    caller: Caller = Depends(get_caller),
    svc: EscrowService = Depends(get_escrow_service),
) -> SettlementResponse:
    return SettlementResponse.from_outcome(await svc.force_release(caller, payment_id))


@router.post(
    "/payments/{payment_id}/force-refund",
    response_model=SettlementResponse,
    summary="Force-refund a funded escrow to the shipper, resolving any open dispute",
)
async def force_refund(
    payment_id: int,
    caller: Caller = Depends(get_caller),
    svc: EscrowService = Depends(get_escrow_service),
) -> SettlementResponse:
    return SettlementResponse.from_outcome(await svc.force_refund(caller, payment_id))


@router.post(
    "/payments/{payment_id}/cancel",
    response_model=SettlementResponse,
    summary="Cancel an escrow that was never funded",
)
async def cancel_escrow(
    payment_id: int,
    caller: Caller = Depends(get_caller),
    svc: EscrowService = Depends(get_escrow_service),
) -> SettlementResponse:
    return SettlementResponse.from_outcome(await svc.cancel_unfunded(caller, payment_id))
