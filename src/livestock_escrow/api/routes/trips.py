"""Trip REST API routes.

Routes:
    GET    /api/v1/trips/{trip_id}                   - Get a trip
    GET    /api/v1/trips/{trip_id}/events            - Audit trail for the trip's load
    PATCH  /api/v1/trips/{trip_id}/assign-driver     - Hauler assigns a driver
    PATCH  /api/v1/trips/{trip_id}/assign-vehicle    - Hauler assigns a vehicle
    POST   /api/v1/trips/{trip_id}/start             - Start the trip (escrow must be funded)
    POST   /api/v1/trips/{trip_id}/mark-delivered    - Hauler or driver marks delivery
    POST   /api/v1/trips/{trip_id}/confirm-delivery  - Shipper confirms; arms auto-release
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from livestock_escrow.api.deps import get_app_settings, get_caller, get_clock, get_db_session
from livestock_escrow.config import Settings
from livestock_escrow.domain.authorization import Caller
from livestock_escrow.schemas.pipeline import (
    AssignDriverRequest,
    AssignVehicleRequest,
    ConfirmDeliveryResponse,
    LoadResponse,
    PaymentResponse,
    PipelineEventResponse,
    TripProgressResponse,
    TripResponse,
)
from livestock_escrow.services.base import Clock
from livestock_escrow.services.trip_service import TripService

router = APIRouter(prefix="/api/v1/trips", tags=["Trips"])


def get_trip_service(
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock),
) -> TripService:
    return TripService(session, settings=settings, clock=clock)


@router.get("/{trip_id}", response_model=TripResponse, summary="Get a trip")
async def get_trip(
    trip_id: int,
    caller: Caller = Depends(get_caller),
    svc: TripService = Depends(get_trip_service),
) -> TripResponse:
    return TripResponse.model_validate(await svc.get_trip(caller, trip_id))


@router.get(
    "/{trip_id}/events",
    response_model=list[PipelineEventResponse],
    summary="List the audit events of a trip's load",
)
async def get_trip_events(
    trip_id: int,
    caller: Caller = Depends(get_caller),
    svc: TripService = Depends(get_trip_service),
) -> list[PipelineEventResponse]:
    events = await svc.get_events(caller, trip_id)
    return [PipelineEventResponse.model_validate(e) for e in events]


@router.patch("/{trip_id}/assign-driver", response_model=TripResponse, summary="Assign a driver")
async def assign_driver(
    trip_id: int,
    request: AssignDriverRequest,
    caller: Caller = Depends(get_caller),
    svc: TripService = Depends(get_trip_service),
) -> TripResponse:
    trip = await svc.assign_driver(caller, trip_id, request.driver_id)
    return TripResponse.model_validate(trip)


@router.patch("/{trip_id}/assign-vehicle", response_model=TripResponse, summary="Assign a vehicle")
async def assign_vehicle(
    trip_id: int,
    request: AssignVehicleRequest,
    caller: Caller = Depends(get_caller),
    svc: TripService = Depends(get_trip_service),
) -> TripResponse:
    trip = await svc.assign_vehicle(caller, trip_id, request.vehicle_id)
    return TripResponse.model_validate(trip)


@router.post("/{trip_id}/start", response_model=TripProgressResponse, summary="Start a trip")
async def start_trip(
    trip_id: int,
    caller: Caller = Depends(get_caller),
    svc: TripService = Depends(get_trip_service),
) -> TripProgressResponse:
    trip, load = await svc.start_trip(caller, trip_id)
    return TripProgressResponse(
        trip=TripResponse.model_validate(trip),
        load=LoadResponse.model_validate(load),
    )


@router.post(
    "/{trip_id}/mark-delivered",
    response_model=TripProgressResponse,
    summary="Mark the livestock as delivered",
)
async def mark_delivered(
    trip_id: int,
    caller: Caller = Depends(get_caller),
    svc: TripService = Depends(get_trip_service),
) -> TripProgressResponse:
    trip, load = await svc.mark_delivered(caller, trip_id)
    return TripProgressResponse(
        trip=TripResponse.model_validate(trip),
        load=LoadResponse.model_validate(load),
    )


@router.post(
    "/{trip_id}/confirm-delivery",
    response_model=ConfirmDeliveryResponse,
    summary="Confirm delivery and start the escrow hold window",
)
async def confirm_delivery(
    trip_id: int,
    caller: Caller = Depends(get_caller),
    svc: TripService = Depends(get_trip_service),
) -> ConfirmDeliveryResponse:
    trip, payment = await svc.confirm_delivery(caller, trip_id)
    return ConfirmDeliveryResponse(
        trip=TripResponse.model_validate(trip),
        payment=PaymentResponse.model_validate(payment),
    )
