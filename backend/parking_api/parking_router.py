"""Garage check-in / check-out HTTP API.

Thin layer over ParkingManager: requests are parsed into core calls, results
are turned into DTOs, and every ParkingError becomes the same JSON error body
with a status code chosen by its kind.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from core.errors import ErrorKind, ParkingError
from core.parking_manager import ParkingManager
from db.deps import get_parking_manager

from .parking_dtos import (
    AvailabilityResponse,
    CheckinPreviewResponse,
    CheckinRequest,
    CheckinResponse,
    CheckoutPreviewResponse,
    CheckoutRequest,
    CheckoutResponse,
    ErrorResponse,
    ForceCheckoutRequest,
    GarageStatsResponse,
    ParkedVehicleDTO,
)

log = logging.getLogger(__name__)

router = APIRouter(prefix="/garages", tags=["garages"])

STATUS_BY_KIND = {
    ErrorKind.VALIDATION_FAILED: 400,
    ErrorKind.ALREADY_CHECKED_IN: 409,
    ErrorKind.NOT_CHECKED_IN: 404,
    ErrorKind.NO_SPOTS_AVAILABLE: 503,
    ErrorKind.TRANSIENT_STORE_FAILURE: 503,
}

ERROR_RESPONSES = {
    status: {"model": ErrorResponse} for status in sorted(set(STATUS_BY_KIND.values()))
}


def parking_error_response(exc: ParkingError) -> JSONResponse:
    status = STATUS_BY_KIND.get(exc.kind, 500)
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(status_code=status, content={"error": exc.to_dict()}, headers=headers)


def install_error_handlers(app: FastAPI) -> None:
    async def _handle(request: Request, exc: ParkingError) -> JSONResponse:
        if exc.kind == ErrorKind.TRANSIENT_STORE_FAILURE:
            log.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
        return parking_error_response(exc)

    app.add_exception_handler(ParkingError, _handle)


# ------------------------
# Check-in
# ------------------------

@router.post(
    "/{garage_id}/checkins",
    response_model=CheckinResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
)
def check_in(
    garage_id: str,
    req: CheckinRequest,
    manager: ParkingManager = Depends(get_parking_manager),
):
    result = manager.check_in(garage_id, req.license_plate, req.vehicle_type, req.to_options())
    return CheckinResponse.from_result(result)


@router.post(
    "/{garage_id}/checkins:preview",
    response_model=CheckinPreviewResponse,
    responses=ERROR_RESPONSES,
)
def preview_check_in(
    garage_id: str,
    req: CheckinRequest,
    manager: ParkingManager = Depends(get_parking_manager),
):
    preview = manager.preview_check_in(
        garage_id, req.license_plate, req.vehicle_type, req.to_options()
    )
    return CheckinPreviewResponse.from_preview(preview)


# ------------------------
# Check-out
# ------------------------

@router.post("/{garage_id}/checkouts", response_model=CheckoutResponse, responses=ERROR_RESPONSES)
def check_out(
    garage_id: str,
    req: CheckoutRequest,
    manager: ParkingManager = Depends(get_parking_manager),
):
    return CheckoutResponse.from_result(manager.check_out(garage_id, req.license_plate))


@router.post(
    "/{garage_id}/checkouts:force", response_model=CheckoutResponse, responses=ERROR_RESPONSES
)
def force_check_out(
    garage_id: str,
    req: ForceCheckoutRequest,
    manager: ParkingManager = Depends(get_parking_manager),
):
    result = manager.force_check_out(garage_id, req.license_plate, req.reason)
    return CheckoutResponse.from_result(result)


@router.post(
    "/{garage_id}/checkouts:preview",
    response_model=CheckoutPreviewResponse,
    responses=ERROR_RESPONSES,
)
def preview_check_out(
    garage_id: str,
    req: CheckoutRequest,
    manager: ParkingManager = Depends(get_parking_manager),
):
    preview = manager.preview_check_out(garage_id, req.license_plate)
    return CheckoutPreviewResponse.from_preview(preview)


# ------------------------
# Availability
# ------------------------

@router.get(
    "/{garage_id}/availability", response_model=AvailabilityResponse, responses=ERROR_RESPONSES
)
def get_availability(
    garage_id: str,
    vehicle_type: Optional[str] = None,
    manager: ParkingManager = Depends(get_parking_manager),
):
    return AvailabilityResponse.from_snapshot(manager.get_availability(garage_id, vehicle_type))


# ------------------------
# Monitoring
# ------------------------

@router.get(
    "/{garage_id}/vehicles", response_model=List[ParkedVehicleDTO], responses=ERROR_RESPONSES
)
def list_parked(
    garage_id: str,
    min_minutes: int = 0,
    manager: ParkingManager = Depends(get_parking_manager),
):
    return [ParkedVehicleDTO.from_entry(e) for e in manager.list_parked(garage_id, min_minutes)]


@router.get("/{garage_id}/stats", response_model=GarageStatsResponse, responses=ERROR_RESPONSES)
def get_garage_stats(
    garage_id: str,
    manager: ParkingManager = Depends(get_parking_manager),
):
    return GarageStatsResponse.from_stats(manager.get_garage_stats(garage_id))
