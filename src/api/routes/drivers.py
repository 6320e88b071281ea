"""
Driver endpoints
================

POST /api/v1/drivers/onboard                 -- register vehicle details
PUT  /api/v1/drivers/{driver_id}/location    -- report current position
GET  /api/v1/drivers/{driver_id}/location    -- last known position
GET  /api/v1/ride_requests/nearby_drivers    -- approved, available drivers in a radius
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from src.api.dependencies import get_drivers, get_principal
from src.api.middleware import DEFAULT_LIMIT, limiter
from src.api.schemas import (
    DriverLocationResponse,
    DriverOnboardRequest,
    DriverResponse,
    LocationUpdateRequest,
    NearbyDriverResponse,
)
from src.domain.entities import Principal
from src.services.accounts import DriverService

router = APIRouter(tags=["drivers"])


@router.post(
    "/drivers/onboard",
    status_code=201,
    response_model=DriverResponse,
    summary="Onboard the calling driver",
)
async def onboard_driver(
    body: DriverOnboardRequest,
    principal: Principal = Depends(get_principal),
    drivers: DriverService = Depends(get_drivers),
):
    return await drivers.onboard(principal, **body.model_dump())


@router.put(
    "/drivers/{driver_id}/location",
    response_model=DriverLocationResponse,
    summary="Update the driver's position",
)
@limiter.limit(DEFAULT_LIMIT)
async def update_location(
    request: Request,
    driver_id: int,
    body: LocationUpdateRequest,
    principal: Principal = Depends(get_principal),
    drivers: DriverService = Depends(get_drivers),
):
    driver = await drivers.update_location(
        principal, driver_id, body.latitude, body.longitude
    )
    return _location(driver)


@router.get(
    "/drivers/{driver_id}/location",
    response_model=DriverLocationResponse,
    summary="Get the driver's last known position",
)
async def get_location(
    driver_id: int,
    principal: Principal = Depends(get_principal),
    drivers: DriverService = Depends(get_drivers),
):
    return _location(await drivers.get_location(driver_id))


@router.get(
    "/ride_requests/nearby_drivers",
    response_model=list[NearbyDriverResponse],
    summary="Find available drivers near a point",
)
async def nearby_drivers(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius: Optional[float] = Query(None, gt=0, description="Search radius in km"),
    principal: Principal = Depends(get_principal),
    drivers: DriverService = Depends(get_drivers),
):
    found = await drivers.nearby(latitude, longitude, radius)
    return [
        NearbyDriverResponse(
            driver_id=d.driver_id,
            vehicle_make=d.vehicle_make,
            vehicle_model=d.vehicle_model,
            license_plate=d.license_plate,
            latitude=d.current_latitude,
            longitude=d.current_longitude,
            distance_km=round(km, 3),
        )
        for d, km in found
    ]


def _location(driver) -> DriverLocationResponse:
    return DriverLocationResponse(
        driver_id=driver.driver_id,
        latitude=driver.current_latitude,
        longitude=driver.current_longitude,
        last_location_update=driver.last_location_update,
    )
