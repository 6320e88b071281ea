"""
Admin / observability endpoints
===============================

PUT /api/v1/admin/drivers/{driver_id}/approve -- NTSA approval of a driver
GET /api/v1/admin/health                      -- simple health check
"""

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import get_drivers, get_principal
from src.api.middleware import DEFAULT_LIMIT, limiter
from src.api.schemas import DriverResponse, HealthResponse
from src.domain.entities import Principal
from src.services.accounts import DriverService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.put(
    "/drivers/{driver_id}/approve",
    response_model=DriverResponse,
    summary="Approve a driver after NTSA document checks",
)
@limiter.limit(DEFAULT_LIMIT)
async def approve_driver(
    request: Request,
    driver_id: int,
    principal: Principal = Depends(get_principal),
    drivers: DriverService = Depends(get_drivers),
):
    return await drivers.approve(principal, driver_id)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health(request: Request):
    return HealthResponse(environment=request.app.state.settings.environment)
