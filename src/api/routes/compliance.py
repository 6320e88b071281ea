"""
NTSA compliance endpoints
=========================

GET  /api/v1/compliance/drivers/{driver_id}/check   -- driver compliance status
GET  /api/v1/compliance/commission/calculate        -- 18% commission split of a fare
POST /api/v1/compliance/vehicles/validate           -- vehicle eligibility
GET  /api/v1/compliance/reports/ntsa                -- completed-ride report (admin)
"""

from datetime import date

from fastapi import APIRouter, Depends, Query

from src.api.dependencies import get_compliance, get_principal
from src.api.schemas import (
    CommissionResponse,
    ComplianceReportResponse,
    ComplianceStatusResponse,
    VehicleEligibilityResponse,
    VehicleValidationRequest,
)
from src.domain.compliance import calculate_commission, validate_vehicle_eligibility
from src.domain.entities import Principal
from src.services.compliance import ComplianceService

router = APIRouter(prefix="/compliance", tags=["compliance"])


@router.get(
    "/drivers/{driver_id}/check",
    response_model=ComplianceStatusResponse,
    summary="Check a driver's NTSA compliance",
)
async def check_driver(
    driver_id: int,
    principal: Principal = Depends(get_principal),
    compliance: ComplianceService = Depends(get_compliance),
):
    return await compliance.validate_driver_compliance(principal, driver_id)


@router.get(
    "/commission/calculate",
    response_model=CommissionResponse,
    summary="Split a fare into platform commission and driver earnings",
)
async def commission(
    fare: float = Query(..., ge=0),
    principal: Principal = Depends(get_principal),
):
    return calculate_commission(fare)


@router.post(
    "/vehicles/validate",
    response_model=VehicleEligibilityResponse,
    summary="Check whether a vehicle may operate on the platform",
)
async def validate_vehicle(
    body: VehicleValidationRequest,
    principal: Principal = Depends(get_principal),
):
    return validate_vehicle_eligibility(
        body.vehicle_year, body.vehicle_make, body.vehicle_model
    )


@router.get(
    "/reports/ntsa",
    response_model=ComplianceReportResponse,
    summary="NTSA report of completed rides in a date window",
)
async def ntsa_report(
    start_date: date = Query(...),
    end_date: date = Query(...),
    principal: Principal = Depends(get_principal),
    compliance: ComplianceService = Depends(get_compliance),
):
    return await compliance.generate_compliance_report(principal, start_date, end_date)
