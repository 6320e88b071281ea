"""
Compliance service: NTSA driver checks and the regulatory ride report.

The rules themselves live in ``src.domain.compliance``; this service
only resolves entities through the repositories.  The report degrades
gracefully: a ride whose driver or request cannot be resolved is listed
with placeholder values instead of failing the whole report.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.compliance import ComplianceStatus, calculate_commission, check_driver_record
from src.domain.entities import Location, Principal
from src.domain.errors import Forbidden, NotFound, ValidationError
from src.infrastructure.repositories import (
    DriverRepository,
    RideRepository,
    RideRequestRepository,
    UserRepository,
)
from .support import require_self_or_admin, utcnow

logger = logging.getLogger(__name__)

UNKNOWN_DRIVER = "Unknown Driver"
UNKNOWN_LOCATION = "Unknown"


@dataclass
class ReportRide:
    ride_id: int
    driver_id: int
    driver_name: str
    passenger_id: int
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    pickup_location: str
    dropoff_location: str
    distance_km: Optional[float]
    duration_minutes: Optional[int]
    fare: Optional[float]
    commission_amount: Optional[float]
    driver_earnings: Optional[float]


@dataclass
class ComplianceReport:
    report_period: str
    generated_at: datetime
    total_rides: int = 0
    total_revenue: float = 0.0
    total_commission: float = 0.0
    rides: list[ReportRide] = field(default_factory=list)


class ComplianceService:
    def __init__(self, session: AsyncSession):
        self.users = UserRepository(session)
        self.drivers = DriverRepository(session)
        self.rides = RideRepository(session)
        self.requests = RideRequestRepository(session)

    async def validate_driver_compliance(
        self, principal: Principal, driver_id: int
    ) -> ComplianceStatus:
        require_self_or_admin(principal, driver_id, "Access denied")
        driver = await self.drivers.get_by_id(driver_id)
        if driver is None:
            raise NotFound("Driver not found")

        status = check_driver_record(driver)
        status.last_checked = utcnow().isoformat()
        return status

    async def generate_compliance_report(
        self, principal: Principal, start_date: date, end_date: date
    ) -> ComplianceReport:
        if not principal.is_admin:
            raise Forbidden("Admin access required")
        if start_date > end_date:
            raise ValidationError("start_date must not be after end_date")

        window_start = datetime.combine(start_date, time.min, tzinfo=timezone.utc)
        window_end = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
        rides = await self.rides.list_completed_between(window_start, window_end)

        report = ComplianceReport(
            report_period=f"{start_date.isoformat()} to {end_date.isoformat()}",
            generated_at=utcnow(),
            total_rides=len(rides),
        )
        for ride in rides:
            row = await self._report_row(ride)
            if ride.actual_fare is not None:
                report.total_revenue += ride.actual_fare
                report.total_commission += row.commission_amount
            report.rides.append(row)

        logger.info(
            "NTSA report %s: %d rides, KES %.2f",
            report.report_period, report.total_rides, report.total_revenue,
        )
        return report

    async def _report_row(self, ride) -> ReportRide:
        driver_name = UNKNOWN_DRIVER
        if await self.drivers.get_by_id(ride.driver_id) is not None:
            user = await self.users.get_by_id(ride.driver_id)
            if user is not None:
                driver_name = user.full_name

        pickup = dropoff = UNKNOWN_LOCATION
        request = await self.requests.get_by_id(ride.request_id)
        if request is not None:
            pickup = Location(request.pickup_latitude, request.pickup_longitude).as_text()
            dropoff = Location(request.dropoff_latitude, request.dropoff_longitude).as_text()

        commission = earnings = None
        if ride.actual_fare is not None:
            breakdown = calculate_commission(ride.actual_fare)
            commission = breakdown.commission_amount
            earnings = breakdown.driver_earnings

        return ReportRide(
            ride_id=ride.id,
            driver_id=ride.driver_id,
            driver_name=driver_name,
            passenger_id=ride.passenger_id,
            start_time=ride.start_time,
            end_time=ride.end_time,
            pickup_location=pickup,
            dropoff_location=dropoff,
            distance_km=ride.actual_distance_km,
            duration_minutes=ride.actual_duration_minutes,
            fare=ride.actual_fare,
            commission_amount=commission,
            driver_earnings=earnings,
        )
