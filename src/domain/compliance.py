"""
Kenyan regulatory rules (NTSA) applied to drivers, vehicles and fares.

All functions here are pure: they take snapshots and return result
objects.  Every failing rule is reported, none short-circuits the rest.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

COMMISSION_RATE = 0.18  # regulatory cap on the platform's service fee
CURRENCY = "KES"
MIN_VEHICLE_YEAR = 2015
MAX_VEHICLE_AGE_YEARS = 10


@dataclass
class ComplianceStatus:
    driver_id: int
    is_compliant: bool = True
    issues: list[str] = field(default_factory=list)
    last_checked: Optional[str] = None

    def fail(self, issue: str) -> None:
        self.is_compliant = False
        self.issues.append(issue)


@dataclass(frozen=True)
class CommissionBreakdown:
    total_fare: float
    commission_rate: float
    commission_amount: float
    driver_earnings: float
    currency: str = CURRENCY


@dataclass
class VehicleEligibility:
    is_eligible: bool = True
    issues: list[str] = field(default_factory=list)
    max_age_years: int = MAX_VEHICLE_AGE_YEARS

    def fail(self, issue: str) -> None:
        self.is_eligible = False
        self.issues.append(issue)


def check_driver_record(driver) -> ComplianceStatus:
    """Check a driver snapshot (anything with the ``DriverModel`` attributes)."""
    status = ComplianceStatus(driver_id=driver.driver_id)

    if not driver.is_approved:
        status.fail("Driver not approved by NTSA")
    if not driver.driver_license_number:
        status.fail("Driver license number missing")
    if not driver.license_plate:
        status.fail("Vehicle license plate missing")
    if not driver.vehicle_make or not driver.vehicle_model:
        status.fail("Vehicle details incomplete")
    if not driver.insurance_details:
        status.fail("Insurance details missing")

    return status


def calculate_commission(fare: float) -> CommissionBreakdown:
    commission = fare * COMMISSION_RATE
    return CommissionBreakdown(
        total_fare=fare,
        commission_rate=COMMISSION_RATE,
        commission_amount=commission,
        driver_earnings=fare - commission,
    )


def validate_vehicle_eligibility(
    year: int, make: Optional[str], model: Optional[str], current_year: Optional[int] = None
) -> VehicleEligibility:
    result = VehicleEligibility()

    if year < MIN_VEHICLE_YEAR:
        if current_year is None:
            current_year = date.today().year
        result.fail(
            f"Vehicle too old: manufactured {year}, {current_year - year} years "
            f"(only {MIN_VEHICLE_YEAR} and newer accepted)"
        )

    if not (make or "").strip() or not (model or "").strip():
        result.fail("Vehicle make and model required")

    return result
