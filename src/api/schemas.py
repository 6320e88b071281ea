"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, Field

from src.domain.enums import (
    PaymentMethod,
    PaymentStatus,
    RideRequestStatus,
    RideStatus,
    UserType,
)


# ── Requests ──────────────────────────────────────────────────────────


class RegisterRequest(BaseModel):
    user_type: UserType
    first_name: str = Field(..., min_length=1, max_length=120)
    last_name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    phone_number: str = Field(..., min_length=9, max_length=20)
    password: str = Field(..., min_length=8, max_length=128)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UserUpdateRequest(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=120)
    last_name: Optional[str] = Field(None, min_length=1, max_length=120)
    phone_number: Optional[str] = Field(None, min_length=9, max_length=20)


class DriverOnboardRequest(BaseModel):
    vehicle_make: str = Field(..., min_length=1, max_length=60)
    vehicle_model: str = Field(..., min_length=1, max_length=60)
    vehicle_year: Optional[int] = Field(None, ge=1950, le=2100)
    license_plate: str = Field(..., min_length=1, max_length=20)
    driver_license_number: str = Field(..., min_length=1, max_length=40)
    insurance_details: Optional[str] = None


class LocationUpdateRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class RideRequestCreate(BaseModel):
    pickup_latitude: float = Field(..., ge=-90, le=90)
    pickup_longitude: float = Field(..., ge=-180, le=180)
    dropoff_latitude: float = Field(..., ge=-90, le=90)
    dropoff_longitude: float = Field(..., ge=-180, le=180)
    pickup_address: Optional[str] = Field(None, max_length=255)
    dropoff_address: Optional[str] = Field(None, max_length=255)


class ReviewCreate(BaseModel):
    ride_id: int
    reviewed_id: int
    rating: float = Field(..., ge=1.0, le=5.0)
    comment: Optional[str] = None


class STKPushRequest(BaseModel):
    ride_id: int
    phone_number: str
    amount: Optional[float] = Field(
        None,
        gt=0,
        description="Optional; must equal the ride's fare when given.",
    )


class VehicleValidationRequest(BaseModel):
    vehicle_year: int
    vehicle_make: str
    vehicle_model: str


# ── Responses ─────────────────────────────────────────────────────────


class UserResponse(BaseModel):
    id: int
    user_type: UserType
    first_name: str
    last_name: str
    email: str
    phone_number: str
    is_email_verified: bool
    rating: float
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
    warnings: list[str] = []


class DriverResponse(BaseModel):
    driver_id: int
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_year: Optional[int] = None
    license_plate: str
    driver_license_number: str
    insurance_details: Optional[str] = None
    is_approved: bool
    is_available: bool
    current_latitude: Optional[float] = None
    current_longitude: Optional[float] = None
    last_location_update: Optional[datetime] = None

    model_config = {"from_attributes": True}


class DriverLocationResponse(BaseModel):
    driver_id: int
    latitude: float
    longitude: float
    last_location_update: Optional[datetime] = None


class NearbyDriverResponse(BaseModel):
    driver_id: int
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    license_plate: str
    latitude: float
    longitude: float
    distance_km: float


class RideRequestResponse(BaseModel):
    id: int
    passenger_id: int
    pickup_latitude: float
    pickup_longitude: float
    dropoff_latitude: float
    dropoff_longitude: float
    pickup_address: Optional[str] = None
    dropoff_address: Optional[str] = None
    status: RideRequestStatus
    estimated_fare: float
    estimated_distance_km: float
    estimated_duration_minutes: int
    requested_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RideResponse(BaseModel):
    id: int
    request_id: int
    driver_id: int
    passenger_id: int
    status: RideStatus
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    actual_fare: Optional[float] = None
    actual_distance_km: Optional[float] = None
    actual_duration_minutes: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PaymentResponse(BaseModel):
    id: int
    ride_id: int
    amount: float
    currency: str
    payment_method: PaymentMethod
    transaction_id: Optional[str] = None
    payment_status: PaymentStatus
    payment_date: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ReviewResponse(BaseModel):
    id: int
    ride_id: int
    reviewer_id: int
    reviewed_id: int
    rating: float
    comment: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AcceptResponse(BaseModel):
    ride: RideResponse
    ride_request: RideRequestResponse
    warnings: list[str] = []


class RideEndResponse(BaseModel):
    message: str = "Ride completed"
    ride: RideResponse
    payment_id: int
    total_fare: float
    warnings: list[str] = []


class STKPushResponse(BaseModel):
    message: str = "M-Pesa payment initiated"
    payment_id: int
    checkout_request_id: str
    customer_message: str


class CallbackResponse(BaseModel):
    message: str = "Callback processed successfully"
    payment_status: PaymentStatus
    warnings: list[str] = []


class ComplianceStatusResponse(BaseModel):
    driver_id: int
    is_compliant: bool
    issues: list[str]
    last_checked: Optional[str] = None

    model_config = {"from_attributes": True}


class CommissionResponse(BaseModel):
    total_fare: float
    commission_rate: float
    commission_amount: float
    driver_earnings: float
    currency: str

    model_config = {"from_attributes": True}


class VehicleEligibilityResponse(BaseModel):
    is_eligible: bool
    issues: list[str]
    max_age_years: int

    model_config = {"from_attributes": True}


class ReportRideResponse(BaseModel):
    ride_id: int
    driver_id: int
    driver_name: str
    passenger_id: int
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    pickup_location: str
    dropoff_location: str
    distance_km: Optional[float] = None
    duration_minutes: Optional[int] = None
    fare: Optional[float] = None
    commission_amount: Optional[float] = None
    driver_earnings: Optional[float] = None

    model_config = {"from_attributes": True}


class ComplianceReportResponse(BaseModel):
    report_period: str
    generated_at: datetime
    total_rides: int
    total_revenue: float
    total_commission: float
    rides: list[ReportRideResponse]

    model_config = {"from_attributes": True}


class MessageResponse(BaseModel):
    message: str
    data: Optional[dict[str, Any]] = None


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str = "Kenyan Ride Share Backend"
    environment: Optional[str] = None


class ErrorResponse(BaseModel):
    detail: str
