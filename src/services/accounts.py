"""
Account and driver management.

Registration, login and (optionally) email verification for passengers
and drivers, driver onboarding and admin approval, and driver location
tracking with the nearby-driver radius search.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.compliance import validate_vehicle_eligibility
from src.domain.distance import distance_km
from src.domain.entities import Principal
from src.domain.enums import UserType
from src.domain.errors import Conflict, Forbidden, NotFound, Unauthorized, ValidationError
from src.domain.phone import is_valid_phone, normalize_phone
from src.infrastructure.database import unit_of_work
from src.infrastructure.identity import IdentityProvider
from src.infrastructure.models import DriverModel, UserModel
from src.infrastructure.repositories import DriverRepository, UserRepository
from .support import as_utc, notify, require_role, utcnow

logger = logging.getLogger(__name__)

SELF_REGISTERING_TYPES = (UserType.PASSENGER, UserType.DRIVER)
VERIFICATION_TOKEN_TTL = timedelta(hours=24)


@dataclass
class AuthResult:
    user: UserModel
    access_token: str
    warnings: list[str] = field(default_factory=list)


class AccountService:
    def __init__(
        self,
        session: AsyncSession,
        identity: IdentityProvider,
        notifier=None,
        verification_enabled: bool = False,
        base_url: str = "",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.identity = identity
        self.notifier = notifier
        self.verification_enabled = verification_enabled
        self.base_url = base_url.rstrip("/")
        self.clock = clock
        self.users = UserRepository(session)

    async def register(
        self,
        *,
        user_type: UserType,
        first_name: str,
        last_name: str,
        email: str,
        phone_number: str,
        password: str,
    ) -> AuthResult:
        if user_type not in SELF_REGISTERING_TYPES:
            raise ValidationError("user_type must be 'driver' or 'passenger'")
        if not is_valid_phone(phone_number):
            raise ValidationError("Invalid Kenyan phone number")
        phone = normalize_phone(phone_number)

        if await self.users.get_by_email(email) is not None:
            raise Conflict("Email already registered")
        if await self.users.get_by_phone(phone) is not None:
            raise Conflict("Phone number already registered")

        token = secrets.token_urlsafe(32) if self.verification_enabled else None
        expiry = self.clock() + VERIFICATION_TOKEN_TTL if token else None
        async with unit_of_work(self.session):
            try:
                user = await self.users.create(
                    UserModel(
                        user_type=user_type,
                        first_name=first_name,
                        last_name=last_name,
                        email=email.lower(),
                        phone_number=phone,
                        password_hash=self.identity.hash_password(password),
                        is_email_verified=False,
                        email_verification_token=token,
                        email_verification_expiry=expiry,
                        rating=0.0,
                    )
                )
            except IntegrityError as exc:
                raise Conflict("Email or phone number already registered") from exc

        logger.info("Registered %s user %d", user_type.value, user.id)
        if token:
            warnings = await notify(
                self.notifier,
                user.email,
                "verify_email",
                {
                    "first_name": user.first_name,
                    "verification_url": f"{self.base_url}/api/v1/auth/verify-email?token={token}",
                },
            )
        else:
            warnings = await notify(
                self.notifier,
                user.email,
                "welcome",
                {"first_name": user.first_name, "user_type": user_type.value},
            )
        return AuthResult(
            user=user,
            access_token=self.identity.issue_token(user.id, user.user_type),
            warnings=warnings,
        )

    async def login(self, email: str, password: str) -> AuthResult:
        user = await self.users.get_by_email(email)
        if user is None or not self.identity.verify_password(password, user.password_hash):
            raise Unauthorized("Invalid email or password")
        return AuthResult(
            user=user, access_token=self.identity.issue_token(user.id, user.user_type)
        )

    async def verify_email(self, token: str) -> UserModel:
        user = await self.users.get_by_verification_token(token)
        if user is None:
            raise NotFound("Invalid or expired verification token")
        expiry = as_utc(user.email_verification_expiry)
        if expiry is None or expiry < self.clock():
            raise ValidationError("Verification token has expired")
        async with unit_of_work(self.session):
            user.is_email_verified = True
            user.email_verification_token = None
            user.email_verification_expiry = None
        return user

    async def get_user(self, user_id: int) -> UserModel:
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    async def update_user(
        self,
        principal: Principal,
        user_id: int,
        *,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> UserModel:
        """Update the caller's own name or phone; identity fields never change here."""
        if principal.user_id != user_id:
            raise Forbidden("You can only update your own profile")
        user = await self.get_user(user_id)

        phone = None
        if phone_number is not None:
            if not is_valid_phone(phone_number):
                raise ValidationError("Invalid Kenyan phone number")
            phone = normalize_phone(phone_number)
            holder = await self.users.get_by_phone(phone)
            if holder is not None and holder.id != user.id:
                raise Conflict("Phone number already registered")

        async with unit_of_work(self.session):
            if first_name is not None:
                user.first_name = first_name
            if last_name is not None:
                user.last_name = last_name
            if phone is not None:
                user.phone_number = phone
            try:
                await self.session.flush()
            except IntegrityError as exc:
                raise Conflict("Phone number already registered") from exc

        logger.info("Updated profile of user %d", user.id)
        return user


class DriverService:
    def __init__(self, session: AsyncSession, default_radius_km: float = 5.0):
        self.session = session
        self.default_radius_km = default_radius_km
        self.drivers = DriverRepository(session)

    async def onboard(
        self,
        principal: Principal,
        *,
        vehicle_make: str,
        vehicle_model: str,
        license_plate: str,
        driver_license_number: str,
        insurance_details: Optional[str] = None,
        vehicle_year: Optional[int] = None,
    ) -> DriverModel:
        require_role(principal, UserType.DRIVER, "Only driver accounts can be onboarded")
        if await self.drivers.get_by_id(principal.user_id) is not None:
            raise Conflict("Driver already onboarded")

        if vehicle_year is not None:
            eligibility = validate_vehicle_eligibility(vehicle_year, vehicle_make, vehicle_model)
            if not eligibility.is_eligible:
                raise ValidationError("; ".join(eligibility.issues))

        plate = license_plate.replace(" ", "").upper()
        if await self.drivers.exists_with_plate_or_license(plate, driver_license_number):
            raise Conflict("License plate or driver license already registered")

        async with unit_of_work(self.session):
            try:
                driver = await self.drivers.create(
                    DriverModel(
                        driver_id=principal.user_id,
                        vehicle_make=vehicle_make,
                        vehicle_model=vehicle_model,
                        vehicle_year=vehicle_year,
                        license_plate=plate,
                        driver_license_number=driver_license_number,
                        insurance_details=insurance_details,
                        is_approved=False,
                        # no ride in progress yet
                        is_available=True,
                    )
                )
            except IntegrityError as exc:
                raise Conflict("License plate or driver license already registered") from exc
        logger.info("Driver %d onboarded (%s)", driver.driver_id, plate)
        return driver

    async def approve(self, principal: Principal, driver_id: int) -> DriverModel:
        if not principal.is_admin:
            raise Forbidden("Admin access required")
        driver = await self._get(driver_id)
        async with unit_of_work(self.session):
            driver.is_approved = True
        logger.info("Driver %d approved by admin %d", driver_id, principal.user_id)
        return driver

    async def update_location(
        self, principal: Principal, driver_id: int, latitude: float, longitude: float
    ) -> DriverModel:
        if not principal.is_driver or principal.user_id != driver_id:
            raise Forbidden("You can only update your own location")
        driver = await self._get(driver_id)
        async with unit_of_work(self.session):
            driver.current_latitude = latitude
            driver.current_longitude = longitude
            driver.last_location_update = utcnow()
        return driver

    async def get_location(self, driver_id: int) -> DriverModel:
        driver = await self._get(driver_id)
        if driver.current_latitude is None or driver.current_longitude is None:
            raise NotFound("Driver location not available")
        return driver

    async def nearby(
        self, latitude: float, longitude: float, radius_km: Optional[float] = None
    ) -> list[tuple[DriverModel, float]]:
        """Approved, available drivers within *radius_km*, nearest first."""
        radius = self.default_radius_km if radius_km is None else radius_km
        if radius <= 0:
            raise ValidationError("radius must be positive")

        found = []
        for driver in await self.drivers.get_available_with_position():
            d = distance_km(latitude, longitude, driver.current_latitude, driver.current_longitude)
            if d <= radius:
                found.append((driver, d))
        found.sort(key=lambda pair: pair[1])
        return found

    async def _get(self, driver_id: int) -> DriverModel:
        driver = await self.drivers.get_by_id(driver_id)
        if driver is None:
            raise NotFound("Driver not found")
        return driver

