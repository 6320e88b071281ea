"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  State changes that can race (accepting a
request, flipping driver availability, starting a ride) are exposed as
compare-and-swap updates that report whether this caller won.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    DriverModel,
    PaymentModel,
    RideModel,
    RideRequestModel,
    ReviewModel,
    UserModel,
)
from src.domain.enums import RideRequestStatus, RideStatus


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, user: UserModel) -> UserModel:
        self.session.add(user)
        await self.session.flush()
        return user

    async def get_by_id(self, user_id: int) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)

    async def get_by_email(self, email: str) -> Optional[UserModel]:
        result = await self.session.execute(
            select(UserModel).where(func.lower(UserModel.email) == email.lower())
        )
        return result.scalar_one_or_none()

    async def get_by_phone(self, phone_number: str) -> Optional[UserModel]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.phone_number == phone_number)
        )
        return result.scalar_one_or_none()

    async def get_by_verification_token(self, token: str) -> Optional[UserModel]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.email_verification_token == token)
        )
        return result.scalar_one_or_none()

    async def set_rating(self, user_id: int, rating: float) -> None:
        await self.session.execute(
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(rating=rating)
            .execution_options(synchronize_session=False)
        )


class DriverRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, driver: DriverModel) -> DriverModel:
        self.session.add(driver)
        await self.session.flush()
        return driver

    async def get_by_id(self, driver_id: int, refresh: bool = False) -> Optional[DriverModel]:
        return await self.session.get(DriverModel, driver_id, populate_existing=refresh)

    async def exists_with_plate_or_license(self, plate: str, license_number: str) -> bool:
        result = await self.session.execute(
            select(func.count())
            .select_from(DriverModel)
            .where(
                or_(
                    DriverModel.license_plate == plate,
                    DriverModel.driver_license_number == license_number,
                )
            )
        )
        return (result.scalar() or 0) > 0

    async def get_available_with_position(self) -> list[DriverModel]:
        result = await self.session.execute(
            select(DriverModel).where(
                DriverModel.is_available.is_(True),
                DriverModel.is_approved.is_(True),
                DriverModel.current_latitude.is_not(None),
                DriverModel.current_longitude.is_not(None),
            )
        )
        return list(result.scalars().all())

    async def claim_for_ride(self, driver_id: int) -> bool:
        """Mark an approved, available driver busy.  False if not claimable."""
        result = await self.session.execute(
            update(DriverModel)
            .where(
                DriverModel.driver_id == driver_id,
                DriverModel.is_approved.is_(True),
                DriverModel.is_available.is_(True),
            )
            .values(is_available=False)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def release(self, driver_id: int) -> None:
        await self.session.execute(
            update(DriverModel)
            .where(DriverModel.driver_id == driver_id)
            .values(is_available=True)
            .execution_options(synchronize_session=False)
        )


class RideRequestRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, request: RideRequestModel) -> RideRequestModel:
        self.session.add(request)
        await self.session.flush()
        return request

    async def get_by_id(
        self, request_id: int, refresh: bool = False
    ) -> Optional[RideRequestModel]:
        return await self.session.get(
            RideRequestModel, request_id, populate_existing=refresh
        )

    async def compare_and_set_status(
        self,
        request_id: int,
        expected: RideRequestStatus,
        new: RideRequestStatus,
    ) -> bool:
        """``UPDATE ... WHERE status = expected``; True iff this call won."""
        result = await self.session.execute(
            update(RideRequestModel)
            .where(
                RideRequestModel.id == request_id,
                RideRequestModel.status == expected,
            )
            .values(status=new)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, ride: RideModel) -> RideModel:
        self.session.add(ride)
        await self.session.flush()
        return ride

    async def get_by_id(self, ride_id: int, refresh: bool = False) -> Optional[RideModel]:
        return await self.session.get(RideModel, ride_id, populate_existing=refresh)

    async def mark_started(self, ride_id: int, driver_id: int, at: datetime) -> bool:
        """Set ``start_time`` once; False if already started or not this driver's."""
        result = await self.session.execute(
            update(RideModel)
            .where(
                RideModel.id == ride_id,
                RideModel.driver_id == driver_id,
                RideModel.status == RideStatus.IN_PROGRESS,
                RideModel.start_time.is_(None),
            )
            .values(start_time=at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_for_user(self, user_id: int) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(or_(RideModel.passenger_id == user_id, RideModel.driver_id == user_id))
            .order_by(RideModel.id.desc())
        )
        return list(result.scalars().all())

    async def list_completed_between(
        self, start: datetime, end: datetime
    ) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(
                RideModel.status == RideStatus.COMPLETED,
                RideModel.end_time >= start,
                RideModel.end_time < end,
            )
            .order_by(RideModel.end_time)
        )
        return list(result.scalars().all())


class PaymentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, payment: PaymentModel) -> PaymentModel:
        self.session.add(payment)
        await self.session.flush()
        return payment

    async def get_by_id(self, payment_id: int) -> Optional[PaymentModel]:
        return await self.session.get(PaymentModel, payment_id)

    async def get_by_ride(self, ride_id: int) -> Optional[PaymentModel]:
        result = await self.session.execute(
            select(PaymentModel).where(PaymentModel.ride_id == ride_id)
        )
        return result.scalar_one_or_none()

    async def get_by_transaction_id(self, transaction_id: str) -> Optional[PaymentModel]:
        result = await self.session.execute(
            select(PaymentModel).where(PaymentModel.transaction_id == transaction_id)
        )
        return result.scalar_one_or_none()


class ReviewRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, review: ReviewModel) -> ReviewModel:
        self.session.add(review)
        await self.session.flush()
        return review

    async def exists(self, ride_id: int, reviewer_id: int) -> bool:
        result = await self.session.execute(
            select(func.count())
            .select_from(ReviewModel)
            .where(
                ReviewModel.ride_id == ride_id,
                ReviewModel.reviewer_id == reviewer_id,
            )
        )
        return (result.scalar() or 0) > 0

    async def ratings_for(self, user_id: int) -> list[float]:
        result = await self.session.execute(
            select(ReviewModel.rating).where(ReviewModel.reviewed_id == user_id)
        )
        return list(result.scalars().all())

    async def list_for_reviewed(self, user_id: int) -> list[ReviewModel]:
        result = await self.session.execute(
            select(ReviewModel)
            .where(ReviewModel.reviewed_id == user_id)
            .order_by(ReviewModel.id.desc())
        )
        return list(result.scalars().all())
