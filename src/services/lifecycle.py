"""
Ride Lifecycle Manager
======================

State machine over (RideRequest, Ride, Payment, Driver.is_available),
considered jointly:

    request: pending ──accept──> accepted ──end──> completed
                    └─reject──> rejected
    ride:             in_progress ──end──> completed
    driver:           available ──accept──> busy ──end──> available
    payment:                          pending ──callback──> completed | failed

Transactions
------------
Every transition runs inside one ``unit_of_work``: all of its effects
commit together or none do.  Emails and gateway calls happen outside
that block.  A failed email never undoes a committed transition; it is
logged and handed back to the caller in ``warnings``.

Concurrency
-----------
Accept is the one racy transition.  The ``pending -> accepted`` change is
a compare-and-swap ``UPDATE ... WHERE status = 'pending'``: when two
drivers accept the same request, the store serialises the updates and
exactly one sees a matched row.  The loser gets ``Conflict``.  Marking
the driver busy and starting a ride are guarded the same way.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.entities import (
    MAX_RATING,
    MIN_RATING,
    Principal,
    mean_rating,
    transition,
)
from src.domain.enums import (
    PAYMENT_TRANSITIONS,
    REQUEST_TRANSITIONS,
    RIDE_TRANSITIONS,
    PaymentMethod,
    PaymentStatus,
    RideRequestStatus,
    RideStatus,
    UserType,
)
from src.domain.errors import (
    Conflict,
    Forbidden,
    InvalidState,
    NotFound,
    ValidationError,
)
from src.domain.compliance import CURRENCY
from src.domain.phone import is_valid_phone, normalize_phone
from src.domain.pricing import PricingEngine
from src.infrastructure.database import unit_of_work
from src.infrastructure.models import (
    PaymentModel,
    ReviewModel,
    RideModel,
    RideRequestModel,
)
from src.infrastructure.mpesa import MpesaGateway
from src.infrastructure.repositories import (
    DriverRepository,
    PaymentRepository,
    ReviewRepository,
    RideRepository,
    RideRequestRepository,
    UserRepository,
)
from .support import as_utc, notify, require_role, require_self_or_admin, utcnow

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    ride_request: Optional[RideRequestModel] = None
    ride: Optional[RideModel] = None
    payment: Optional[PaymentModel] = None
    warnings: list[str] = field(default_factory=list)


@dataclass
class PaymentInitiation:
    payment: PaymentModel
    checkout_request_id: str
    customer_message: str


class RideLifecycleManager:
    def __init__(
        self,
        session: AsyncSession,
        pricing: PricingEngine,
        notifier=None,
        gateway: Optional[MpesaGateway] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.pricing = pricing
        self.notifier = notifier
        self.gateway = gateway
        self.clock = clock

        self.users = UserRepository(session)
        self.drivers = DriverRepository(session)
        self.requests = RideRequestRepository(session)
        self.rides = RideRepository(session)
        self.payments = PaymentRepository(session)
        self.reviews = ReviewRepository(session)

    # ── 1. Create ─────────────────────────────────────────────────────

    async def create_request(
        self,
        principal: Principal,
        *,
        pickup_latitude: float,
        pickup_longitude: float,
        dropoff_latitude: float,
        dropoff_longitude: float,
        pickup_address: Optional[str] = None,
        dropoff_address: Optional[str] = None,
    ) -> RideRequestModel:
        require_role(principal, UserType.PASSENGER, "Only passengers can create ride requests")

        quote = self.pricing.quote(
            pickup_latitude,
            pickup_longitude,
            dropoff_latitude,
            dropoff_longitude,
            at=self.clock(),
        )
        async with unit_of_work(self.session):
            request = await self.requests.create(
                RideRequestModel(
                    passenger_id=principal.user_id,
                    pickup_latitude=pickup_latitude,
                    pickup_longitude=pickup_longitude,
                    dropoff_latitude=dropoff_latitude,
                    dropoff_longitude=dropoff_longitude,
                    pickup_address=pickup_address,
                    dropoff_address=dropoff_address,
                    status=RideRequestStatus.PENDING,
                    estimated_fare=quote.fare,
                    estimated_distance_km=quote.distance_km,
                    estimated_duration_minutes=quote.duration_minutes,
                )
            )
        return request

    # ── 2. Accept ─────────────────────────────────────────────────────

    async def accept_request(self, principal: Principal, request_id: int) -> TransitionResult:
        require_role(principal, UserType.DRIVER, "Only drivers can accept ride requests")

        # An accepted request is a Conflict even for the driver who holds it.
        current = await self.requests.get_by_id(request_id, refresh=True)
        if current is None or current.status != RideRequestStatus.PENDING:
            await self._raise_request_not_pending(request_id)

        driver = await self.drivers.get_by_id(principal.user_id, refresh=True)
        if driver is None or not driver.is_approved or not driver.is_available:
            raise Forbidden("Driver not found, not approved, or not available")

        async with unit_of_work(self.session):
            if not await self.requests.compare_and_set_status(
                request_id, RideRequestStatus.PENDING, RideRequestStatus.ACCEPTED
            ):
                await self._raise_request_not_pending(request_id)

            if not await self.drivers.claim_for_ride(principal.user_id):
                raise Forbidden("Driver not found, not approved, or not available")

            request = await self.requests.get_by_id(request_id, refresh=True)
            try:
                ride = await self.rides.create(
                    RideModel(
                        request_id=request.id,
                        driver_id=principal.user_id,
                        passenger_id=request.passenger_id,
                        status=RideStatus.IN_PROGRESS,
                    )
                )
            except IntegrityError as exc:
                raise Conflict("Ride request already has a ride") from exc

        await self.session.refresh(driver)
        logger.info(
            "Ride request %d accepted by driver %d (ride %d)",
            request_id, principal.user_id, ride.id,
        )

        passenger = await self.users.get_by_id(request.passenger_id)
        driver_user = await self.users.get_by_id(principal.user_id)
        warnings = await notify(
            self.notifier,
            passenger.email if passenger else None,
            "ride_accepted",
            {
                "driver_name": driver_user.full_name if driver_user else "your driver",
                "vehicle": f"{driver.vehicle_make or ''} {driver.vehicle_model or ''}".strip(),
                "license_plate": driver.license_plate,
            },
        )
        return TransitionResult(ride_request=request, ride=ride, warnings=warnings)

    # ── 3. Reject ─────────────────────────────────────────────────────

    async def reject_request(self, principal: Principal, request_id: int) -> RideRequestModel:
        require_role(principal, UserType.DRIVER, "Only drivers can reject ride requests")

        async with unit_of_work(self.session):
            if not await self.requests.compare_and_set_status(
                request_id, RideRequestStatus.PENDING, RideRequestStatus.REJECTED
            ):
                await self._raise_request_not_pending(request_id)
            request = await self.requests.get_by_id(request_id, refresh=True)
        return request

    async def _raise_request_not_pending(self, request_id: int) -> None:
        request = await self.requests.get_by_id(request_id, refresh=True)
        if request is None:
            raise NotFound("Ride request not found")
        raise Conflict(f"Ride request already {request.status.value}")

    # ── 4. Start ──────────────────────────────────────────────────────

    async def start_ride(self, principal: Principal, ride_id: int) -> RideModel:
        ride = await self._driver_ride(principal, ride_id, "start")
        if ride.start_time is not None:
            raise InvalidState("Ride already started")

        async with unit_of_work(self.session):
            if not await self.rides.mark_started(ride_id, principal.user_id, self.clock()):
                raise InvalidState("Ride already started")
        return await self.rides.get_by_id(ride_id, refresh=True)

    # ── 5. End ────────────────────────────────────────────────────────

    async def end_ride(self, principal: Principal, ride_id: int) -> TransitionResult:
        ride = await self._driver_ride(principal, ride_id, "end")
        if ride.start_time is None:
            raise InvalidState("Ride has not been started yet")

        async with unit_of_work(self.session):
            request = await self.requests.get_by_id(ride.request_id)
            now = self.clock()
            elapsed = now - as_utc(ride.start_time)

            # actuals mirror the estimate: no trip telemetry is recorded
            ride.status = transition(ride.status, RideStatus.COMPLETED, RIDE_TRANSITIONS)
            ride.end_time = now
            ride.actual_fare = request.estimated_fare
            ride.actual_distance_km = request.estimated_distance_km
            ride.actual_duration_minutes = max(0, int(elapsed.total_seconds() // 60))

            request.status = transition(
                request.status, RideRequestStatus.COMPLETED, REQUEST_TRANSITIONS
            )
            await self.drivers.release(ride.driver_id)

            try:
                payment = await self.payments.create(
                    PaymentModel(
                        ride_id=ride.id,
                        amount=ride.actual_fare,
                        currency=CURRENCY,
                        payment_method=PaymentMethod.MPESA,
                        payment_status=PaymentStatus.PENDING,
                    )
                )
            except IntegrityError as exc:
                raise Conflict("Ride already has a payment") from exc

        logger.info(
            "Ride %d completed: KES %.2f, payment %d pending",
            ride.id, ride.actual_fare, payment.id,
        )

        passenger = await self.users.get_by_id(ride.passenger_id)
        warnings = await notify(
            self.notifier,
            passenger.email if passenger else None,
            "ride_receipt",
            {
                "ride_id": ride.id,
                "distance_km": ride.actual_distance_km,
                "duration_minutes": ride.actual_duration_minutes,
                "fare": ride.actual_fare,
            },
        )
        return TransitionResult(
            ride_request=request, ride=ride, payment=payment, warnings=warnings
        )

    async def _driver_ride(self, principal: Principal, ride_id: int, action: str) -> RideModel:
        require_role(principal, UserType.DRIVER, f"Only drivers can {action} rides")
        ride = await self.rides.get_by_id(ride_id)
        if ride is None:
            raise NotFound("Ride not found")
        if ride.driver_id != principal.user_id:
            raise Forbidden("Only the assigned driver can update this ride")
        if ride.status != RideStatus.IN_PROGRESS:
            raise InvalidState(f"Ride is {ride.status.value}")
        return ride

    # ── 6. Payment initiation ─────────────────────────────────────────

    async def initiate_payment(
        self,
        principal: Principal,
        ride_id: int,
        phone_number: str,
        amount: Optional[float] = None,
    ) -> PaymentInitiation:
        if not is_valid_phone(phone_number):
            raise ValidationError("Invalid Kenyan phone number")
        phone = normalize_phone(phone_number)

        ride = await self.rides.get_by_id(ride_id)
        if ride is None:
            raise NotFound("Ride not found")
        if ride.passenger_id != principal.user_id:
            raise Forbidden("Only the ride's passenger can pay for it")
        if ride.status != RideStatus.COMPLETED:
            raise InvalidState("Ride is not completed")
        if amount is not None and abs(amount - ride.actual_fare) > 0.005:
            raise ValidationError(
                f"Amount must equal the ride fare of KES {ride.actual_fare:.2f}"
            )

        existing = await self.payments.get_by_ride(ride.id)
        if existing is not None and existing.payment_status == PaymentStatus.COMPLETED:
            raise Conflict("Payment already completed")

        # GatewayError propagates untouched; the completed ride is not affected
        pending = await self.gateway.initiate_push(phone, ride.actual_fare, f"RIDE-{ride.id}")

        async with unit_of_work(self.session):
            if existing is not None:
                existing.transaction_id = pending.checkout_request_id
                existing.payment_status = PaymentStatus.PENDING
                existing.payment_method = PaymentMethod.MPESA
                existing.amount = ride.actual_fare
                payment = existing
            else:
                payment = await self.payments.create(
                    PaymentModel(
                        ride_id=ride.id,
                        amount=ride.actual_fare,
                        currency=CURRENCY,
                        payment_method=PaymentMethod.MPESA,
                        transaction_id=pending.checkout_request_id,
                        payment_status=PaymentStatus.PENDING,
                    )
                )

        logger.info(
            "STK push %s initiated for ride %d", pending.checkout_request_id, ride.id
        )
        return PaymentInitiation(
            payment=payment,
            checkout_request_id=pending.checkout_request_id,
            customer_message=pending.customer_message,
        )

    # ── 7. Payment settlement ─────────────────────────────────────────

    async def settle_payment(self, payload: dict[str, Any]) -> TransitionResult:
        parse = self.gateway.parse_callback if self.gateway else MpesaGateway.parse_callback
        result = parse(payload)

        payment = await self.payments.get_by_transaction_id(result.checkout_request_id)
        if payment is None:
            raise NotFound(f"Payment not found for {result.checkout_request_id}")

        new_status = PaymentStatus.COMPLETED if result.succeeded else PaymentStatus.FAILED
        async with unit_of_work(self.session):
            payment.payment_status = transition(
                payment.payment_status, new_status, PAYMENT_TRANSITIONS
            )
            if result.succeeded:
                payment.payment_date = self.clock()
                if result.receipt_number:
                    payment.transaction_id = result.receipt_number

        logger.info(
            "Payment %d %s (result %d: %s)",
            payment.id, payment.payment_status.value, result.result_code, result.result_desc,
        )

        warnings: list[str] = []
        if result.succeeded:
            ride = await self.rides.get_by_id(payment.ride_id)
            payer = await self.users.get_by_id(ride.passenger_id) if ride else None
            warnings = await notify(
                self.notifier,
                payer.email if payer else None,
                "payment_received",
                {
                    "amount": payment.amount,
                    "ride_id": payment.ride_id,
                    "receipt": payment.transaction_id,
                },
            )
        return TransitionResult(payment=payment, warnings=warnings)

    # ── 8. Review ─────────────────────────────────────────────────────

    async def create_review(
        self,
        principal: Principal,
        ride_id: int,
        reviewed_id: int,
        rating: float,
        comment: Optional[str] = None,
    ) -> ReviewModel:
        if not MIN_RATING <= rating <= MAX_RATING:
            raise ValidationError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")

        ride = await self.rides.get_by_id(ride_id)
        if ride is None:
            raise NotFound("Ride not found")
        if principal.user_id not in (ride.passenger_id, ride.driver_id):
            raise Forbidden("Only ride participants can review it")
        if ride.status != RideStatus.COMPLETED:
            raise InvalidState("Only completed rides can be reviewed")

        counterpart = (
            ride.driver_id if principal.user_id == ride.passenger_id else ride.passenger_id
        )
        if reviewed_id != counterpart:
            raise ValidationError("Reviewed user must be the other participant of the ride")
        if await self.reviews.exists(ride_id, principal.user_id):
            raise Conflict("Review already exists for this ride")

        async with unit_of_work(self.session):
            try:
                review = await self.reviews.create(
                    ReviewModel(
                        ride_id=ride_id,
                        reviewer_id=principal.user_id,
                        reviewed_id=reviewed_id,
                        rating=rating,
                        comment=comment,
                    )
                )
            except IntegrityError as exc:
                raise Conflict("Review already exists for this ride") from exc
            ratings = await self.reviews.ratings_for(reviewed_id)
            await self.users.set_rating(reviewed_id, mean_rating(ratings))
        return review

    # ── Reads ─────────────────────────────────────────────────────────

    async def get_request(self, request_id: int) -> RideRequestModel:
        request = await self.requests.get_by_id(request_id)
        if request is None:
            raise NotFound("Ride request not found")
        return request

    async def get_ride(self, ride_id: int) -> RideModel:
        ride = await self.rides.get_by_id(ride_id)
        if ride is None:
            raise NotFound("Ride not found")
        return ride

    async def list_user_rides(self, principal: Principal, user_id: int) -> list[RideModel]:
        require_self_or_admin(principal, user_id, "You can only view your own rides")
        return await self.rides.list_for_user(user_id)

    async def list_user_reviews(self, user_id: int) -> list[ReviewModel]:
        return await self.reviews.list_for_reviewed(user_id)

    async def get_payment(self, principal: Principal, payment_id: int) -> PaymentModel:
        payment = await self.payments.get_by_id(payment_id)
        if payment is None:
            raise NotFound("Payment not found")
        ride = await self.rides.get_by_id(payment.ride_id)
        if not principal.is_admin and principal.user_id not in (
            ride.passenger_id, ride.driver_id
        ):
            raise Forbidden("Not a participant of this ride")
        return payment
