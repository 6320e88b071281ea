"""
Ride lifecycle tests against a real (SQLite) store.

Covers the joint state machine over request, ride, driver availability
and payment, including the accept race and the payment callback.
"""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import func, select

from src.domain.enums import (
    PaymentStatus,
    RideRequestStatus,
    RideStatus,
    UserType,
)
from src.domain.errors import (
    Conflict,
    Forbidden,
    GatewayError,
    InvalidState,
    NotFound,
    ValidationError,
)
from src.infrastructure.models import (
    DriverModel,
    PaymentModel,
    RideModel,
    RideRequestModel,
    UserModel,
)
from src.services.lifecycle import RideLifecycleManager
from tests.conftest import (
    DownGateway,
    RecordingNotifier,
    complete_ride,
    create_request,
    stk_callback,
)


async def _count(session, model) -> int:
    return await session.scalar(select(func.count()).select_from(model))


# ── Create ────────────────────────────────────────────────────────────


class TestCreateRequest:
    @pytest.mark.asyncio
    async def test_request_is_pending_with_estimate(self, lifecycle, factory):
        passenger = await factory.user()
        request = await create_request(lifecycle, passenger)

        assert request.id is not None
        assert request.status == RideRequestStatus.PENDING
        assert request.passenger_id == passenger.user_id
        assert request.estimated_distance_km > 0
        assert request.estimated_fare >= 100.0
        assert request.estimated_duration_minutes == round(request.estimated_distance_km * 3)

    @pytest.mark.asyncio
    async def test_driver_cannot_request(self, lifecycle, factory):
        driver = await factory.driver()
        with pytest.raises(Forbidden):
            await create_request(lifecycle, driver)


# ── Accept / reject ───────────────────────────────────────────────────


class TestAcceptRequest:
    @pytest.mark.asyncio
    async def test_accept_creates_ride_and_claims_driver(
        self, lifecycle, factory, db_session, notifier
    ):
        passenger = await factory.user()
        driver = await factory.driver()
        request = await create_request(lifecycle, passenger)

        result = await lifecycle.accept_request(driver, request.id)

        assert result.ride_request.status == RideRequestStatus.ACCEPTED
        assert result.ride.status == RideStatus.IN_PROGRESS
        assert result.ride.driver_id == driver.user_id
        assert result.ride.passenger_id == passenger.user_id
        assert result.ride.start_time is None
        assert result.warnings == []

        row = await db_session.get(DriverModel, driver.user_id, populate_existing=True)
        assert row.is_available is False
        assert notifier.templates() == ["ride_accepted"]

    @pytest.mark.asyncio
    async def test_second_accept_conflicts_and_leaves_one_ride(
        self, lifecycle, factory, db_session
    ):
        passenger = await factory.user()
        first, second = await factory.driver(), await factory.driver()
        request = await create_request(lifecycle, passenger)

        await lifecycle.accept_request(first, request.id)
        with pytest.raises(Conflict):
            await lifecycle.accept_request(second, request.id)

        assert await _count(db_session, RideModel) == 1
        row = await db_session.get(DriverModel, second.user_id, populate_existing=True)
        assert row.is_available is True

    @pytest.mark.asyncio
    async def test_same_driver_accepting_twice_conflicts(self, lifecycle, factory, db_session):
        passenger = await factory.user()
        driver = await factory.driver()
        request = await create_request(lifecycle, passenger)

        await lifecycle.accept_request(driver, request.id)
        with pytest.raises(Conflict):
            await lifecycle.accept_request(driver, request.id)

        assert await _count(db_session, RideModel) == 1

    @pytest.mark.asyncio
    async def test_concurrent_accepts_have_one_winner(
        self, session_factory, pricing, factory, clock
    ):
        passenger = await factory.user()
        drivers = [await factory.driver() for _ in range(2)]

        async with session_factory() as session:
            request = await create_request(RideLifecycleManager(session, pricing, clock=clock), passenger)

        async def accept(driver):
            async with session_factory() as session:
                manager = RideLifecycleManager(session, pricing, clock=clock)
                return await manager.accept_request(driver, request.id)

        outcomes = await asyncio.gather(
            *(accept(d) for d in drivers), return_exceptions=True
        )

        winners = [o for o in outcomes if not isinstance(o, Exception)]
        losers = [o for o in outcomes if isinstance(o, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1 and isinstance(losers[0], Conflict)

        async with session_factory() as session:
            assert await _count(session, RideModel) == 1
            busy = await session.scalar(
                select(func.count())
                .select_from(DriverModel)
                .where(DriverModel.is_available.is_(False))
            )
            assert busy == 1

    @pytest.mark.asyncio
    async def test_unapproved_driver_is_forbidden(self, lifecycle, factory, db_session):
        passenger = await factory.user()
        driver = await factory.driver(approved=False)
        request = await create_request(lifecycle, passenger)

        with pytest.raises(Forbidden):
            await lifecycle.accept_request(driver, request.id)

        row = await db_session.get(RideRequestModel, request.id, populate_existing=True)
        assert row.status == RideRequestStatus.PENDING

    @pytest.mark.asyncio
    async def test_busy_driver_is_forbidden(self, lifecycle, factory):
        passenger = await factory.user()
        driver = await factory.driver()
        await lifecycle.accept_request(driver, (await create_request(lifecycle, passenger)).id)

        with pytest.raises(Forbidden):
            await lifecycle.accept_request(driver, (await create_request(lifecycle, passenger)).id)

    @pytest.mark.asyncio
    async def test_driver_without_record_is_forbidden(self, lifecycle, factory):
        passenger = await factory.user()
        not_onboarded = await factory.user(UserType.DRIVER)
        request = await create_request(lifecycle, passenger)
        with pytest.raises(Forbidden):
            await lifecycle.accept_request(not_onboarded, request.id)

    @pytest.mark.asyncio
    async def test_passenger_cannot_accept(self, lifecycle, factory):
        passenger = await factory.user()
        request = await create_request(lifecycle, passenger)
        with pytest.raises(Forbidden):
            await lifecycle.accept_request(passenger, request.id)

    @pytest.mark.asyncio
    async def test_unknown_request(self, lifecycle, factory):
        driver = await factory.driver()
        with pytest.raises(NotFound):
            await lifecycle.accept_request(driver, 9999)

    @pytest.mark.asyncio
    async def test_accept_survives_notification_failure(
        self, db_session, pricing, gateway, clock, factory
    ):
        manager = RideLifecycleManager(
            db_session, pricing, notifier=RecordingNotifier(fail=True), gateway=gateway, clock=clock
        )
        passenger = await factory.user()
        driver = await factory.driver()
        request = await create_request(manager, passenger)

        result = await manager.accept_request(driver, request.id)

        assert result.ride.id is not None
        assert len(result.warnings) == 1
        assert "ride_accepted" in result.warnings[0]


class TestRejectRequest:
    @pytest.mark.asyncio
    async def test_reject_pending(self, lifecycle, factory, db_session):
        passenger = await factory.user()
        driver = await factory.driver()
        request = await create_request(lifecycle, passenger)

        rejected = await lifecycle.reject_request(driver, request.id)

        assert rejected.status == RideRequestStatus.REJECTED
        assert await _count(db_session, RideModel) == 0

    @pytest.mark.asyncio
    async def test_reject_after_accept_conflicts(self, lifecycle, factory):
        passenger = await factory.user()
        first, second = await factory.driver(), await factory.driver()
        request = await create_request(lifecycle, passenger)
        await lifecycle.accept_request(first, request.id)

        with pytest.raises(Conflict):
            await lifecycle.reject_request(second, request.id)


# ── Start / end ───────────────────────────────────────────────────────


class TestStartAndEnd:
    @pytest.mark.asyncio
    async def test_full_ride(self, lifecycle, factory, clock, db_session, notifier):
        passenger, driver, ended = await complete_ride(lifecycle, factory, clock, minutes=12)

        ride = ended.ride
        assert ride.status == RideStatus.COMPLETED
        assert ride.actual_fare == ended.ride_request.estimated_fare
        assert ride.actual_distance_km == ended.ride_request.estimated_distance_km
        assert ride.actual_duration_minutes == 12
        assert ended.ride_request.status == RideRequestStatus.COMPLETED

        assert ended.payment.payment_status == PaymentStatus.PENDING
        assert ended.payment.amount == ride.actual_fare
        assert ended.payment.currency == "KES"

        row = await db_session.get(DriverModel, driver.user_id, populate_existing=True)
        assert row.is_available is True
        assert notifier.templates() == ["ride_accepted", "ride_receipt"]

    @pytest.mark.asyncio
    async def test_start_sets_start_time(self, lifecycle, factory, clock):
        passenger = await factory.user()
        driver = await factory.driver()
        accepted = await lifecycle.accept_request(driver, (await create_request(lifecycle, passenger)).id)

        started = await lifecycle.start_ride(driver, accepted.ride.id)

        assert started.start_time is not None
        assert started.status == RideStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_second_start_is_invalid(self, lifecycle, factory):
        passenger = await factory.user()
        driver = await factory.driver()
        accepted = await lifecycle.accept_request(driver, (await create_request(lifecycle, passenger)).id)
        await lifecycle.start_ride(driver, accepted.ride.id)

        with pytest.raises(InvalidState):
            await lifecycle.start_ride(driver, accepted.ride.id)

    @pytest.mark.asyncio
    async def test_end_before_start_is_invalid(self, lifecycle, factory, db_session):
        passenger = await factory.user()
        driver = await factory.driver()
        accepted = await lifecycle.accept_request(driver, (await create_request(lifecycle, passenger)).id)

        with pytest.raises(InvalidState):
            await lifecycle.end_ride(driver, accepted.ride.id)

        assert await _count(db_session, PaymentModel) == 0
        ride = await db_session.get(RideModel, accepted.ride.id, populate_existing=True)
        assert ride.status == RideStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_end_twice_is_invalid(self, lifecycle, factory, clock, db_session):
        _, driver, ended = await complete_ride(lifecycle, factory, clock)
        with pytest.raises(InvalidState):
            await lifecycle.end_ride(driver, ended.ride.id)
        assert await _count(db_session, PaymentModel) == 1

    @pytest.mark.asyncio
    async def test_only_assigned_driver_can_start(self, lifecycle, factory):
        passenger = await factory.user()
        driver, other = await factory.driver(), await factory.driver()
        accepted = await lifecycle.accept_request(driver, (await create_request(lifecycle, passenger)).id)

        with pytest.raises(Forbidden):
            await lifecycle.start_ride(other, accepted.ride.id)
        with pytest.raises(Forbidden):
            await lifecycle.start_ride(passenger, accepted.ride.id)

    @pytest.mark.asyncio
    async def test_unknown_ride(self, lifecycle, factory):
        driver = await factory.driver()
        with pytest.raises(NotFound):
            await lifecycle.start_ride(driver, 9999)

    @pytest.mark.asyncio
    async def test_driver_can_take_next_ride_after_completion(self, lifecycle, factory, clock):
        passenger, driver, _ = await complete_ride(lifecycle, factory, clock)
        request = await create_request(lifecycle, passenger)
        result = await lifecycle.accept_request(driver, request.id)
        assert result.ride.status == RideStatus.IN_PROGRESS


# ── Payments ──────────────────────────────────────────────────────────


class TestPayments:
    @pytest.mark.asyncio
    async def test_initiate_reuses_pending_payment(self, lifecycle, factory, clock, db_session):
        passenger, _, ended = await complete_ride(lifecycle, factory, clock)

        result = await lifecycle.initiate_payment(passenger, ended.ride.id, "0712345678")

        assert result.payment.id == ended.payment.id
        assert result.checkout_request_id.startswith("mock_checkout_request_")
        assert result.payment.transaction_id == result.checkout_request_id
        assert result.payment.payment_status == PaymentStatus.PENDING
        assert await _count(db_session, PaymentModel) == 1

    @pytest.mark.asyncio
    async def test_successful_callback_completes_payment(
        self, lifecycle, factory, clock, notifier
    ):
        passenger, _, ended = await complete_ride(lifecycle, factory, clock)
        push = await lifecycle.initiate_payment(passenger, ended.ride.id, "254712345678")

        settled = await lifecycle.settle_payment(
            stk_callback(push.checkout_request_id, receipt="QFT4XYZ789")
        )

        assert settled.payment.payment_status == PaymentStatus.COMPLETED
        assert settled.payment.transaction_id == "QFT4XYZ789"
        assert settled.payment.payment_date is not None
        assert notifier.templates()[-1] == "payment_received"

    @pytest.mark.asyncio
    async def test_failed_callback_allows_retry(self, lifecycle, factory, clock):
        passenger, _, ended = await complete_ride(lifecycle, factory, clock)
        push = await lifecycle.initiate_payment(passenger, ended.ride.id, "0712345678")

        failed = await lifecycle.settle_payment(stk_callback(push.checkout_request_id, result_code=1032))
        assert failed.payment.payment_status == PaymentStatus.FAILED
        assert failed.payment.payment_date is None

        retry = await lifecycle.initiate_payment(passenger, ended.ride.id, "0712345678")
        assert retry.payment.payment_status == PaymentStatus.PENDING
        assert retry.checkout_request_id != push.checkout_request_id

    @pytest.mark.asyncio
    async def test_repeated_callback_is_rejected(self, lifecycle, factory, clock):
        passenger, _, ended = await complete_ride(lifecycle, factory, clock)
        push = await lifecycle.initiate_payment(passenger, ended.ride.id, "0712345678")
        await lifecycle.settle_payment(stk_callback(push.checkout_request_id, receipt="R1"))

        with pytest.raises(NotFound):
            # the checkout id was replaced by the receipt number
            await lifecycle.settle_payment(stk_callback(push.checkout_request_id, receipt="R1"))
        with pytest.raises(InvalidState):
            await lifecycle.settle_payment(stk_callback("R1", receipt="R2"))

    @pytest.mark.asyncio
    async def test_paid_ride_cannot_be_pushed_again(self, lifecycle, factory, clock):
        passenger, _, ended = await complete_ride(lifecycle, factory, clock)
        push = await lifecycle.initiate_payment(passenger, ended.ride.id, "0712345678")
        await lifecycle.settle_payment(stk_callback(push.checkout_request_id))

        with pytest.raises(Conflict):
            await lifecycle.initiate_payment(passenger, ended.ride.id, "0712345678")

    @pytest.mark.asyncio
    async def test_unknown_checkout_id(self, lifecycle):
        with pytest.raises(NotFound):
            await lifecycle.settle_payment(stk_callback("ws_CO_unknown"))

    @pytest.mark.asyncio
    async def test_malformed_callback(self, lifecycle):
        with pytest.raises(ValidationError):
            await lifecycle.settle_payment({"Body": {}})

    @pytest.mark.asyncio
    async def test_invalid_phone(self, lifecycle, factory, clock):
        passenger, _, ended = await complete_ride(lifecycle, factory, clock)
        with pytest.raises(ValidationError):
            await lifecycle.initiate_payment(passenger, ended.ride.id, "0812345678")

    @pytest.mark.asyncio
    async def test_amount_must_match_fare(self, lifecycle, factory, clock):
        passenger, _, ended = await complete_ride(lifecycle, factory, clock)
        with pytest.raises(ValidationError):
            await lifecycle.initiate_payment(
                passenger, ended.ride.id, "0712345678", amount=ended.ride.actual_fare + 10
            )

    @pytest.mark.asyncio
    async def test_only_passenger_pays(self, lifecycle, factory, clock):
        _, driver, ended = await complete_ride(lifecycle, factory, clock)
        with pytest.raises(Forbidden):
            await lifecycle.initiate_payment(driver, ended.ride.id, "0712345678")

    @pytest.mark.asyncio
    async def test_ride_must_be_completed(self, lifecycle, factory):
        passenger = await factory.user()
        driver = await factory.driver()
        accepted = await lifecycle.accept_request(driver, (await create_request(lifecycle, passenger)).id)
        with pytest.raises(InvalidState):
            await lifecycle.initiate_payment(passenger, accepted.ride.id, "0712345678")

    @pytest.mark.asyncio
    async def test_gateway_failure_keeps_ride_completed(
        self, db_session, pricing, notifier, clock, factory
    ):
        gateway = DownGateway("k", "s", "p", "174379", "https://example.co.ke/cb")
        manager = RideLifecycleManager(
            db_session, pricing, notifier=notifier, gateway=gateway, clock=clock
        )
        passenger, _, ended = await complete_ride(manager, factory, clock)

        with pytest.raises(GatewayError):
            await manager.initiate_payment(passenger, ended.ride.id, "0712345678")

        ride = await db_session.get(RideModel, ended.ride.id, populate_existing=True)
        payment = await db_session.get(PaymentModel, ended.payment.id, populate_existing=True)
        assert ride.status == RideStatus.COMPLETED
        assert payment.payment_status == PaymentStatus.PENDING
        await gateway.aclose()

    @pytest.mark.asyncio
    async def test_participants_can_read_payment(self, lifecycle, factory, clock):
        passenger, driver, ended = await complete_ride(lifecycle, factory, clock)
        outsider = await factory.user()

        assert (await lifecycle.get_payment(passenger, ended.payment.id)).id == ended.payment.id
        assert (await lifecycle.get_payment(driver, ended.payment.id)).id == ended.payment.id
        with pytest.raises(Forbidden):
            await lifecycle.get_payment(outsider, ended.payment.id)


# ── Reviews ───────────────────────────────────────────────────────────


class TestReviews:
    @pytest.mark.asyncio
    async def test_review_updates_mean_rating(self, lifecycle, factory, clock, db_session):
        first_passenger, driver, first = await complete_ride(lifecycle, factory, clock)
        await lifecycle.create_review(first_passenger, first.ride.id, driver.user_id, 5.0, "Safe")

        second_passenger = await factory.user()
        request = await create_request(lifecycle, second_passenger)
        accepted = await lifecycle.accept_request(driver, request.id)
        await lifecycle.start_ride(driver, accepted.ride.id)
        clock.advance(5)
        await lifecycle.end_ride(driver, accepted.ride.id)
        await lifecycle.create_review(second_passenger, accepted.ride.id, driver.user_id, 4.0)

        user = await db_session.get(UserModel, driver.user_id, populate_existing=True)
        assert user.rating == pytest.approx(4.5)
        reviews = await lifecycle.list_user_reviews(driver.user_id)
        assert sorted(r.rating for r in reviews) == [4.0, 5.0]

    @pytest.mark.asyncio
    async def test_driver_reviews_passenger(self, lifecycle, factory, clock, db_session):
        passenger, driver, ended = await complete_ride(lifecycle, factory, clock)
        review = await lifecycle.create_review(driver, ended.ride.id, passenger.user_id, 3.0)

        assert review.reviewer_id == driver.user_id
        user = await db_session.get(UserModel, passenger.user_id, populate_existing=True)
        assert user.rating == pytest.approx(3.0)

    @pytest.mark.asyncio
    async def test_duplicate_review_conflicts(self, lifecycle, factory, clock):
        passenger, driver, ended = await complete_ride(lifecycle, factory, clock)
        await lifecycle.create_review(passenger, ended.ride.id, driver.user_id, 5.0)
        with pytest.raises(Conflict):
            await lifecycle.create_review(passenger, ended.ride.id, driver.user_id, 1.0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating", [0.5, 5.5])
    async def test_rating_out_of_range(self, lifecycle, factory, clock, rating):
        passenger, driver, ended = await complete_ride(lifecycle, factory, clock)
        with pytest.raises(ValidationError):
            await lifecycle.create_review(passenger, ended.ride.id, driver.user_id, rating)

    @pytest.mark.asyncio
    async def test_reviewed_must_be_counterpart(self, lifecycle, factory, clock):
        passenger, _, ended = await complete_ride(lifecycle, factory, clock)
        with pytest.raises(ValidationError):
            await lifecycle.create_review(passenger, ended.ride.id, passenger.user_id, 4.0)

    @pytest.mark.asyncio
    async def test_outsider_cannot_review(self, lifecycle, factory, clock):
        _, driver, ended = await complete_ride(lifecycle, factory, clock)
        outsider = await factory.user()
        with pytest.raises(Forbidden):
            await lifecycle.create_review(outsider, ended.ride.id, driver.user_id, 4.0)

    @pytest.mark.asyncio
    async def test_unfinished_ride_cannot_be_reviewed(self, lifecycle, factory):
        passenger = await factory.user()
        driver = await factory.driver()
        accepted = await lifecycle.accept_request(driver, (await create_request(lifecycle, passenger)).id)
        with pytest.raises(InvalidState):
            await lifecycle.create_review(passenger, accepted.ride.id, driver.user_id, 4.0)


# ── Reads ─────────────────────────────────────────────────────────────


class TestReads:
    @pytest.mark.asyncio
    async def test_ride_history_is_private(self, lifecycle, factory, clock):
        passenger, driver, ended = await complete_ride(lifecycle, factory, clock)
        admin = await factory.user(UserType.ADMIN)

        assert [r.id for r in await lifecycle.list_user_rides(passenger, passenger.user_id)] == [ended.ride.id]
        assert [r.id for r in await lifecycle.list_user_rides(driver, driver.user_id)] == [ended.ride.id]
        assert len(await lifecycle.list_user_rides(admin, passenger.user_id)) == 1
        with pytest.raises(Forbidden):
            await lifecycle.list_user_rides(driver, passenger.user_id)

    @pytest.mark.asyncio
    async def test_missing_entities(self, lifecycle):
        with pytest.raises(NotFound):
            await lifecycle.get_request(9999)
        with pytest.raises(NotFound):
            await lifecycle.get_ride(9999)
