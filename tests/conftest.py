"""
Shared test fixtures.

Every test gets its own file-backed SQLite database (via aiosqlite) in
``tmp_path``, so tests run without Docker / PostgreSQL and can open
several connections at once for the concurrency cases.  The M-Pesa
gateway runs in its ``development`` mode (no network I/O) and email goes
to an in-memory outbox.
"""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import Settings
from src.domain.entities import Principal
from src.domain.enums import UserType
from src.domain.errors import GatewayError
from src.domain.pricing import PricingEngine
from src.infrastructure import models  # noqa: F401  (registers tables on Base)
from src.infrastructure.database import Base, build_engine, build_session_factory
from src.infrastructure.identity import IdentityProvider
from src.infrastructure.models import DriverModel, UserModel
from src.infrastructure.mpesa import MpesaGateway
from src.services.lifecycle import RideLifecycleManager

TEST_SECRET = "test-secret"
TEST_PASSWORD = "password123"

# Nairobi landmarks
CBD = (-1.2833, 36.8167)
WESTLANDS = (-1.2676, 36.8108)
JKIA = (-1.3192, 36.9278)


# ── Test doubles ──────────────────────────────────────────────────────


class RecordingNotifier:
    """Keeps sent messages in ``outbox``; raises on every send when ``fail``."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.outbox: list[tuple[str, str, dict]] = []

    async def send(self, recipient, template, data):
        if self.fail:
            raise ConnectionError("SMTP server unavailable")
        self.outbox.append((recipient, template, data))

    def templates(self) -> list[str]:
        return [template for _, template, _ in self.outbox]


class DownGateway(MpesaGateway):
    """Gateway whose STK push always fails."""

    async def initiate_push(self, phone, amount, reference):
        raise GatewayError("M-Pesa request failed: connection refused")


class Clock:
    """Controllable clock for the lifecycle manager."""

    def __init__(self, now: Optional[datetime] = None):
        # 11:00 Nairobi, outside rush hour
        self.now = now or datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float) -> None:
        self.now += timedelta(minutes=minutes)


class Factory:
    """Creates users and drivers directly in the store."""

    _seq = itertools.count(1)

    def __init__(self, session_factory, identity: IdentityProvider):
        self.session_factory = session_factory
        self.identity = identity
        self._password_hash = identity.hash_password(TEST_PASSWORD)

    async def user(
        self, user_type: UserType = UserType.PASSENGER, **overrides
    ) -> Principal:
        n = next(self._seq)
        values = dict(
            user_type=user_type,
            first_name=f"{user_type.value.title()}{n}",
            last_name="Test",
            email=f"{user_type.value}{n}@kenyarides.co.ke",
            phone_number=f"2547{n:08d}",
            password_hash=self._password_hash,
            is_email_verified=True,
        )
        values.update(overrides)
        async with self.session_factory() as session:
            user = UserModel(**values)
            session.add(user)
            await session.commit()
            return Principal(user_id=user.id, user_type=user.user_type)

    async def driver(
        self,
        approved: bool = True,
        available: bool = True,
        position: Optional[tuple[float, float]] = None,
        **overrides,
    ) -> Principal:
        principal = await self.user(UserType.DRIVER)
        n = principal.user_id
        values = dict(
            driver_id=n,
            vehicle_make="Toyota",
            vehicle_model="Axio",
            vehicle_year=2018,
            license_plate=f"KDA{n:03d}X",
            driver_license_number=f"DL-{n:06d}",
            insurance_details="Comprehensive",
            is_approved=approved,
            is_available=available,
        )
        if position is not None:
            values.update(
                current_latitude=position[0],
                current_longitude=position[1],
                last_location_update=datetime.now(timezone.utc),
            )
        values.update(overrides)
        async with self.session_factory() as session:
            session.add(DriverModel(**values))
            await session.commit()
        return principal

    def token(self, principal: Principal) -> str:
        return self.identity.issue_token(principal.user_id, principal.user_type)

    def headers(self, principal: Principal) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token(principal)}"}


def stk_callback(checkout_request_id: str, result_code: int = 0, receipt: str = "QFT4ABC123") -> dict:
    callback = {
        "MerchantRequestID": "29115-34620561-1",
        "CheckoutRequestID": checkout_request_id,
        "ResultCode": result_code,
        "ResultDesc": (
            "The service request is processed successfully."
            if result_code == 0
            else "Request cancelled by user"
        ),
    }
    if result_code == 0:
        callback["CallbackMetadata"] = {
            "Item": [
                {"Name": "Amount", "Value": 100.0},
                {"Name": "MpesaReceiptNumber", "Value": receipt},
                {"Name": "PhoneNumber", "Value": 254712345678},
            ]
        }
    return {"Body": {"stkCallback": callback}}


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'rideshare.db'}"


@pytest_asyncio.fixture
async def engine(database_url):
    engine = build_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def identity() -> IdentityProvider:
    return IdentityProvider(TEST_SECRET)


@pytest.fixture
def factory(session_factory, identity) -> Factory:
    return Factory(session_factory, identity)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture
async def gateway():
    gateway = MpesaGateway("key", "secret", "passkey", "174379", "https://example.co.ke/cb")
    yield gateway
    await gateway.aclose()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def pricing() -> PricingEngine:
    return PricingEngine()


@pytest.fixture
def lifecycle(db_session, pricing, notifier, gateway, clock) -> RideLifecycleManager:
    return RideLifecycleManager(
        db_session, pricing, notifier=notifier, gateway=gateway, clock=clock
    )


@pytest.fixture
def settings(database_url) -> Settings:
    return Settings(
        database_url=database_url,
        environment="development",
        jwt_secret=TEST_SECRET,
        rate_limit_enabled=False,
        smtp_host="",
    )


@pytest_asyncio.fixture
async def app(settings, notifier, gateway):
    from src.api.app import create_app

    app = create_app(settings, gateway=gateway, notifier=notifier)
    async with app.state.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield app
    await app.state.engine.dispose()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def api_factory(app) -> Factory:
    """``Factory`` bound to the app's own database."""
    return Factory(app.state.session_factory, app.state.identity)


# ── Lifecycle helpers ─────────────────────────────────────────────────


async def create_request(lifecycle, passenger, pickup=WESTLANDS, dropoff=CBD):
    return await lifecycle.create_request(
        passenger,
        pickup_latitude=pickup[0],
        pickup_longitude=pickup[1],
        dropoff_latitude=dropoff[0],
        dropoff_longitude=dropoff[1],
        pickup_address="Westlands",
        dropoff_address="CBD",
    )


async def complete_ride(lifecycle, factory, clock, minutes=12):
    """Drive a fresh passenger/driver pair through accept, start and end."""
    passenger = await factory.user()
    driver = await factory.driver()
    request = await create_request(lifecycle, passenger)
    accepted = await lifecycle.accept_request(driver, request.id)
    await lifecycle.start_ride(driver, accepted.ride.id)
    clock.advance(minutes)
    ended = await lifecycle.end_ride(driver, accepted.ride.id)
    return passenger, driver, ended
