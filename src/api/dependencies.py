"""FastAPI dependency injection helpers."""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.entities import Principal
from src.domain.errors import Unauthorized
from src.infrastructure.identity import IdentityProvider
from src.services.accounts import AccountService, DriverService
from src.services.compliance import ComplianceService
from src.services.lifecycle import RideLifecycleManager

_bearer = HTTPBearer(auto_error=False)


async def get_db(request: Request) -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with request.app.state.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_identity(request: Request) -> IdentityProvider:
    return request.app.state.identity


async def get_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    identity: IdentityProvider = Depends(get_identity),
) -> Principal:
    if credentials is None:
        raise Unauthorized("Missing bearer token")
    return identity.authenticate(credentials.credentials)


def get_lifecycle(
    request: Request, db: AsyncSession = Depends(get_db)
) -> RideLifecycleManager:
    state = request.app.state
    return RideLifecycleManager(
        db, state.pricing, notifier=state.notifier, gateway=state.gateway
    )


def get_compliance(db: AsyncSession = Depends(get_db)) -> ComplianceService:
    return ComplianceService(db)


def get_accounts(
    request: Request, db: AsyncSession = Depends(get_db)
) -> AccountService:
    state = request.app.state
    return AccountService(
        db,
        state.identity,
        notifier=state.notifier,
        verification_enabled=state.settings.email_verification_enabled,
        base_url=state.settings.base_url,
    )


def get_drivers(
    request: Request, db: AsyncSession = Depends(get_db)
) -> DriverService:
    return DriverService(db, default_radius_km=request.app.state.settings.nearby_radius_km)
