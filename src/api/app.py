"""
FastAPI application factory.

* Builds every collaborator (DB engine, identity provider, M-Pesa
  gateway, email notifier, pricing engine) from the ``Settings`` passed
  in and keeps them on ``app.state``; nothing downstream reads the
  environment.
* Registers routes for accounts, rides, payments, compliance and admin.
* Maps the service error taxonomy onto HTTP statuses.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.middleware import limiter
from src.api.schemas import ErrorResponse
from src.api.routes import admin, auth, compliance, drivers, payments, rides
from src.config import Settings, settings as default_settings
from src.domain.errors import ServiceError
from src.domain.pricing import PricingEngine
from src.infrastructure.database import build_engine, build_session_factory
from src.infrastructure.identity import IdentityProvider
from src.infrastructure.mpesa import MpesaGateway
from src.infrastructure.notifier import EmailNotifier

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("%s %s crashed", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app(
    settings: Optional[Settings] = None,
    *,
    gateway=None,
    notifier=None,
) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Kenyan Ride Share Backend starting (%s)", settings.environment)
        yield
        if isinstance(app.state.gateway, MpesaGateway):
            await app.state.gateway.aclose()
        await app.state.engine.dispose()

    app = FastAPI(
        title="Kenyan Ride Share API",
        description=(
            "Ride-hailing backend for Kenya: ride request / accept / "
            "complete lifecycle, M-Pesa STK Push payments, and NTSA "
            "compliance checks with the 18% commission cap."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    engine = build_engine(settings.database_url, echo=settings.database_echo)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.identity = IdentityProvider.from_settings(settings)
    app.state.pricing = PricingEngine.from_settings(settings)
    app.state.gateway = gateway or MpesaGateway.from_settings(settings)
    app.state.notifier = notifier or EmailNotifier.from_settings(settings)

    # Rate limiter
    limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    # Routers
    errors = {code: {"model": ErrorResponse} for code in (400, 401, 403, 404, 409)}
    for module in (auth, drivers, rides, payments, compliance, admin):
        app.include_router(module.router, prefix="/api/v1", responses=errors)

    return app
