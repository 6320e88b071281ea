"""
Account endpoints
=================

POST /api/v1/register               -- register a passenger or driver
POST /api/v1/login                  -- exchange credentials for a bearer token
GET  /api/v1/auth/verify-email      -- confirm an email address (feature flag)
GET  /api/v1/users/{user_id}        -- user profile
PUT  /api/v1/users/{user_id}        -- update your own name or phone number
"""

from fastapi import APIRouter, Depends, Query, Request

from src.api.dependencies import get_accounts, get_principal
from src.api.middleware import DEFAULT_LIMIT, limiter
from src.api.schemas import (
    AuthResponse,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    UserResponse,
    UserUpdateRequest,
)
from src.domain.entities import Principal
from src.services.accounts import AccountService

router = APIRouter(tags=["accounts"])


@router.post(
    "/register",
    status_code=201,
    response_model=AuthResponse,
    summary="Register a passenger or driver account",
)
@limiter.limit(DEFAULT_LIMIT)
async def register(
    request: Request,
    body: RegisterRequest,
    accounts: AccountService = Depends(get_accounts),
):
    result = await accounts.register(**body.model_dump())
    return AuthResponse(
        access_token=result.access_token,
        user=UserResponse.model_validate(result.user),
        warnings=result.warnings,
    )


@router.post("/login", response_model=AuthResponse, summary="Log in")
@limiter.limit(DEFAULT_LIMIT)
async def login(
    request: Request,
    body: LoginRequest,
    accounts: AccountService = Depends(get_accounts),
):
    result = await accounts.login(body.email, body.password)
    return AuthResponse(
        access_token=result.access_token,
        user=UserResponse.model_validate(result.user),
    )


@router.get(
    "/auth/verify-email",
    response_model=MessageResponse,
    summary="Verify an email address",
)
async def verify_email(
    token: str = Query(..., min_length=1),
    accounts: AccountService = Depends(get_accounts),
):
    user = await accounts.verify_email(token)
    return MessageResponse(message="Email verified", data={"user_id": user.id})


@router.get("/users/{user_id}", response_model=UserResponse, summary="Get a user")
async def get_user(
    user_id: int,
    principal: Principal = Depends(get_principal),
    accounts: AccountService = Depends(get_accounts),
):
    return await accounts.get_user(user_id)


@router.put("/users/{user_id}", response_model=UserResponse, summary="Update your profile")
@limiter.limit(DEFAULT_LIMIT)
async def update_user(
    request: Request,
    user_id: int,
    body: UserUpdateRequest,
    principal: Principal = Depends(get_principal),
    accounts: AccountService = Depends(get_accounts),
):
    return await accounts.update_user(principal, user_id, **body.model_dump(exclude_none=True))
