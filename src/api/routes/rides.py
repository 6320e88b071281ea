"""
Ride endpoints
==============

POST /api/v1/ride_requests                  -- passenger requests a ride (fare estimated)
GET  /api/v1/ride_requests/{id}             -- request status and estimate
PUT  /api/v1/ride_requests/{id}/accept      -- driver accepts (one winner per request)
PUT  /api/v1/ride_requests/{id}/reject      -- driver declines
GET  /api/v1/rides/{ride_id}                -- ride details
PUT  /api/v1/rides/{ride_id}/start          -- assigned driver starts the trip
PUT  /api/v1/rides/{ride_id}/end            -- assigned driver completes the trip
POST /api/v1/reviews                        -- rate the other participant
GET  /api/v1/users/{user_id}/rides          -- ride history
GET  /api/v1/users/{user_id}/reviews        -- reviews received
"""

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import get_lifecycle, get_principal
from src.api.middleware import DEFAULT_LIMIT, limiter
from src.api.schemas import (
    AcceptResponse,
    ReviewCreate,
    ReviewResponse,
    RideEndResponse,
    RideRequestCreate,
    RideRequestResponse,
    RideResponse,
)
from src.domain.entities import Principal
from src.services.lifecycle import RideLifecycleManager

router = APIRouter(tags=["rides"])


@router.post(
    "/ride_requests",
    status_code=201,
    response_model=RideRequestResponse,
    summary="Request a ride",
)
@limiter.limit(DEFAULT_LIMIT)
async def create_ride_request(
    request: Request,
    body: RideRequestCreate,
    principal: Principal = Depends(get_principal),
    lifecycle: RideLifecycleManager = Depends(get_lifecycle),
):
    return await lifecycle.create_request(principal, **body.model_dump())


@router.get(
    "/ride_requests/{request_id}",
    response_model=RideRequestResponse,
    summary="Get a ride request",
)
async def get_ride_request(
    request_id: int,
    principal: Principal = Depends(get_principal),
    lifecycle: RideLifecycleManager = Depends(get_lifecycle),
):
    return await lifecycle.get_request(request_id)


@router.put(
    "/ride_requests/{request_id}/accept",
    response_model=AcceptResponse,
    summary="Accept a pending ride request",
    description=(
        "Moves the request to ACCEPTED, marks the driver unavailable and "
        "creates an IN_PROGRESS ride. Concurrent accepts of the same "
        "request yield exactly one ride; the others get 409."
    ),
)
@limiter.limit(DEFAULT_LIMIT)
async def accept_ride_request(
    request: Request,
    request_id: int,
    principal: Principal = Depends(get_principal),
    lifecycle: RideLifecycleManager = Depends(get_lifecycle),
):
    result = await lifecycle.accept_request(principal, request_id)
    return AcceptResponse(
        ride=RideResponse.model_validate(result.ride),
        ride_request=RideRequestResponse.model_validate(result.ride_request),
        warnings=result.warnings,
    )


@router.put(
    "/ride_requests/{request_id}/reject",
    response_model=RideRequestResponse,
    summary="Reject a pending ride request",
)
@limiter.limit(DEFAULT_LIMIT)
async def reject_ride_request(
    request: Request,
    request_id: int,
    principal: Principal = Depends(get_principal),
    lifecycle: RideLifecycleManager = Depends(get_lifecycle),
):
    return await lifecycle.reject_request(principal, request_id)


@router.get("/rides/{ride_id}", response_model=RideResponse, summary="Get a ride")
async def get_ride(
    ride_id: int,
    principal: Principal = Depends(get_principal),
    lifecycle: RideLifecycleManager = Depends(get_lifecycle),
):
    return await lifecycle.get_ride(ride_id)


@router.put("/rides/{ride_id}/start", response_model=RideResponse, summary="Start a ride")
@limiter.limit(DEFAULT_LIMIT)
async def start_ride(
    request: Request,
    ride_id: int,
    principal: Principal = Depends(get_principal),
    lifecycle: RideLifecycleManager = Depends(get_lifecycle),
):
    return await lifecycle.start_ride(principal, ride_id)


@router.put(
    "/rides/{ride_id}/end",
    response_model=RideEndResponse,
    summary="Complete a ride",
    description=(
        "Completes the ride and its request, frees the driver and opens "
        "a PENDING M-Pesa payment for the fare, all in one transaction."
    ),
)
@limiter.limit(DEFAULT_LIMIT)
async def end_ride(
    request: Request,
    ride_id: int,
    principal: Principal = Depends(get_principal),
    lifecycle: RideLifecycleManager = Depends(get_lifecycle),
):
    result = await lifecycle.end_ride(principal, ride_id)
    return RideEndResponse(
        ride=RideResponse.model_validate(result.ride),
        payment_id=result.payment.id,
        total_fare=result.ride.actual_fare,
        warnings=result.warnings,
    )


@router.post(
    "/reviews",
    status_code=201,
    response_model=ReviewResponse,
    summary="Review the other participant of a completed ride",
)
@limiter.limit(DEFAULT_LIMIT)
async def create_review(
    request: Request,
    body: ReviewCreate,
    principal: Principal = Depends(get_principal),
    lifecycle: RideLifecycleManager = Depends(get_lifecycle),
):
    return await lifecycle.create_review(
        principal, body.ride_id, body.reviewed_id, body.rating, body.comment
    )


@router.get(
    "/users/{user_id}/rides",
    response_model=list[RideResponse],
    summary="Ride history for a user",
)
async def list_user_rides(
    user_id: int,
    principal: Principal = Depends(get_principal),
    lifecycle: RideLifecycleManager = Depends(get_lifecycle),
):
    return await lifecycle.list_user_rides(principal, user_id)


@router.get(
    "/users/{user_id}/reviews",
    response_model=list[ReviewResponse],
    summary="Reviews received by a user",
)
async def list_user_reviews(
    user_id: int,
    principal: Principal = Depends(get_principal),
    lifecycle: RideLifecycleManager = Depends(get_lifecycle),
):
    return await lifecycle.list_user_reviews(user_id)
