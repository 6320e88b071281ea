"""
Payment endpoints
=================

POST /api/v1/payments/mpesa/stk_push   -- prompt the passenger's phone for payment
POST /api/v1/payments/mpesa/callback   -- Daraja result webhook (unauthenticated)
GET  /api/v1/payments/{payment_id}     -- payment status
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Request

from src.api.dependencies import get_lifecycle, get_principal
from src.api.middleware import DEFAULT_LIMIT, limiter
from src.api.schemas import (
    CallbackResponse,
    PaymentResponse,
    STKPushRequest,
    STKPushResponse,
)
from src.domain.entities import Principal
from src.services.lifecycle import RideLifecycleManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post(
    "/mpesa/stk_push",
    response_model=STKPushResponse,
    summary="Initiate an M-Pesa STK Push for a completed ride",
)
@limiter.limit(DEFAULT_LIMIT)
async def stk_push(
    request: Request,
    body: STKPushRequest,
    principal: Principal = Depends(get_principal),
    lifecycle: RideLifecycleManager = Depends(get_lifecycle),
):
    result = await lifecycle.initiate_payment(
        principal, body.ride_id, body.phone_number, amount=body.amount
    )
    return STKPushResponse(
        payment_id=result.payment.id,
        checkout_request_id=result.checkout_request_id,
        customer_message=result.customer_message,
    )


@router.post(
    "/mpesa/callback",
    response_model=CallbackResponse,
    summary="M-Pesa result callback",
)
async def mpesa_callback(
    payload: dict[str, Any] = Body(...),
    lifecycle: RideLifecycleManager = Depends(get_lifecycle),
):
    logger.info("M-Pesa callback received")
    result = await lifecycle.settle_payment(payload)
    return CallbackResponse(
        payment_status=result.payment.payment_status,
        warnings=result.warnings,
    )


@router.get(
    "/{payment_id}",
    response_model=PaymentResponse,
    summary="Get a payment",
)
async def get_payment(
    payment_id: int,
    principal: Principal = Depends(get_principal),
    lifecycle: RideLifecycleManager = Depends(get_lifecycle),
):
    return await lifecycle.get_payment(principal, payment_id)
