"""
M-Pesa (Safaricom Daraja) payment gateway client.

Flow
----
1. ``initiate_push`` obtains an OAuth token and posts an STK Push; the
   customer gets a PIN prompt on their phone.  Daraja answers with a
   ``CheckoutRequestID`` that identifies the pending payment.
2. Daraja later POSTs the outcome to our callback URL; ``parse_callback``
   turns that payload into a ``SettlementResult``.

In the ``development`` environment no network I/O happens: pushes
return a mock pending payment so the lifecycle can be exercised locally.
Every HTTP call is bounded by the configured timeout (30 s by default).
"""

from __future__ import annotations

import base64
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
from zoneinfo import ZoneInfo

import httpx

from src.domain.errors import GatewayError, ValidationError

logger = logging.getLogger(__name__)

PRODUCTION_URL = "https://api.safaricom.co.ke"
SANDBOX_URL = "https://sandbox.safaricom.co.ke"
SUCCESS_CODE = 0

_NAIROBI = ZoneInfo("Africa/Nairobi")


@dataclass(frozen=True)
class PendingPayment:
    checkout_request_id: str
    merchant_request_id: str
    customer_message: str


@dataclass(frozen=True)
class SettlementResult:
    checkout_request_id: str
    result_code: int
    result_desc: str = ""
    receipt_number: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.result_code == SUCCESS_CODE


class MpesaGateway:
    def __init__(
        self,
        consumer_key: str,
        consumer_secret: str,
        passkey: str,
        shortcode: str,
        callback_url: str,
        environment: str = "development",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.passkey = passkey
        self.shortcode = shortcode
        self.callback_url = callback_url
        self.environment = environment
        self.base_url = SANDBOX_URL if environment == "sandbox" else PRODUCTION_URL
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout
        )

    @classmethod
    def from_settings(cls, settings) -> "MpesaGateway":
        return cls(
            consumer_key=settings.mpesa_consumer_key,
            consumer_secret=settings.mpesa_consumer_secret,
            passkey=settings.mpesa_passkey,
            shortcode=settings.mpesa_shortcode,
            callback_url=settings.mpesa_callback_url,
            environment=settings.environment,
            timeout=settings.gateway_timeout_seconds,
        )

    @property
    def is_mock(self) -> bool:
        return self.environment == "development"

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Outbound ──────────────────────────────────────────────────────

    async def get_access_token(self) -> str:
        if self.is_mock:
            return f"mock_access_token_{uuid.uuid4().hex[:12]}"

        credentials = base64.b64encode(
            f"{self.consumer_key}:{self.consumer_secret}".encode()
        ).decode()
        data = await self._request(
            "GET",
            "/oauth/v1/generate",
            params={"grant_type": "client_credentials"},
            headers={"Authorization": f"Basic {credentials}"},
        )
        token = data.get("access_token")
        if not token:
            raise GatewayError("M-Pesa did not return an access token")
        return token

    async def initiate_push(
        self, phone: str, amount: float, reference: str
    ) -> PendingPayment:
        """Send an STK Push prompt to *phone* (``254XXXXXXXXX``)."""
        if self.is_mock:
            stamp = uuid.uuid4().hex[:12]
            return PendingPayment(
                checkout_request_id=f"mock_checkout_request_{stamp}",
                merchant_request_id=f"mock_merchant_request_{stamp}",
                customer_message="Success. Request accepted for processing",
            )

        token = await self.get_access_token()
        timestamp = datetime.now(_NAIROBI).strftime("%Y%m%d%H%M%S")
        password = base64.b64encode(
            f"{self.shortcode}{self.passkey}{timestamp}".encode()
        ).decode()
        payload = {
            "BusinessShortCode": self.shortcode,
            "Password": password,
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": max(1, round(amount)),  # Daraja takes whole shillings
            "PartyA": phone,
            "PartyB": self.shortcode,
            "PhoneNumber": phone,
            "CallBackURL": self.callback_url,
            "AccountReference": reference,
            "TransactionDesc": "Ride payment",
        }
        data = await self._request(
            "POST",
            "/mpesa/stkpush/v1/processrequest",
            json=payload,
            headers={"Authorization": f"Bearer {token}"},
        )
        if str(data.get("ResponseCode")) != "0" or not data.get("CheckoutRequestID"):
            raise GatewayError(
                data.get("errorMessage")
                or data.get("ResponseDescription")
                or "STK push rejected"
            )
        return PendingPayment(
            checkout_request_id=data["CheckoutRequestID"],
            merchant_request_id=data.get("MerchantRequestID", ""),
            customer_message=data.get("CustomerMessage", ""),
        )

    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "M-Pesa %s %s failed with HTTP %d", method, path, exc.response.status_code
            )
            raise GatewayError(
                f"M-Pesa request failed with HTTP {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("M-Pesa %s %s failed: %s", method, path, exc)
            raise GatewayError(f"M-Pesa request failed: {exc}") from exc

    # ── Inbound ───────────────────────────────────────────────────────

    @staticmethod
    def parse_callback(payload: dict[str, Any]) -> SettlementResult:
        """Parse a Daraja ``Body.stkCallback`` webhook payload."""
        try:
            callback = payload["Body"]["stkCallback"]
            checkout_request_id = callback["CheckoutRequestID"]
            result_code = int(callback["ResultCode"])
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Rejected STK callback payload: %r", exc)
            raise ValidationError("Invalid STK callback format") from exc

        receipt = None
        items = (callback.get("CallbackMetadata") or {}).get("Item") or []
        for item in items:
            if isinstance(item, dict) and item.get("Name") == "MpesaReceiptNumber":
                receipt = str(item.get("Value"))

        return SettlementResult(
            checkout_request_id=checkout_request_id,
            result_code=result_code,
            result_desc=callback.get("ResultDesc", ""),
            receipt_number=receipt,
        )
