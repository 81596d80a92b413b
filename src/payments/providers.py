import base64
import hashlib
import json
import logging
from typing import Any, Dict, Optional
from decimal import Decimal
from urllib.parse import quote, urlencode

import httpx

from src.config import settings
from src.errors import PaymentAdapterUnavailableError
from src.payments.gateway import (
    GatewayRegistry, PaymentGateway, PaymentMethod, PaymentOutcome, PaymentSessionInfo
)

logger = logging.getLogger(__name__)


class HttpGateway(PaymentGateway):
    """Shared HTTP plumbing for providers reached over a REST API"""

    def __init__(self, client: Optional[httpx.Client] = None, timeout: Optional[float] = None):
        self._client = client
        self._timeout = timeout or settings.PAYMENT_HTTP_TIMEOUT

    def _send(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            if self._client is not None:
                response = self._client.request(method, url, **kwargs)
            else:
                with httpx.Client(timeout=self._timeout) as client:
                    response = client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s request to %s failed: %s", self.provider, url, exc)
            raise PaymentAdapterUnavailableError(self.provider, str(exc))

        if response.status_code >= 400:
            logger.warning(
                "%s responded %s for %s: %s", self.provider, response.status_code, url, response.text[:500]
            )
            raise PaymentAdapterUnavailableError(self.provider, f"HTTP {response.status_code}")

        try:
            return response.json()
        except ValueError:
            raise PaymentAdapterUnavailableError(self.provider, "malformed provider response")


class CashfreeGateway(HttpGateway):
    """Cashfree PG orders API: redirect checkout, status by order id"""

    provider = "cashfree"

    STATUS_MAP = {
        "PAID": PaymentOutcome.SUCCESS,
        "ACTIVE": PaymentOutcome.PENDING,
        "EXPIRED": PaymentOutcome.FAILURE,
        "TERMINATED": PaymentOutcome.FAILURE,
        "TERMINATION_REQUESTED": PaymentOutcome.FAILURE,
    }

    def __init__(
        self,
        app_id: Optional[str] = None,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.Client] = None
    ):
        super().__init__(client=client)
        self.app_id = app_id or settings.CASHFREE_APP_ID
        self.secret_key = secret_key or settings.CASHFREE_SECRET_KEY
        self.base_url = (base_url or settings.CASHFREE_BASE_URL).rstrip("/")

    def create_session(self, booking, method: PaymentMethod) -> PaymentSessionInfo:
        order_id = booking.reference
        body = {
            "order_id": order_id,
            "order_amount": float(booking.total),
            "order_currency": booking.currency,
            "customer_details": {
                "customer_id": booking.id,
                "customer_email": booking.buyer_email,
                "customer_phone": booking.buyer_phone or "9999999999",
                "customer_name": booking.buyer_name or booking.buyer_email
            },
            "order_meta": {
                "return_url": f"{settings.PAYMENT_RETURN_URL}?order_id={order_id}&booking_id={booking.id}"
            },
            "order_note": f"Tickets for event {booking.event_id}"
        }
        data = self._send("POST", f"{self.base_url}/orders", json=body, headers=self._headers())

        return PaymentSessionInfo(
            session_ref=data.get("order_id", order_id),
            redirect_url=data.get("payment_link"),
            payload={
                "cf_order_id": data.get("cf_order_id"),
                "payment_session_id": data.get("payment_session_id")
            }
        )

    def poll_status(self, session_ref: str) -> PaymentOutcome:
        data = self._send("GET", f"{self.base_url}/orders/{session_ref}", headers=self._headers())
        return self.STATUS_MAP.get(str(data.get("order_status", "")).upper(), PaymentOutcome.PENDING)

    def verify(self, session_ref: str) -> PaymentOutcome:
        return self.poll_status(session_ref)

    def _headers(self) -> Dict[str, str]:
        if not self.app_id or not self.secret_key:
            raise PaymentAdapterUnavailableError(self.provider, "credentials not configured")
        return {
            "x-client-id": self.app_id,
            "x-client-secret": self.secret_key,
            "x-api-version": settings.CASHFREE_API_VERSION,
            "Content-Type": "application/json"
        }


class PhonePeGateway(HttpGateway):
    """PhonePe PG: base64 payload signed with an X-VERIFY checksum"""

    provider = "phonepe"

    PAY_PATH = "/pg/v1/pay"
    STATUS_MAP = {
        "PAYMENT_SUCCESS": PaymentOutcome.SUCCESS,
        "PAYMENT_PENDING": PaymentOutcome.PENDING,
        "PAYMENT_ERROR": PaymentOutcome.FAILURE,
        "PAYMENT_DECLINED": PaymentOutcome.FAILURE,
        "TIMED_OUT": PaymentOutcome.FAILURE,
        "TRANSACTION_NOT_FOUND": PaymentOutcome.FAILURE,
    }

    def __init__(
        self,
        merchant_id: Optional[str] = None,
        salt_key: Optional[str] = None,
        salt_index: Optional[int] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.Client] = None
    ):
        super().__init__(client=client)
        self.merchant_id = merchant_id or settings.PHONEPE_MERCHANT_ID
        self.salt_key = salt_key or settings.PHONEPE_SALT_KEY
        self.salt_index = salt_index or settings.PHONEPE_SALT_INDEX
        self.base_url = (base_url or settings.PHONEPE_BASE_URL).rstrip("/")

    def create_session(self, booking, method: PaymentMethod) -> PaymentSessionInfo:
        self._require_credentials()
        transaction_id = f"{booking.reference}-PP"
        payload = {
            "merchantId": self.merchant_id,
            "merchantTransactionId": transaction_id,
            "merchantUserId": booking.buyer_email,
            "amount": int((Decimal(str(booking.total)) * 100).to_integral_value()),
            "redirectUrl": f"{settings.PAYMENT_RETURN_URL}?booking_id={booking.id}",
            "redirectMode": "REDIRECT",
            "mobileNumber": booking.buyer_phone,
            "paymentInstrument": {"type": "PAY_PAGE"}
        }
        encoded = base64.b64encode(json.dumps(payload, separators=(",", ":")).encode()).decode()

        data = self._send(
            "POST",
            f"{self.base_url}{self.PAY_PATH}",
            json={"request": encoded},
            headers={
                "Content-Type": "application/json",
                "X-VERIFY": self.checksum(encoded + self.PAY_PATH)
            }
        )

        if not data.get("success"):
            raise PaymentAdapterUnavailableError(self.provider, str(data.get("code", "rejected")))

        redirect_info = (data.get("data") or {}).get("instrumentResponse", {}).get("redirectInfo", {})
        return PaymentSessionInfo(
            session_ref=transaction_id,
            redirect_url=redirect_info.get("url"),
            payload={"code": data.get("code")}
        )

    def poll_status(self, session_ref: str) -> PaymentOutcome:
        self._require_credentials()
        path = f"/pg/v1/status/{self.merchant_id}/{session_ref}"
        data = self._send(
            "GET",
            f"{self.base_url}{path}",
            headers={
                "Content-Type": "application/json",
                "X-VERIFY": self.checksum(path),
                "X-MERCHANT-ID": self.merchant_id
            }
        )
        return self.STATUS_MAP.get(str(data.get("code", "")), PaymentOutcome.PENDING)

    def verify(self, session_ref: str) -> PaymentOutcome:
        return self.poll_status(session_ref)

    def checksum(self, message: str) -> str:
        digest = hashlib.sha256((message + self.salt_key).encode()).hexdigest()
        return f"{digest}###{self.salt_index}"

    def _require_credentials(self):
        if not self.merchant_id or not self.salt_key:
            raise PaymentAdapterUnavailableError(self.provider, "credentials not configured")


class UpiGateway(PaymentGateway):
    """UPI deep link; settlement is confirmed by the buyer's "I've paid" step.

    There is no provider to poll, so ``poll_status`` stays pending until
    ``verify`` is called for the session.
    """

    provider = "upi"
    requires_manual_confirmation = True

    def __init__(self, vpa: Optional[str] = None, payee_name: Optional[str] = None):
        self.vpa = vpa or settings.UPI_VPA
        self.payee_name = payee_name or settings.UPI_PAYEE_NAME

    def create_session(self, booking, method: PaymentMethod) -> PaymentSessionInfo:
        session_ref = f"UPI-{booking.reference}"
        params = {
            "pa": self.vpa,
            "pn": self.payee_name,
            "am": f"{Decimal(str(booking.total)):.2f}",
            "cu": booking.currency,
            "tn": f"Booking {booking.reference}",
            "tr": session_ref
        }
        deep_link = "upi://pay?" + urlencode(params, quote_via=quote)
        return PaymentSessionInfo(session_ref=session_ref, redirect_url=deep_link, payload={"vpa": self.vpa})

    def poll_status(self, session_ref: str) -> PaymentOutcome:
        return PaymentOutcome.PENDING

    def verify(self, session_ref: str) -> PaymentOutcome:
        logger.info("UPI payment %s confirmed by buyer", session_ref)
        return PaymentOutcome.SUCCESS


def build_default_registry() -> GatewayRegistry:
    return GatewayRegistry({
        PaymentMethod.CASHFREE: CashfreeGateway(),
        PaymentMethod.PHONEPE: PhonePeGateway(),
        PaymentMethod.UPI: UpiGateway(),
    })


_registry: Optional[GatewayRegistry] = None


def get_gateway_registry() -> GatewayRegistry:
    """FastAPI dependency returning the process-wide gateway registry"""
    global _registry
    if _registry is None:
        _registry = build_default_registry()
    return _registry
