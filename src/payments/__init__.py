"""
Payments Module

One adapter interface over the supported payment backends:

- Cashfree: hosted checkout, order status API
- PhonePe: pay page redirect, signed status API
- UPI: deep link with manual "I've paid" confirmation

The booking state machine only sees PaymentGateway, PaymentSessionInfo
and PaymentOutcome.
"""

from .gateway import (
    PaymentGateway, PaymentSessionInfo, PaymentOutcome, PaymentMethod, GatewayRegistry
)
from .providers import (
    CashfreeGateway, PhonePeGateway, UpiGateway, build_default_registry, get_gateway_registry
)
from .schemas import PaymentRequest, PaymentSessionResponse, PaymentCallback

__all__ = [
    "PaymentGateway",
    "PaymentSessionInfo",
    "PaymentOutcome",
    "PaymentMethod",
    "GatewayRegistry",
    "CashfreeGateway",
    "PhonePeGateway",
    "UpiGateway",
    "build_default_registry",
    "get_gateway_registry",
    "PaymentRequest",
    "PaymentSessionResponse",
    "PaymentCallback"
]
