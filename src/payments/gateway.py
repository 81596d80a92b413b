"""Payment gateway interface (adapter pattern).

Every provider backend, whether it redirects the buyer, is polled, or waits
for a manual "I've paid" confirmation, conforms to PaymentGateway so the
booking state machine never branches on the provider.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from src.errors import PaymentAdapterUnavailableError


class PaymentOutcome(str, Enum):
    """Result of a provider callback or status poll"""
    SUCCESS = "success"
    FAILURE = "failure"
    PENDING = "pending"


class PaymentMethod(str, Enum):
    """Supported payment backends"""
    CASHFREE = "cashfree"
    PHONEPE = "phonepe"
    UPI = "upi"


@dataclass(frozen=True)
class PaymentSessionInfo:
    """What a provider hands back when a payment is started"""

    session_ref: str
    redirect_url: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)


class PaymentGateway(ABC):
    """Interface for one payment provider."""

    provider: str = "unknown"
    requires_manual_confirmation: bool = False

    @abstractmethod
    def create_session(self, booking, method: PaymentMethod) -> PaymentSessionInfo:
        """Start a payment for the booking's total and return its reference."""
        ...

    @abstractmethod
    def poll_status(self, session_ref: str) -> PaymentOutcome:
        """Ask the provider for the current state of a payment."""
        ...

    @abstractmethod
    def verify(self, session_ref: str) -> PaymentOutcome:
        """Confirm a payment the buyer reports as completed."""
        ...


class GatewayRegistry:
    """Maps a payment method to the gateway that serves it"""

    def __init__(self, gateways: Optional[Dict[PaymentMethod, PaymentGateway]] = None):
        self._gateways: Dict[PaymentMethod, PaymentGateway] = dict(gateways or {})

    def register(self, method: PaymentMethod, gateway: PaymentGateway) -> None:
        self._gateways[PaymentMethod(method)] = gateway

    def get(self, method) -> PaymentGateway:
        try:
            return self._gateways[PaymentMethod(method)]
        except (KeyError, ValueError):
            raise PaymentAdapterUnavailableError(str(method), "no gateway configured for this method")

    def methods(self):
        return sorted(method.value for method in self._gateways)
