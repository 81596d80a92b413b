"""Domain error codes for the booking and check-in engine."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Domain error codes."""

    INSUFFICIENT_INVENTORY = "INSUFFICIENT_INVENTORY"
    CURRENCY_MISMATCH = "CURRENCY_MISMATCH"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    HOLD_NOT_FOUND = "HOLD_NOT_FOUND"
    TICKET_NOT_FOUND = "TICKET_NOT_FOUND"
    ALREADY_CHECKED_IN = "ALREADY_CHECKED_IN"
    PAYMENT_ADAPTER_UNAVAILABLE = "PAYMENT_ADAPTER_UNAVAILABLE"
    BOOKING_NOT_FOUND = "BOOKING_NOT_FOUND"
    TICKET_TYPE_NOT_FOUND = "TICKET_TYPE_NOT_FOUND"
    INVALID_CART = "INVALID_CART"
    INVALID_COUPON = "INVALID_COUPON"


@dataclass(eq=False)
class DomainError(Exception):
    """Base domain error with code, user-safe message and context."""

    code: ErrorCode
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code.value, "message": self.message, **self.details}


class InsufficientInventoryError(DomainError):
    """Raised when a ticket type cannot cover the requested quantity."""

    def __init__(self, ticket_type_id: str, requested: int, available: Optional[int]) -> None:
        super().__init__(
            code=ErrorCode.INSUFFICIENT_INVENTORY,
            message=f"Only {available} ticket(s) left for this ticket type",
            details={
                "ticket_type_id": ticket_type_id,
                "requested": requested,
                "available": available,
            },
        )
        self.ticket_type_id = ticket_type_id


class CurrencyMismatchError(DomainError):
    """Raised when the line items of one order use different currencies."""

    def __init__(self, currencies) -> None:
        super().__init__(
            code=ErrorCode.CURRENCY_MISMATCH,
            message="All tickets in an order must share one currency",
            details={"currencies": sorted(currencies)},
        )


class InvalidTransitionError(DomainError):
    """Raised when a booking cannot move from its current status."""

    def __init__(self, booking_id: str, current_status: str, attempted: str) -> None:
        super().__init__(
            code=ErrorCode.INVALID_TRANSITION,
            message=f"Booking is {current_status}; cannot {attempted}",
            details={"booking_id": booking_id, "status": current_status, "attempted": attempted},
        )
        self.current_status = current_status


class HoldNotFoundError(DomainError):
    """Raised when an inventory hold has expired, been released or committed."""

    def __init__(self, hold_token: str) -> None:
        super().__init__(
            code=ErrorCode.HOLD_NOT_FOUND,
            message="Inventory hold not found or expired",
            details={"hold_token": hold_token},
        )


class TicketNotFoundError(DomainError):
    """Raised when a ticket id or verification code does not resolve."""

    def __init__(self, lookup: str) -> None:
        super().__init__(
            code=ErrorCode.TICKET_NOT_FOUND,
            message="Ticket not found",
            details={"lookup": lookup},
        )


class AlreadyCheckedInError(DomainError):
    """Raised on a second check-in of the same ticket."""

    def __init__(self, ticket_id: str, checked_in_at: datetime) -> None:
        super().__init__(
            code=ErrorCode.ALREADY_CHECKED_IN,
            message=f"Ticket already checked in at {checked_in_at.strftime('%Y-%m-%d %H:%M:%S')} UTC",
            details={"ticket_id": ticket_id, "checked_in_at": checked_in_at.isoformat()},
        )
        self.checked_in_at = checked_in_at


class PaymentAdapterUnavailableError(DomainError):
    """Raised when a payment provider cannot be reached or rejects the call."""

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(
            code=ErrorCode.PAYMENT_ADAPTER_UNAVAILABLE,
            message=f"Payment provider {provider} is unavailable, please retry",
            details={"provider": provider, "reason": reason},
        )


class BookingNotFoundError(DomainError):
    def __init__(self, booking_id: str) -> None:
        super().__init__(
            code=ErrorCode.BOOKING_NOT_FOUND,
            message="Booking not found",
            details={"booking_id": booking_id},
        )


class TicketTypeNotFoundError(DomainError):
    def __init__(self, ticket_type_id: str) -> None:
        super().__init__(
            code=ErrorCode.TICKET_TYPE_NOT_FOUND,
            message="Ticket type not found for this event",
            details={"ticket_type_id": ticket_type_id},
        )


class InvalidCartError(DomainError):
    """Raised when a cart is empty or exceeds the per-order limits."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(code=ErrorCode.INVALID_CART, message=message, details=details)


class InvalidCouponError(DomainError):
    def __init__(self, coupon_code: str, reason: str) -> None:
        super().__init__(
            code=ErrorCode.INVALID_COUPON,
            message=f"Coupon cannot be applied: {reason}",
            details={"coupon_code": coupon_code},
        )
