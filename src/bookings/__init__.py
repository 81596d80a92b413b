"""
Booking & Ticketing Module

Checkout for event tickets, from cart to admission ticket:

- Cart validation against per-order and per-type limits
- All-or-nothing inventory holds with a time limit
- Pricing snapshot stored on the booking
- Payment through the gateway adapter, with duplicate callbacks ignored
- Ticket minting with verification codes, QR images and PDF export
- Cancellation and expiry that return held tickets to sale

Key Components:
- booking_service.py: the booking state machine
- ticket_service.py: ticket minting, QR codes and PDF sheets
- router.py: FastAPI endpoints for bookings, payments and tickets
- schemas.py: Pydantic models for booking requests and responses
"""

from .router import router
from .booking_service import BookingService, ALLOWED_TRANSITIONS
from .ticket_service import TicketService
from .schemas import (
    BookingStatus, TERMINAL_STATUSES, CartItem, BuyerContact, AttendeeInfo,
    BookingCreate, BookingCancelRequest, BookingResponse, TicketResponse
)

__all__ = [
    "router",
    "BookingService",
    "ALLOWED_TRANSITIONS",
    "TicketService",
    "BookingStatus",
    "TERMINAL_STATUSES",
    "CartItem",
    "BuyerContact",
    "AttendeeInfo",
    "BookingCreate",
    "BookingCancelRequest",
    "BookingResponse",
    "TicketResponse"
]
