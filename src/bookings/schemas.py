from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum

class BookingStatus(str, Enum):
    """Booking status enumeration"""
    DRAFT = "draft"
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

TERMINAL_STATUSES = frozenset({
    BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.EXPIRED
})

# Cart and Buyer Models
class CartItem(BaseModel):
    """One ticket type and quantity requested in a checkout"""
    ticket_type_id: str
    quantity: int = Field(..., ge=0)

class BuyerContact(BaseModel):
    """Who receives the booking confirmation"""
    email: str
    phone: Optional[str] = None
    name: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        v = v.strip()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("A valid email address is required")
        return v.lower()

class AttendeeInfo(BaseModel):
    """Named attendee for one ticket; defaults to the buyer"""
    name: Optional[str] = None
    email: Optional[str] = None

# Booking Request Models
class BookingCreate(BaseModel):
    """Request to start a checkout for an event"""
    event_id: str
    items: List[CartItem]
    buyer: BuyerContact
    coupon_code: Optional[str] = None
    attendees: List[AttendeeInfo] = Field(default_factory=list)

class BookingCancelRequest(BaseModel):
    """Request to cancel an unpaid booking"""
    reason: str = Field(..., min_length=1, max_length=500)

# Booking Response Models
class LineItemResponse(BaseModel):
    ticket_type_id: str
    quantity: int
    unit_price_snapshot: Decimal

    class Config:
        from_attributes = True

class TicketResponse(BaseModel):
    """Individual admission ticket"""
    id: str
    booking_id: str
    event_id: str
    ticket_type_id: str
    attendee_name: Optional[str] = None
    attendee_email: Optional[str] = None
    verification_code: str
    is_checked_in: bool
    check_in_time: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True

class BookingResponse(BaseModel):
    """Booking with pricing snapshot and, once confirmed, its tickets"""
    id: str
    reference: str
    event_id: str
    buyer_email: str
    buyer_phone: Optional[str] = None
    buyer_name: Optional[str] = None
    status: BookingStatus
    payment_method: Optional[str] = None
    coupon_code: Optional[str] = None
    discount_percent: Decimal
    currency: str
    subtotal: Decimal
    fees: Decimal
    discount_amount: Decimal
    total: Decimal
    hold_expires_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    line_items: List[LineItemResponse] = []
    tickets: List[TicketResponse] = []

    class Config:
        from_attributes = True
