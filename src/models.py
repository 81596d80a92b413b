import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, ForeignKey, Numeric, JSON,
    CheckConstraint, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship
from src.database import Base


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ================================
# Ticket Inventory
# ================================
class TicketType(Base):
    __tablename__ = "ticket_types"
    __table_args__ = (
        CheckConstraint("unit_price >= 0", name="ck_ticket_types_price_non_negative"),
        CheckConstraint("quantity_sold >= 0 AND quantity_held >= 0", name="ck_ticket_types_counters"),
        CheckConstraint(
            "total_quantity IS NULL OR quantity_sold + quantity_held <= total_quantity",
            name="ck_ticket_types_not_oversold",
        ),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    event_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    unit_price = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False)
    total_quantity = Column(Integer)  # NULL means unlimited
    quantity_sold = Column(Integer, nullable=False, default=0)
    quantity_held = Column(Integer, nullable=False, default=0)
    max_per_order = Column(Integer)
    on_sale = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    holds = relationship("InventoryHold", back_populates="ticket_type")
    tickets = relationship("Ticket", back_populates="ticket_type")

    @property
    def available(self):
        if self.total_quantity is None:
            return None
        return self.total_quantity - self.quantity_sold - self.quantity_held


class InventoryHold(Base):
    __tablename__ = "inventory_holds"

    id = Column(String(36), primary_key=True, default=new_id)
    ticket_type_id = Column(String(36), ForeignKey("ticket_types.id"), nullable=False, index=True)
    # Holds are taken before the booking row exists, so this is not a foreign key
    booking_id = Column(String(36), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    ticket_type = relationship("TicketType", back_populates="holds")


# ================================
# Bookings
# ================================
class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=new_id)
    reference = Column(String(20), unique=True, nullable=False, index=True)
    event_id = Column(String(64), nullable=False, index=True)
    buyer_email = Column(String(255), nullable=False, index=True)
    buyer_phone = Column(String(32))
    buyer_name = Column(String(255))
    status = Column(String(20), nullable=False, default="draft", index=True)
    payment_method = Column(String(20))
    coupon_code = Column(String(40))
    discount_percent = Column(Numeric(5, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False, default=0)
    fees = Column(Numeric(10, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False, default=0)
    hold_expires_at = Column(DateTime, index=True)
    attendees = Column(JSON, default=list)
    cancellation_reason = Column(Text)
    created_at = Column(DateTime, default=utcnow, index=True)
    confirmed_at = Column(DateTime)
    cancelled_at = Column(DateTime)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    line_items = relationship(
        "BookingLineItem", back_populates="booking", cascade="all, delete-orphan",
        order_by="BookingLineItem.id"
    )
    tickets = relationship("Ticket", back_populates="booking", order_by="Ticket.created_at")
    payment_sessions = relationship("PaymentSession", back_populates="booking")


class BookingLineItem(Base):
    __tablename__ = "booking_line_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, index=True)
    ticket_type_id = Column(String(36), ForeignKey("ticket_types.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price_snapshot = Column(Numeric(10, 2), nullable=False)
    hold_token = Column(String(36))

    # Relationships
    booking = relationship("Booking", back_populates="line_items")
    ticket_type = relationship("TicketType")


# ================================
# Tickets & Check-In
# ================================
class Ticket(Base):
    __tablename__ = "tickets"
    __table_args__ = (
        UniqueConstraint("event_id", "verification_code", name="uq_tickets_event_code"),
        Index("ix_tickets_event_check_in", "event_id", "check_in_time"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, index=True)
    event_id = Column(String(64), nullable=False, index=True)
    ticket_type_id = Column(String(36), ForeignKey("ticket_types.id"), nullable=False)
    attendee_name = Column(String(255))
    attendee_email = Column(String(255))
    verification_code = Column(String(32), nullable=False)
    is_checked_in = Column(Boolean, nullable=False, default=False)
    check_in_time = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    booking = relationship("Booking", back_populates="tickets")
    ticket_type = relationship("TicketType", back_populates="tickets")


# ================================
# Payments & Discounts
# ================================
class PaymentSession(Base):
    __tablename__ = "payment_sessions"
    __table_args__ = (
        UniqueConstraint("booking_id", "method", name="uq_payment_sessions_booking_method"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, index=True)
    method = Column(String(20), nullable=False)
    session_ref = Column(String(128), nullable=False, index=True)
    redirect_url = Column(Text)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    provider_payload = Column(JSON, default=dict)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    booking = relationship("Booking", back_populates="payment_sessions")


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint("discount_percent >= 0 AND discount_percent <= 100", name="ck_coupons_percent"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(40), unique=True, nullable=False, index=True)
    event_id = Column(String(64), index=True)  # NULL applies to every event
    discount_percent = Column(Numeric(5, 2), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    max_redemptions = Column(Integer)
    times_redeemed = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)
