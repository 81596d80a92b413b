from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response
from sqlalchemy.orm import Session
from typing import List
import logging

from src.api_errors import http_error
from src.database import get_db
from src.errors import DomainError, InvalidTransitionError
from src.bookings.schemas import (
    BookingCreate, BookingCancelRequest, BookingResponse, TicketResponse
)
from src.bookings.booking_service import BookingService
from src.bookings.ticket_service import TicketService
from src.payments.gateway import GatewayRegistry
from src.payments.providers import get_gateway_registry
from src.payments.schemas import PaymentRequest, PaymentSessionResponse, PaymentCallback

logger = logging.getLogger(__name__)

router = APIRouter()

# Booking Endpoints
@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    request: BookingCreate,
    db: Session = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry)
):
    """Hold tickets for a cart and create the booking.

    Paid carts come back as pending_payment; free carts are confirmed and
    already carry their tickets.
    """

    booking_service = BookingService(db, gateways=gateways)

    try:
        return booking_service.start(
            event_id=request.event_id,
            cart=request.items,
            buyer=request.buyer,
            coupon_code=request.coupon_code,
            attendees=request.attendees
        )
    except DomainError as e:
        raise http_error(e)

@router.get("/reference/{booking_reference}", response_model=BookingResponse)
def get_booking_by_reference(
    booking_reference: str,
    db: Session = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry)
):
    try:
        return BookingService(db, gateways=gateways).get_booking_by_reference(booking_reference)
    except DomainError as e:
        raise http_error(e)

@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: str,
    db: Session = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry)
):
    try:
        return BookingService(db, gateways=gateways).get_booking(booking_id)
    except DomainError as e:
        raise http_error(e)

@router.post("/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(
    booking_id: str,
    request: BookingCancelRequest,
    db: Session = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry)
):
    """Cancel an unpaid booking and release its tickets"""

    try:
        return BookingService(db, gateways=gateways).cancel(booking_id, request.reason)
    except DomainError as e:
        raise http_error(e)

# Payment Endpoints
@router.post("/{booking_id}/payment", response_model=PaymentSessionResponse)
def request_payment(
    booking_id: str,
    request: PaymentRequest,
    db: Session = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry)
):
    """Start (or resume) payment with the chosen provider"""

    booking_service = BookingService(db, gateways=gateways)

    try:
        session = booking_service.request_payment(booking_id, request.method)
        gateway = gateways.get(session.method)
    except DomainError as e:
        raise http_error(e)

    return PaymentSessionResponse(
        booking_id=session.booking_id,
        method=session.method,
        session_ref=session.session_ref,
        redirect_url=session.redirect_url,
        amount=session.amount,
        currency=session.currency,
        requires_manual_confirmation=gateway.requires_manual_confirmation,
        created_at=session.created_at
    )

@router.post("/{booking_id}/payment-callback", response_model=BookingResponse)
def payment_callback(
    booking_id: str,
    callback: PaymentCallback,
    db: Session = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry)
):
    """Provider webhook or return-page outcome; duplicates are harmless"""

    booking_service = BookingService(db, gateways=gateways)

    try:
        return booking_service.on_payment_result(booking_id, callback.outcome)
    except InvalidTransitionError:
        logger.info("Ignoring duplicate %s callback for booking %s", callback.outcome.value, booking_id)
        return booking_service.get_booking(booking_id)
    except DomainError as e:
        raise http_error(e)

@router.post("/{booking_id}/payment/refresh", response_model=BookingResponse)
def refresh_payment(
    booking_id: str,
    db: Session = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry)
):
    """Ask the provider for the latest payment status"""

    try:
        return BookingService(db, gateways=gateways).refresh_payment(booking_id)
    except DomainError as e:
        raise http_error(e)

@router.post("/{booking_id}/payment/confirm", response_model=BookingResponse)
def confirm_manual_payment(
    booking_id: str,
    db: Session = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry)
):
    """Buyer's "I've paid" for providers without a status API"""

    try:
        return BookingService(db, gateways=gateways).confirm_manual_payment(booking_id)
    except DomainError as e:
        raise http_error(e)

# Ticket Endpoints
@router.get("/{booking_id}/tickets", response_model=List[TicketResponse])
def get_booking_tickets(
    booking_id: str,
    db: Session = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry)
):
    try:
        return BookingService(db, gateways=gateways).list_tickets(booking_id)
    except DomainError as e:
        raise http_error(e)

@router.get("/{booking_id}/tickets.pdf")
def generate_pdf_tickets(
    booking_id: str,
    db: Session = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry)
):
    """Printable PDF with every ticket of a confirmed booking"""

    booking_service = BookingService(db, gateways=gateways)
    ticket_service = TicketService(db)

    try:
        booking = booking_service.get_booking(booking_id)
        pdf = ticket_service.generate_pdf_tickets(booking)
    except DomainError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to generate PDF tickets: {str(e)}"
        )

    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename=tickets_{booking.reference}.pdf"}
    )
