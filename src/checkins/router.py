from fastapi import APIRouter, Depends, HTTPException, status, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session
from typing import List, Optional

from src.api_errors import http_error
from src.database import get_db
from src.errors import DomainError
from src.bookings.ticket_service import TicketService
from src.checkins.schemas import (
    TicketVerificationRequest, TicketVerificationResponse, CheckInResponse,
    RecentCheckIn, CheckInStats, AttendeeSearch, AttendeeList
)
from src.checkins.service import CheckInLedger, to_attendee

router = APIRouter()

# Door Endpoints
@router.post("/tickets/verify", response_model=TicketVerificationResponse)
def verify_ticket(
    request: TicketVerificationRequest,
    db: Session = Depends(get_db)
):
    """Look up a ticket by typed code or scanned QR payload"""

    ledger = CheckInLedger(db)

    try:
        ticket = ledger.verify(request.event_id, request.code)
    except DomainError as e:
        raise http_error(e)

    if ticket.is_checked_in:
        message = f"Already checked in at {ticket.check_in_time.strftime('%Y-%m-%d %H:%M:%S')} UTC"
    else:
        message = "Valid ticket"

    return TicketVerificationResponse(
        ticket_id=ticket.id,
        booking_id=ticket.booking_id,
        event_id=ticket.event_id,
        ticket_type_id=ticket.ticket_type_id,
        attendee_name=ticket.attendee_name,
        attendee_email=ticket.attendee_email,
        verification_code=ticket.verification_code,
        is_checked_in=ticket.is_checked_in,
        check_in_time=ticket.check_in_time,
        message=message
    )

@router.post("/tickets/{ticket_id}/check-in", response_model=CheckInResponse)
def check_in_ticket(
    ticket_id: str,
    db: Session = Depends(get_db)
):
    """Admit a ticket; a second attempt returns 409 with the first check-in time"""

    ledger = CheckInLedger(db)

    try:
        ticket = ledger.check_in(ticket_id)
    except DomainError as e:
        raise http_error(e)

    return CheckInResponse(
        ticket_id=ticket.id,
        event_id=ticket.event_id,
        attendee_name=ticket.attendee_name,
        verification_code=ticket.verification_code,
        is_checked_in=ticket.is_checked_in,
        check_in_time=ticket.check_in_time
    )

@router.get("/tickets/{ticket_id}/qr")
def get_ticket_qr_code(
    ticket_id: str,
    size: int = Query(300, ge=100, le=1000, description="QR code size in pixels"),
    db: Session = Depends(get_db)
):
    """QR code image for a ticket"""

    ticket_service = TicketService(db)

    try:
        ticket = ticket_service.get_ticket(ticket_id)
        image = ticket_service.generate_qr_code_image(ticket, size=size)
    except DomainError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to generate QR code: {str(e)}"
        )

    return Response(
        content=image,
        media_type="image/png",
        headers={"Content-Disposition": f"inline; filename=ticket_{ticket.id}_qr.png"}
    )

# Event Dashboard Endpoints
@router.get("/events/{event_id}/check-in-stats", response_model=CheckInStats)
def get_check_in_stats(
    event_id: str,
    db: Session = Depends(get_db)
):
    return CheckInLedger(db).stats(event_id)

@router.get("/events/{event_id}/recent-check-ins", response_model=List[RecentCheckIn])
def get_recent_check_ins(
    event_id: str,
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db)
):
    """Latest admissions for the door dashboard, newest first"""

    ledger = CheckInLedger(db)
    return [
        RecentCheckIn(
            ticket_id=ticket.id,
            attendee_name=ticket.attendee_name,
            attendee_email=ticket.attendee_email,
            ticket_type_id=ticket.ticket_type_id,
            check_in_time=ticket.check_in_time
        )
        for ticket in ledger.recent_check_ins(event_id, limit=limit)
    ]

# Organizer Attendee Endpoints
@router.get("/events/{event_id}/tickets", response_model=AttendeeList)
def get_event_attendees(
    event_id: str,
    skip: int = Query(0, ge=0, description="Number of tickets to skip"),
    limit: int = Query(50, ge=1, le=200, description="Number of tickets to return"),
    query: Optional[str] = Query(None, description="Search attendee name, email or code"),
    ticket_type_id: Optional[str] = Query(None, description="Filter by ticket type"),
    is_checked_in: Optional[bool] = Query(None, description="Filter by check-in status"),
    db: Session = Depends(get_db)
):
    """Attendee list for an event with door progress"""
    search = AttendeeSearch(query=query, ticket_type_id=ticket_type_id, is_checked_in=is_checked_in)

    ledger = CheckInLedger(db)
    tickets, total = ledger.attendees(event_id, skip=skip, limit=limit, search=search)

    return AttendeeList(
        attendees=[to_attendee(ticket) for ticket in tickets],
        stats=ledger.stats(event_id),
        total=total,
        page=(skip // limit) + 1,
        per_page=limit
    )

@router.get("/events/{event_id}/attendees.csv")
def download_attendee_report(
    event_id: str,
    is_checked_in: Optional[bool] = Query(None, description="Filter by check-in status"),
    db: Session = Depends(get_db)
):
    """Attendee report as a CSV download"""

    try:
        content = CheckInLedger(db).attendee_report_csv(
            event_id, search=AttendeeSearch(is_checked_in=is_checked_in)
        )
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to generate attendee report: {str(e)}"
        )

    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=attendees_{event_id}.csv"}
    )
