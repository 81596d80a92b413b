from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

class TicketVerificationRequest(BaseModel):
    """Door scan or typed code for one event"""
    event_id: str
    code: str = Field(..., min_length=1, description="Verification code or scanned QR payload")

class TicketVerificationResponse(BaseModel):
    """Ticket found for a code, with its current check-in state"""
    ticket_id: str
    booking_id: str
    event_id: str
    ticket_type_id: str
    attendee_name: Optional[str] = None
    attendee_email: Optional[str] = None
    verification_code: str
    is_checked_in: bool
    check_in_time: Optional[datetime] = None
    message: str

class CheckInResponse(BaseModel):
    ticket_id: str
    event_id: str
    attendee_name: Optional[str] = None
    verification_code: str
    is_checked_in: bool
    check_in_time: datetime

class RecentCheckIn(BaseModel):
    ticket_id: str
    attendee_name: Optional[str] = None
    attendee_email: Optional[str] = None
    ticket_type_id: str
    check_in_time: datetime

class CheckInStats(BaseModel):
    """Door progress for one event"""
    event_id: str
    total: int
    checked_in: int
    remaining: int
    check_in_rate: float

class AttendeeSearch(BaseModel):
    query: Optional[str] = None
    ticket_type_id: Optional[str] = None
    is_checked_in: Optional[bool] = None

class Attendee(BaseModel):
    """One ticket of an event as the organizer sees it"""
    ticket_id: str
    booking_id: str
    booking_reference: str
    ticket_type_id: str
    ticket_type_name: str
    attendee_name: Optional[str] = None
    attendee_email: Optional[str] = None
    verification_code: str
    is_checked_in: bool
    check_in_time: Optional[datetime] = None

class AttendeeList(BaseModel):
    attendees: List[Attendee]
    stats: CheckInStats
    total: int
    page: int
    per_page: int
