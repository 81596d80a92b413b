"""
Check-In Module

Door-side admission for minted tickets:

- Verification by typed code or scanned QR payload, scoped to one event
- At-most-once check-in per ticket with the first check-in time reported on repeats
- Recent check-ins as a lazily paged feed
- Per-event progress counts
- Organizer attendee list with filters, paging and a CSV report
"""

from .router import router
from .service import CheckInLedger, RecentCheckIns, extract_verification_code, to_attendee
from .schemas import (
    TicketVerificationRequest, TicketVerificationResponse, CheckInResponse,
    RecentCheckIn, CheckInStats, AttendeeSearch, Attendee, AttendeeList
)

__all__ = [
    "router",
    "CheckInLedger",
    "RecentCheckIns",
    "extract_verification_code",
    "to_attendee",
    "TicketVerificationRequest",
    "TicketVerificationResponse",
    "CheckInResponse",
    "RecentCheckIn",
    "CheckInStats",
    "AttendeeSearch",
    "Attendee",
    "AttendeeList"
]
