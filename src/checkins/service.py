from typing import Iterator, List, Optional, Tuple
from datetime import datetime
import base64
import binascii
import csv
import io
import json
import logging

from sqlalchemy import and_, case, func, or_
from sqlalchemy.orm import Session, joinedload

from src.checkins.schemas import Attendee, AttendeeSearch, CheckInStats
from src.errors import AlreadyCheckedInError, TicketNotFoundError
from src.models import Ticket, utcnow

logger = logging.getLogger(__name__)


def extract_verification_code(raw: str) -> str:
    """Pull the verification code out of whatever the scanner produced.

    Accepts the bare code, the base64 JSON payload printed on tickets, or
    the same JSON undecoded.
    """
    value = raw.strip()

    candidates = []
    try:
        candidates.append(base64.b64decode(value, validate=True).decode("utf-8"))
    except (binascii.Error, ValueError):
        pass
    candidates.append(value)

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, dict) and isinstance(data.get("code"), str):
            return data["code"].strip().upper()

    return value.upper()


class RecentCheckIns:
    """Most recently checked-in tickets of an event, newest first.

    Nothing is queried until iteration starts. Rows are fetched one page at
    a time using the last (check_in_time, id) seen as the cursor, and every
    new iteration starts again from the newest check-in.
    """

    def __init__(self, db: Session, event_id: str, limit: int = 20, page_size: int = 50):
        if limit < 0:
            raise ValueError("limit cannot be negative")
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self.db = db
        self.event_id = event_id
        self.limit = limit
        self.page_size = page_size

    def __iter__(self) -> Iterator[Ticket]:
        remaining = self.limit
        cursor = None

        while remaining > 0:
            page = self._fetch_page(cursor, min(self.page_size, remaining))
            if not page:
                return
            for ticket in page:
                yield ticket
            remaining -= len(page)
            if len(page) < self.page_size:
                return
            last = page[-1]
            cursor = (last.check_in_time, last.id)

    def _fetch_page(self, cursor, size: int):
        query = self.db.query(Ticket).filter(
            Ticket.event_id == self.event_id,
            Ticket.check_in_time.isnot(None)
        )
        if cursor is not None:
            check_in_time, ticket_id = cursor
            query = query.filter(or_(
                Ticket.check_in_time < check_in_time,
                and_(Ticket.check_in_time == check_in_time, Ticket.id < ticket_id)
            ))
        return query.order_by(Ticket.check_in_time.desc(), Ticket.id.desc()).limit(size).all()


class CheckInLedger:
    """At-most-once admission per ticket"""

    def __init__(self, db: Session):
        self.db = db

    def verify(self, event_id: str, code: str) -> Ticket:
        """Resolve a code or QR payload to a ticket of this event"""
        verification_code = extract_verification_code(code)
        ticket = self.db.query(Ticket).filter(
            Ticket.event_id == event_id,
            Ticket.verification_code == verification_code
        ).first()
        if not ticket:
            logger.info("Verification failed for event %s", event_id)
            raise TicketNotFoundError(verification_code)
        return ticket

    def check_in(self, ticket_id: str, now: Optional[datetime] = None) -> Ticket:
        """Mark a ticket as admitted; a second call raises AlreadyCheckedInError"""

        now = now or utcnow()
        updated = self.db.query(Ticket).filter(
            Ticket.id == ticket_id,
            Ticket.is_checked_in.is_(False)
        ).update(
            {Ticket.is_checked_in: True, Ticket.check_in_time: now},
            synchronize_session=False
        )
        if updated:
            self.db.commit()
        else:
            self.db.rollback()

        ticket = self.db.query(Ticket).filter(Ticket.id == ticket_id).populate_existing().first()
        if not ticket:
            raise TicketNotFoundError(ticket_id)

        if not updated:
            logger.info("Ticket %s already checked in at %s", ticket_id, ticket.check_in_time)
            raise AlreadyCheckedInError(ticket.id, ticket.check_in_time)

        logger.info("Ticket %s checked in for event %s", ticket.id, ticket.event_id)
        return ticket

    def recent_check_ins(self, event_id: str, limit: int = 20, page_size: int = 50) -> RecentCheckIns:
        return RecentCheckIns(self.db, event_id, limit=limit, page_size=page_size)

    def stats(self, event_id: str) -> CheckInStats:
        total, checked_in = self.db.query(
            func.count(Ticket.id),
            func.coalesce(func.sum(case((Ticket.is_checked_in.is_(True), 1), else_=0)), 0)
        ).filter(Ticket.event_id == event_id).one()

        total = int(total or 0)
        checked_in = int(checked_in or 0)
        return CheckInStats(
            event_id=event_id,
            total=total,
            checked_in=checked_in,
            remaining=total - checked_in,
            check_in_rate=round(checked_in / total * 100, 1) if total else 0.0
        )

    # Organizer views
    def attendees(
        self,
        event_id: str,
        skip: int = 0,
        limit: Optional[int] = 50,
        search: Optional[AttendeeSearch] = None
    ) -> Tuple[List[Ticket], int]:
        """Tickets of an event with optional filters, oldest first"""
        query = self.db.query(Ticket).options(
            joinedload(Ticket.booking),
            joinedload(Ticket.ticket_type)
        ).filter(Ticket.event_id == event_id)

        if search:
            if search.query:
                pattern = f"%{search.query.strip()}%"
                query = query.filter(or_(
                    Ticket.attendee_name.ilike(pattern),
                    Ticket.attendee_email.ilike(pattern),
                    Ticket.verification_code.ilike(pattern)
                ))

            if search.ticket_type_id:
                query = query.filter(Ticket.ticket_type_id == search.ticket_type_id)

            if search.is_checked_in is not None:
                query = query.filter(Ticket.is_checked_in.is_(search.is_checked_in))

        total = query.count()
        tickets = query.order_by(Ticket.created_at, Ticket.id).offset(skip).limit(limit).all()

        return tickets, total

    def attendee_report_csv(self, event_id: str, search: Optional[AttendeeSearch] = None) -> str:
        """Every matching attendee of an event as CSV text"""
        tickets, total = self.attendees(event_id, limit=None, search=search)

        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=list(Attendee.model_fields))
        writer.writeheader()
        for ticket in tickets:
            row = to_attendee(ticket).model_dump()
            row["check_in_time"] = row["check_in_time"].isoformat() if row["check_in_time"] else ""
            writer.writerow(row)

        logger.info("Attendee report for event %s with %s row(s)", event_id, total)
        return output.getvalue()


def to_attendee(ticket: Ticket) -> Attendee:
    return Attendee(
        ticket_id=ticket.id,
        booking_id=ticket.booking_id,
        booking_reference=ticket.booking.reference,
        ticket_type_id=ticket.ticket_type_id,
        ticket_type_name=ticket.ticket_type.name,
        attendee_name=ticket.attendee_name,
        attendee_email=ticket.attendee_email,
        verification_code=ticket.verification_code,
        is_checked_in=ticket.is_checked_in,
        check_in_time=ticket.check_in_time
    )
