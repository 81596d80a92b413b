import base64
import json
import threading
from datetime import timedelta
from decimal import Decimal

import pytest

from src.bookings.ticket_service import TicketService
from src.checkins.schemas import AttendeeSearch
from src.checkins.service import CheckInLedger, extract_verification_code
from src.errors import AlreadyCheckedInError, TicketNotFoundError
from src.models import Coupon, Ticket, utcnow

from tests.conftest import EVENT_ID


@pytest.fixture
def tickets(booking_service, buyer, make_ticket_type):
    ticket_type = make_ticket_type(unit_price=Decimal("0.00"), total_quantity=20)
    booking = booking_service.start(EVENT_ID, {ticket_type.id: 5}, buyer)
    return list(booking.tickets)


def test_raw_code_resolves_to_its_ticket(db, tickets):
    ticket = tickets[0]

    found = CheckInLedger(db).verify(EVENT_ID, ticket.verification_code.lower())

    assert found.id == ticket.id
    assert found.is_checked_in is False


def test_scanned_qr_payload_resolves_to_its_ticket(db, tickets):
    ticket = tickets[1]
    payload = TicketService(db).encode_qr_payload(ticket)

    assert CheckInLedger(db).verify(EVENT_ID, payload).id == ticket.id


def test_plain_json_payload_is_accepted(db, tickets):
    ticket = tickets[2]
    payload = json.dumps({"code": ticket.verification_code, "tid": ticket.id})

    assert CheckInLedger(db).verify(EVENT_ID, payload).id == ticket.id


def test_code_is_scoped_to_event(db, tickets):
    with pytest.raises(TicketNotFoundError):
        CheckInLedger(db).verify("evt-some-other", tickets[0].verification_code)


def test_unknown_code(db, tickets):
    with pytest.raises(TicketNotFoundError):
        CheckInLedger(db).verify(EVENT_ID, "NOT-A-CODE")


@pytest.mark.parametrize("raw, expected", [
    ("  ab12cd34ef ", "AB12CD34EF"),
    (base64.b64encode(b'{"v":1,"code":"ab12cd34ef"}').decode(), "AB12CD34EF"),
    ('{"code": "ZZ99"}', "ZZ99"),
    (base64.b64encode(b"not json").decode(), base64.b64encode(b"not json").decode().upper()),
])
def test_extract_verification_code(raw, expected):
    assert extract_verification_code(raw) == expected


def test_check_in_happens_once(db, tickets):
    ledger = CheckInLedger(db)
    ticket = tickets[0]
    first_at = utcnow()

    checked = ledger.check_in(ticket.id, now=first_at)
    assert checked.is_checked_in is True
    assert checked.check_in_time == first_at

    with pytest.raises(AlreadyCheckedInError) as exc_info:
        ledger.check_in(ticket.id, now=first_at + timedelta(minutes=5))

    assert exc_info.value.checked_in_at == first_at
    assert "already checked in" in exc_info.value.message.lower()
    db.expire_all()
    assert db.query(Ticket).filter(Ticket.id == ticket.id).one().check_in_time == first_at


def test_verify_reports_prior_check_in(db, tickets):
    ledger = CheckInLedger(db)
    ledger.check_in(tickets[0].id)

    found = ledger.verify(EVENT_ID, tickets[0].verification_code)

    assert found.is_checked_in is True
    assert found.check_in_time is not None


def test_check_in_unknown_ticket(db):
    with pytest.raises(TicketNotFoundError):
        CheckInLedger(db).check_in("missing-ticket")


def test_refused_check_in_commits_nothing(db, session_factory, tickets):
    ledger = CheckInLedger(db)
    ledger.check_in(tickets[0].id)
    db.add(Coupon(code="UNSAVED", discount_percent=Decimal("5"), active=True, times_redeemed=0))

    with pytest.raises(AlreadyCheckedInError):
        ledger.check_in(tickets[0].id)
    with pytest.raises(TicketNotFoundError):
        ledger.check_in("missing-ticket")

    other = session_factory()
    try:
        assert other.query(Coupon).count() == 0
    finally:
        other.close()


def test_concurrent_scans_admit_once(session_factory, tickets):
    ticket_id = tickets[0].id
    outcomes = []
    lock = threading.Lock()
    start = threading.Barrier(5)

    def scan():
        session = session_factory()
        try:
            start.wait()
            CheckInLedger(session).check_in(ticket_id)
            result = "admitted"
        except AlreadyCheckedInError:
            result = "duplicate"
        finally:
            session.close()
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=scan) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("admitted") == 1
    assert outcomes.count("duplicate") == 4


def test_recent_check_ins_newest_first_across_pages(db, tickets):
    ledger = CheckInLedger(db)
    base = utcnow()
    for offset, ticket in enumerate(tickets):
        ledger.check_in(ticket.id, now=base + timedelta(seconds=offset))

    recent = ledger.recent_check_ins(EVENT_ID, limit=4, page_size=3)

    expected = [ticket.id for ticket in reversed(tickets)][:4]
    assert [ticket.id for ticket in recent] == expected
    # Iterating again starts over from the newest
    assert [ticket.id for ticket in recent] == expected


def test_recent_check_ins_is_lazy(db, tickets):
    ledger = CheckInLedger(db)
    recent = ledger.recent_check_ins(EVENT_ID, limit=10)

    assert list(recent) == []

    ledger.check_in(tickets[3].id)
    assert [ticket.id for ticket in recent] == [tickets[3].id]


def test_recent_check_ins_validates_arguments(db):
    with pytest.raises(ValueError):
        CheckInLedger(db).recent_check_ins(EVENT_ID, page_size=0)


def test_stats(db, tickets):
    ledger = CheckInLedger(db)
    ledger.check_in(tickets[0].id)
    ledger.check_in(tickets[1].id)

    stats = ledger.stats(EVENT_ID)

    assert (stats.total, stats.checked_in, stats.remaining) == (5, 2, 3)
    assert stats.check_in_rate == 40.0
    assert ledger.stats("evt-empty").total == 0


def test_qr_image_is_png(db, tickets):
    image = TicketService(db).generate_qr_code_image(tickets[0], size=200)

    assert image.startswith(b"\x89PNG")


def test_pdf_sheet(db, booking_service, tickets):
    booking = booking_service.get_booking(tickets[0].booking_id)

    pdf = TicketService(db).generate_pdf_tickets(booking)

    assert pdf.startswith(b"%PDF")


# Organizer attendee list
def test_attendees_filter_by_check_in_status(db, tickets):
    ledger = CheckInLedger(db)
    ledger.check_in(tickets[0].id)
    ledger.check_in(tickets[1].id)

    everyone, total = ledger.attendees(EVENT_ID)
    assert total == 5
    assert {ticket.id for ticket in everyone} == {ticket.id for ticket in tickets}

    admitted, admitted_total = ledger.attendees(EVENT_ID, search=AttendeeSearch(is_checked_in=True))
    assert admitted_total == 2
    assert {ticket.id for ticket in admitted} == {tickets[0].id, tickets[1].id}

    waiting, waiting_total = ledger.attendees(EVENT_ID, search=AttendeeSearch(is_checked_in=False))
    assert waiting_total == 3
    assert all(not ticket.is_checked_in for ticket in waiting)


def test_attendees_are_paged(db, tickets):
    ledger = CheckInLedger(db)

    first, total = ledger.attendees(EVENT_ID, skip=0, limit=2)
    second, _ = ledger.attendees(EVENT_ID, skip=2, limit=2)
    last, _ = ledger.attendees(EVENT_ID, skip=4, limit=2)

    assert total == 5
    assert [len(first), len(second), len(last)] == [2, 2, 1]
    seen = [ticket.id for ticket in first + second + last]
    assert sorted(seen) == sorted(ticket.id for ticket in tickets)


def test_attendee_search_by_code_and_scope(db, tickets):
    ledger = CheckInLedger(db)
    code = tickets[3].verification_code

    found, total = ledger.attendees(EVENT_ID, search=AttendeeSearch(query=code.lower()))
    assert total == 1
    assert found[0].id == tickets[3].id

    assert ledger.attendees("evt-some-other") == ([], 0)


def test_attendee_report_csv(db, tickets):
    ledger = CheckInLedger(db)
    ledger.check_in(tickets[0].id)

    lines = ledger.attendee_report_csv(EVENT_ID).strip().splitlines()

    assert lines[0].startswith("ticket_id,booking_id,booking_reference,")
    assert len(lines) == 6
    checked_in_row = next(line for line in lines if line.startswith(tickets[0].id))
    assert ",True," in checked_in_row

    only_admitted = ledger.attendee_report_csv(EVENT_ID, search=AttendeeSearch(is_checked_in=True))
    assert len(only_admitted.strip().splitlines()) == 2
