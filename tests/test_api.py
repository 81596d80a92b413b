from datetime import timedelta
from decimal import Decimal

import pytest

from src.models import Booking, InventoryHold, utcnow

from tests.conftest import EVENT_ID

API = "/api/v1"


@pytest.fixture
def ticket_type(client):
    response = client.post(f"{API}/events/{EVENT_ID}/ticket-types", json={
        "name": "General Admission",
        "unit_price": "100.00",
        "currency": "INR",
        "total_quantity": 5,
    })
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def free_ticket_type(client):
    response = client.post(f"{API}/events/{EVENT_ID}/ticket-types", json={
        "name": "Free RSVP",
        "unit_price": "0",
        "total_quantity": 100,
    })
    assert response.status_code == 201
    return response.json()


def create_booking(client, ticket_type_id, quantity, **extra):
    body = {
        "event_id": EVENT_ID,
        "items": [{"ticket_type_id": ticket_type_id, "quantity": quantity}],
        "buyer": {"email": "asha@example.com", "name": "Asha Rao"},
    }
    body.update(extra)
    return client.post(f"{API}/bookings", json=body)


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
    assert client.get(f"{API}/health").status_code == 200


def test_ticket_type_endpoints(client, ticket_type):
    listed = client.get(f"{API}/events/{EVENT_ID}/ticket-types").json()
    assert [item["id"] for item in listed] == [ticket_type["id"]]
    assert listed[0]["available"] == 5

    availability = client.get(f"{API}/ticket-types/{ticket_type['id']}/availability").json()
    assert availability == {
        "ticket_type_id": ticket_type["id"],
        "total_quantity": 5,
        "sold": 0,
        "held": 0,
        "available": 5,
        "unlimited": False,
    }

    off = client.patch(f"{API}/ticket-types/{ticket_type['id']}/on-sale", json={"on_sale": False})
    assert off.json()["on_sale"] is False
    assert client.get(f"{API}/events/{EVENT_ID}/ticket-types").json() == []

    missing = client.get(f"{API}/ticket-types/nope/availability")
    assert missing.status_code == 404
    assert missing.json()["detail"]["code"] == "TICKET_TYPE_NOT_FOUND"


def test_paid_booking_flow(client, ticket_type, gateway):
    created = create_booking(client, ticket_type["id"], 2)
    assert created.status_code == 201
    booking = created.json()
    assert booking["status"] == "pending_payment"
    assert Decimal(booking["total"]) == Decimal("220.00")
    assert booking["tickets"] == []

    payment = client.post(f"{API}/bookings/{booking['id']}/payment", json={"method": "cashfree"})
    assert payment.status_code == 200
    assert payment.json()["session_ref"] == f"STUB-{booking['reference']}"
    assert payment.json()["requires_manual_confirmation"] is False

    again = client.post(f"{API}/bookings/{booking['id']}/payment", json={"method": "cashfree"})
    assert again.json()["session_ref"] == payment.json()["session_ref"]
    assert len(gateway.created) == 1

    confirmed = client.post(f"{API}/bookings/{booking['id']}/payment-callback", json={"outcome": "success"})
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "confirmed"
    assert len(confirmed.json()["tickets"]) == 2

    duplicate = client.post(f"{API}/bookings/{booking['id']}/payment-callback", json={"outcome": "success"})
    assert duplicate.status_code == 200
    assert duplicate.json()["status"] == "confirmed"

    tickets = client.get(f"{API}/bookings/{booking['id']}/tickets").json()
    assert len(tickets) == 2

    by_reference = client.get(f"{API}/bookings/reference/{booking['reference']}")
    assert by_reference.json()["id"] == booking["id"]

    availability = client.get(f"{API}/ticket-types/{ticket_type['id']}/availability").json()
    assert (availability["sold"], availability["held"], availability["available"]) == (2, 0, 3)


def test_sold_out_checkout_reports_quantities(client, ticket_type):
    assert create_booking(client, ticket_type["id"], 4).status_code == 201

    response = create_booking(client, ticket_type["id"], 2)

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["code"] == "INSUFFICIENT_INVENTORY"
    assert (detail["requested"], detail["available"]) == (2, 1)


def test_invalid_carts(client, ticket_type):
    assert create_booking(client, ticket_type["id"], 0).status_code == 400
    assert create_booking(client, ticket_type["id"], -1).status_code == 422
    assert create_booking(client, "unknown", 1).status_code == 404

    bad_email = create_booking(client, ticket_type["id"], 1, buyer={"email": "not-an-email"})
    assert bad_email.status_code == 422


def test_cancel_booking(client, ticket_type):
    booking = create_booking(client, ticket_type["id"], 3).json()

    cancelled = client.post(f"{API}/bookings/{booking['id']}/cancel", json={"reason": "Plans changed"})
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"
    assert cancelled.json()["cancellation_reason"] == "Plans changed"

    again = client.post(f"{API}/bookings/{booking['id']}/cancel", json={"reason": "Again"})
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "INVALID_TRANSITION"

    failure_after_cancel = client.post(
        f"{API}/bookings/{booking['id']}/payment-callback", json={"outcome": "failure"}
    )
    assert failure_after_cancel.status_code == 200
    assert failure_after_cancel.json()["status"] == "cancelled"


def test_unknown_booking(client):
    response = client.get(f"{API}/bookings/does-not-exist")

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "BOOKING_NOT_FOUND"


def test_unconfigured_payment_method_is_503(client, ticket_type):
    booking = create_booking(client, ticket_type["id"], 1).json()

    response = client.post(f"{API}/bookings/{booking['id']}/payment", json={"method": "phonepe"})

    assert response.status_code == 503
    assert response.json()["detail"]["code"] == "PAYMENT_ADAPTER_UNAVAILABLE"
    assert client.get(f"{API}/bookings/{booking['id']}").json()["status"] == "pending_payment"


def test_upi_i_have_paid_flow(client, ticket_type):
    booking = create_booking(client, ticket_type["id"], 1).json()

    payment = client.post(f"{API}/bookings/{booking['id']}/payment", json={"method": "upi"}).json()
    assert payment["redirect_url"].startswith("upi://pay?")
    assert payment["requires_manual_confirmation"] is True

    polled = client.post(f"{API}/bookings/{booking['id']}/payment/refresh")
    assert polled.json()["status"] == "pending_payment"

    confirmed = client.post(f"{API}/bookings/{booking['id']}/payment/confirm")
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "confirmed"


def test_free_booking_check_in_flow(client, free_ticket_type):
    created = create_booking(client, free_ticket_type["id"], 3)
    booking = created.json()
    assert booking["status"] == "confirmed"
    assert Decimal(booking["fees"]) == Decimal("0")
    ticket = booking["tickets"][0]

    verified = client.post(f"{API}/tickets/verify", json={
        "event_id": EVENT_ID, "code": ticket["verification_code"]
    })
    assert verified.status_code == 200
    assert verified.json()["ticket_id"] == ticket["id"]
    assert verified.json()["message"] == "Valid ticket"

    first = client.post(f"{API}/tickets/{ticket['id']}/check-in")
    assert first.status_code == 200
    assert first.json()["is_checked_in"] is True

    second = client.post(f"{API}/tickets/{ticket['id']}/check-in")
    assert second.status_code == 409
    assert second.json()["detail"]["code"] == "ALREADY_CHECKED_IN"
    assert second.json()["detail"]["checked_in_at"].startswith(first.json()["check_in_time"][:19])

    stats = client.get(f"{API}/events/{EVENT_ID}/check-in-stats").json()
    assert (stats["total"], stats["checked_in"], stats["remaining"]) == (3, 1, 2)

    recent = client.get(f"{API}/events/{EVENT_ID}/recent-check-ins").json()
    assert [row["ticket_id"] for row in recent] == [ticket["id"]]

    unknown = client.post(f"{API}/tickets/verify", json={"event_id": EVENT_ID, "code": "FFFFFFFFFF"})
    assert unknown.status_code == 404


def test_ticket_downloads(client, free_ticket_type):
    booking = create_booking(client, free_ticket_type["id"], 2).json()
    ticket_id = booking["tickets"][0]["id"]

    qr = client.get(f"{API}/tickets/{ticket_id}/qr", params={"size": 150})
    assert qr.status_code == 200
    assert qr.headers["content-type"] == "image/png"

    pdf = client.get(f"{API}/bookings/{booking['id']}/tickets.pdf")
    assert pdf.status_code == 200
    assert pdf.headers["content-type"] == "application/pdf"
    assert pdf.content.startswith(b"%PDF")


def test_coupon_endpoints(client, ticket_type):
    created = client.post(f"{API}/coupons", json={"code": "launch10", "discount_percent": "10"})
    assert created.status_code == 201
    assert created.json()["code"] == "LAUNCH10"

    duplicate = client.post(f"{API}/coupons", json={"code": "LAUNCH10", "discount_percent": "5"})
    assert duplicate.status_code == 409

    booking = create_booking(client, ticket_type["id"], 2, coupon_code="LAUNCH10").json()
    assert Decimal(booking["discount_amount"]) == Decimal("20.00")
    assert Decimal(booking["total"]) == Decimal("200.00")

    rejected = create_booking(client, ticket_type["id"], 1, coupon_code="NOPE")
    assert rejected.status_code == 400
    assert rejected.json()["detail"]["code"] == "INVALID_COUPON"


def test_maintenance_sweep_expires_abandoned_checkout(client, session_factory, ticket_type):
    booking = create_booking(client, ticket_type["id"], 5).json()

    session = session_factory()
    try:
        past = utcnow() - timedelta(minutes=1)
        session.query(Booking).filter(Booking.id == booking["id"]).update({Booking.hold_expires_at: past})
        session.query(InventoryHold).update({InventoryHold.expires_at: past})
        session.commit()
    finally:
        session.close()

    swept = client.post(f"{API}/maintenance/expire")
    assert swept.status_code == 200
    assert swept.json()["expired_bookings"] == 1

    assert client.get(f"{API}/bookings/{booking['id']}").json()["status"] == "expired"
    assert create_booking(client, ticket_type["id"], 5).status_code == 201


def test_event_attendee_list_and_report(client, free_ticket_type):
    booking = create_booking(client, free_ticket_type["id"], 3).json()
    admitted = booking["tickets"][0]
    assert client.post(f"{API}/tickets/{admitted['id']}/check-in").status_code == 200

    listed = client.get(f"{API}/events/{EVENT_ID}/tickets", params={"limit": 2}).json()
    assert (listed["total"], listed["page"], listed["per_page"]) == (3, 1, 2)
    assert len(listed["attendees"]) == 2
    assert listed["attendees"][0]["booking_reference"] == booking["reference"]
    assert listed["attendees"][0]["ticket_type_name"] == "Free RSVP"
    assert (listed["stats"]["checked_in"], listed["stats"]["remaining"]) == (1, 2)

    waiting = client.get(f"{API}/events/{EVENT_ID}/tickets", params={"is_checked_in": "false"}).json()
    assert waiting["total"] == 2
    assert admitted["id"] not in [row["ticket_id"] for row in waiting["attendees"]]

    report = client.get(f"{API}/events/{EVENT_ID}/attendees.csv")
    assert report.status_code == 200
    assert report.headers["content-type"].startswith("text/csv")
    assert len(report.text.strip().splitlines()) == 4


def test_availability_ignores_lapsed_unswept_holds(client, session_factory, ticket_type):
    booking = create_booking(client, ticket_type["id"], 5).json()

    session = session_factory()
    try:
        past = utcnow() - timedelta(minutes=1)
        session.query(InventoryHold).update({InventoryHold.expires_at: past})
        session.commit()
    finally:
        session.close()

    availability = client.get(f"{API}/ticket-types/{ticket_type['id']}/availability").json()
    assert (availability["held"], availability["available"]) == (0, 5)

    assert create_booking(client, ticket_type["id"], 5).status_code == 201
    assert client.get(f"{API}/bookings/{booking['id']}").json()["status"] == "pending_payment"
