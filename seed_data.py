#!/usr/bin/env python3

from decimal import Decimal

from src.database import Base, SessionLocal, engine
from src.models import (
    Booking, BookingLineItem, Coupon, InventoryHold, PaymentSession, Ticket, TicketType
)

DEMO_EVENTS = {
    "evt-sunburn-goa": [
        dict(name="General Admission", unit_price=Decimal("1499.00"), total_quantity=500, max_per_order=6),
        dict(name="VIP Lounge", unit_price=Decimal("4999.00"), total_quantity=50, max_per_order=4),
        dict(name="Early Bird", unit_price=Decimal("999.00"), total_quantity=100, on_sale=False),
    ],
    "evt-open-mic-bandra": [
        dict(name="Walk-in", unit_price=Decimal("0.00"), total_quantity=None),
        dict(name="Reserved Seat", unit_price=Decimal("250.00"), total_quantity=40, max_per_order=2),
    ],
    "evt-tech-meetup-blr": [
        dict(name="Free RSVP", unit_price=Decimal("0.00"), total_quantity=150, max_per_order=1),
    ],
}

def create_seed_data():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()

    try:
        print("🚀 Creating seed data for Event Ticketing System...")

        # Clear existing data (in reverse dependency order)
        print("Clearing existing data...")
        db.query(Ticket).delete()
        db.query(PaymentSession).delete()
        db.query(BookingLineItem).delete()
        db.query(Booking).delete()
        db.query(InventoryHold).delete()
        db.query(TicketType).delete()
        db.query(Coupon).delete()

        # 1. Create Ticket Types
        print("Creating ticket types...")
        ticket_types = []
        for event_id, types in DEMO_EVENTS.items():
            for entry in types:
                values = dict(entry)
                ticket_types.append(TicketType(
                    event_id=event_id,
                    currency="INR",
                    quantity_sold=0,
                    quantity_held=0,
                    on_sale=values.pop("on_sale", True),
                    **values
                ))
        db.add_all(ticket_types)
        db.flush()

        # 2. Create Coupons
        print("Creating coupons...")
        coupons = [
            Coupon(code="WELCOME10", discount_percent=Decimal("10"), active=True, times_redeemed=0),
            Coupon(code="SUNBURN25", event_id="evt-sunburn-goa", discount_percent=Decimal("25"),
                   max_redemptions=100, active=True, times_redeemed=0),
            Coupon(code="EXPIRED5", discount_percent=Decimal("5"), active=False, times_redeemed=0),
        ]
        db.add_all(coupons)

        # Commit all changes
        db.commit()
        print("✅ Successfully created seed data for Event Ticketing System!")
        print(f"Created:")
        print(f"  - {len(DEMO_EVENTS)} events")
        print(f"  - {len(ticket_types)} ticket types")
        print(f"  - {len(coupons)} coupons")

    except Exception as e:
        print(f"❌ Error creating seed data: {e}")
        db.rollback()
        raise
    finally:
        db.close()

if __name__ == "__main__":
    create_seed_data()
