import os
import sys
import logging
from decimal import Decimal
from typing import List

os.environ.setdefault("ENABLE_EXPIRY_SWEEPER", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from src.bookings.booking_service import BookingService
from src.bookings.schemas import BuyerContact
from src.database import Base, build_engine, get_db
from src.errors import PaymentAdapterUnavailableError
from src.main import app
from src.models import TicketType
from src.payments.gateway import (
    GatewayRegistry, PaymentGateway, PaymentMethod, PaymentOutcome, PaymentSessionInfo
)
from src.payments.providers import UpiGateway, get_gateway_registry
from src.pricing.service import PricingEngine

EVENT_ID = "evt-test-001"


@pytest.fixture(scope="session", autouse=True)
def _tests_log_to_stdout():
    """Send test logs to stdout so they show under pytest -s"""
    root = logging.getLogger()
    if not any(getattr(h, "stream", None) is sys.stdout for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        root.addHandler(handler)
    root.setLevel(os.getenv("TEST_LOG_LEVEL", "WARNING").upper())


class StubGateway(PaymentGateway):
    """Payment backend that answers with a preset outcome"""

    provider = "stub"

    def __init__(self, outcome: PaymentOutcome = PaymentOutcome.PENDING, fail: bool = False):
        self.outcome = outcome
        self.fail = fail
        self.created: List[str] = []
        self.polled: List[str] = []

    def create_session(self, booking, method: PaymentMethod) -> PaymentSessionInfo:
        if self.fail:
            raise PaymentAdapterUnavailableError(self.provider, "stubbed outage")
        self.created.append(booking.id)
        return PaymentSessionInfo(
            session_ref=f"STUB-{booking.reference}",
            redirect_url=f"https://pay.example.test/checkout/{booking.reference}",
            payload={"attempt": len(self.created)}
        )

    def poll_status(self, session_ref: str) -> PaymentOutcome:
        self.polled.append(session_ref)
        return self.outcome

    def verify(self, session_ref: str) -> PaymentOutcome:
        return self.outcome


# Database
@pytest.fixture
def engine(tmp_path):
    # File-backed so worker threads share one database
    engine = build_engine(f"sqlite:///{tmp_path / 'ticketing_test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# Domain helpers
@pytest.fixture
def gateway():
    return StubGateway()


@pytest.fixture
def registry(gateway):
    return GatewayRegistry({
        PaymentMethod.CASHFREE: gateway,
        PaymentMethod.UPI: UpiGateway(vpa="tickets@testbank", payee_name="Test Events"),
    })


@pytest.fixture
def pricing():
    return PricingEngine(fee_rate=Decimal("0.03"), minimum_fee=Decimal("20.00"), default_currency="INR")


@pytest.fixture
def booking_service(db, registry, pricing):
    return BookingService(db, gateways=registry, pricing=pricing)


@pytest.fixture
def buyer():
    return BuyerContact(email="Asha@Example.com", phone="9876543210", name="Asha Rao")


@pytest.fixture
def make_ticket_type(db):
    def _make(**overrides) -> TicketType:
        values = dict(
            event_id=EVENT_ID,
            name="General Admission",
            unit_price=Decimal("100.00"),
            currency="INR",
            total_quantity=10,
            quantity_sold=0,
            quantity_held=0,
            on_sale=True,
        )
        values.update(overrides)
        ticket_type = TicketType(**values)
        db.add(ticket_type)
        db.commit()
        db.refresh(ticket_type)
        return ticket_type
    return _make


# HTTP
@pytest.fixture
def client(session_factory, registry):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway_registry] = lambda: registry
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
