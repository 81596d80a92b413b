from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
from datetime import datetime, timedelta
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging
import secrets

from src.bookings.schemas import (
    AttendeeInfo, BookingStatus, BuyerContact, CartItem, TERMINAL_STATUSES
)
from src.bookings.ticket_service import TicketService
from src.config import settings
from src.errors import (
    BookingNotFoundError, DomainError, HoldNotFoundError, InvalidCartError,
    InvalidTransitionError, TicketTypeNotFoundError
)
from src.inventory.ledger import InventoryLedger
from src.models import Booking, BookingLineItem, PaymentSession, Ticket, TicketType, new_id, utcnow
from src.payments.gateway import GatewayRegistry, PaymentMethod, PaymentOutcome
from src.payments.providers import get_gateway_registry
from src.pricing.coupon_service import CouponService
from src.pricing.service import PricingEngine

logger = logging.getLogger(__name__)

# Every transition a booking may take; anything else is refused
ALLOWED_TRANSITIONS: Dict[BookingStatus, frozenset] = {
    BookingStatus.DRAFT: frozenset({
        BookingStatus.PENDING_PAYMENT, BookingStatus.CONFIRMED, BookingStatus.CANCELLED
    }),
    BookingStatus.PENDING_PAYMENT: frozenset({
        BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.EXPIRED
    }),
    BookingStatus.CONFIRMED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.EXPIRED: frozenset(),
}

Cart = Union[Sequence[CartItem], Mapping[str, int]]


def sources_for(target: BookingStatus) -> List[str]:
    """Statuses from which a booking may move to target"""
    return [source.value for source, targets in ALLOWED_TRANSITIONS.items() if target in targets]


class BookingService:
    """Booking state machine: cart, hold, payment, then a terminal status.

    Status changes are claimed with a conditional UPDATE on the booking row
    (``... WHERE status IN (allowed sources)``), so when a webhook and a
    poll race to deliver an outcome only one of them moves the booking and
    the other sees InvalidTransitionError.
    """

    def __init__(
        self,
        db: Session,
        gateways: Optional[GatewayRegistry] = None,
        pricing: Optional[PricingEngine] = None,
        hold_ttl: Optional[timedelta] = None
    ):
        self.db = db
        self.gateways = gateways or get_gateway_registry()
        self.pricing = pricing or PricingEngine()
        self.hold_ttl = hold_ttl or timedelta(minutes=settings.HOLD_TTL_MINUTES)
        self.ledger = InventoryLedger(db)
        self.tickets = TicketService(db)
        self.coupons = CouponService(db)

    # Checkout
    def start(
        self,
        event_id: str,
        cart: Cart,
        buyer: BuyerContact,
        coupon_code: Optional[str] = None,
        attendees: Optional[Iterable[AttendeeInfo]] = None,
        now: Optional[datetime] = None
    ) -> Booking:
        """Hold inventory for a cart, price it and persist the booking.

        Paid orders wait in pending_payment; free orders are confirmed
        immediately. If any line item cannot be held, holds already taken
        for this booking are released and the error propagates.
        """

        now = now or utcnow()
        selections = self._normalize_cart(cart)
        discount_percent = self.coupons.resolve(coupon_code, event_id)
        ticket_types = self._load_ticket_types(event_id, selections)

        booking_id = new_id()
        hold_tokens: List[str] = []
        line_items: List[BookingLineItem] = []

        try:
            for ticket_type_id, quantity in selections:
                token = self.ledger.hold(ticket_type_id, quantity, booking_id, self.hold_ttl, now=now)
                hold_tokens.append(token)

            summary = self.pricing.price(
                [(ticket_types[ticket_type_id], quantity) for ticket_type_id, quantity in selections],
                discount_percent
            )

            for (ticket_type_id, quantity), token, priced in zip(selections, hold_tokens, summary.line_items):
                line_items.append(BookingLineItem(
                    ticket_type_id=ticket_type_id,
                    quantity=quantity,
                    unit_price_snapshot=priced.unit_price,
                    hold_token=token
                ))
        except DomainError:
            for token in hold_tokens:
                self.ledger.release(token)
            self.db.commit()
            raise
        except Exception:
            self.db.rollback()
            raise

        booking = Booking(
            id=booking_id,
            reference=self._generate_reference(),
            event_id=event_id,
            buyer_email=buyer.email,
            buyer_phone=buyer.phone,
            buyer_name=buyer.name,
            status=BookingStatus.DRAFT.value,
            coupon_code=coupon_code.strip().upper() if coupon_code else None,
            discount_percent=summary.discount_percent,
            currency=summary.currency,
            subtotal=summary.subtotal,
            fees=summary.fees,
            discount_amount=summary.discount_amount,
            total=summary.total,
            hold_expires_at=now + self.hold_ttl,
            attendees=[attendee.model_dump() for attendee in attendees or []],
            created_at=now,
            line_items=line_items
        )

        try:
            self.db.add(booking)
            self.db.flush()

            if summary.is_free:
                self._finalize(booking, now)
                self._set_status(booking, BookingStatus.CONFIRMED, confirmed_at=now)
            else:
                self._set_status(booking, BookingStatus.PENDING_PAYMENT)

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.info(
            "Booking %s (%s) started for event %s: %s ticket(s), total %s %s, status %s",
            booking.id, booking.reference, event_id, summary.ticket_count,
            summary.total, summary.currency, booking.status
        )
        return booking

    # Payment
    def request_payment(self, booking_id: str, method: PaymentMethod) -> PaymentSession:
        """Open (or return the existing) payment session for a pending booking"""

        method = PaymentMethod(method)
        booking = self.get_booking(booking_id)
        if booking.status != BookingStatus.PENDING_PAYMENT.value:
            raise InvalidTransitionError(booking.id, booking.status, "request payment")

        existing = self._find_session(booking.id, method)
        if existing:
            return existing

        gateway = self.gateways.get(method)

        # No write transaction is open while the provider is called
        info = gateway.create_session(booking, method)

        session = PaymentSession(
            booking_id=booking.id,
            method=method.value,
            session_ref=info.session_ref,
            redirect_url=info.redirect_url,
            amount=booking.total,
            currency=booking.currency,
            status=PaymentOutcome.PENDING.value,
            provider_payload=info.payload
        )
        try:
            self.db.add(session)
            booking.payment_method = method.value
            self.db.commit()
        except IntegrityError:
            # A concurrent request stored a session for the same method first
            self.db.rollback()
            existing = self._find_session(booking.id, method)
            if existing:
                return existing
            raise

        self.db.refresh(session)
        logger.info(
            "Payment session %s opened via %s for booking %s (%s %s)",
            session.session_ref, method.value, booking.id, session.amount, session.currency
        )
        return session

    def on_payment_result(
        self,
        booking_id: str,
        outcome: PaymentOutcome,
        now: Optional[datetime] = None
    ) -> Booking:
        """Apply a payment outcome delivered by a webhook or a poll"""

        outcome = PaymentOutcome(outcome)
        booking = self.get_booking(booking_id)

        if outcome == PaymentOutcome.PENDING:
            logger.info("Payment still pending for booking %s", booking.id)
            return booking

        if outcome == PaymentOutcome.SUCCESS:
            return self._confirm(booking, now or utcnow())

        return self._close(
            booking, BookingStatus.CANCELLED, now or utcnow(), reason="Payment failed"
        )

    def refresh_payment(self, booking_id: str) -> Booking:
        """Poll the provider for the booking's latest payment session"""

        booking = self.get_booking(booking_id)
        if BookingStatus(booking.status) in TERMINAL_STATUSES:
            return booking

        session = self._latest_session(booking)
        gateway = self.gateways.get(session.method)
        outcome = gateway.poll_status(session.session_ref)

        self._record_session_outcome(session, outcome)
        return self.on_payment_result(booking.id, outcome)

    def confirm_manual_payment(self, booking_id: str) -> Booking:
        """Buyer reports the payment as done ("I've paid")"""

        booking = self.get_booking(booking_id)
        if booking.status != BookingStatus.PENDING_PAYMENT.value:
            raise InvalidTransitionError(booking.id, booking.status, "confirm payment")

        session = self._latest_session(booking)
        gateway = self.gateways.get(session.method)
        outcome = gateway.verify(session.session_ref)

        self._record_session_outcome(session, outcome)
        return self.on_payment_result(booking.id, outcome)

    # Cancellation and expiry
    def cancel(self, booking_id: str, reason: str, now: Optional[datetime] = None) -> Booking:
        booking = self.get_booking(booking_id)
        return self._close(booking, BookingStatus.CANCELLED, now or utcnow(), reason=reason)

    def expire(self, booking_id: str, now: Optional[datetime] = None) -> Booking:
        booking = self.get_booking(booking_id)
        return self._close(booking, BookingStatus.EXPIRED, now or utcnow())

    def expire_overdue(self, now: Optional[datetime] = None) -> int:
        """Expire every pending booking whose hold window has passed"""

        now = now or utcnow()
        overdue_ids = [
            row.id for row in self.db.query(Booking.id).filter(
                Booking.status == BookingStatus.PENDING_PAYMENT.value,
                Booking.hold_expires_at < now
            ).all()
        ]

        expired = 0
        for booking_id in overdue_ids:
            try:
                self.expire(booking_id, now=now)
                expired += 1
            except InvalidTransitionError:
                # Confirmed or cancelled by a concurrent request
                continue

        if expired:
            logger.info("Expired %s overdue booking(s)", expired)
        return expired

    # Lookups
    def get_booking(self, booking_id: str) -> Booking:
        booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            raise BookingNotFoundError(booking_id)
        return booking

    def get_booking_by_reference(self, reference: str) -> Booking:
        booking = self.db.query(Booking).filter(Booking.reference == reference.strip().upper()).first()
        if not booking:
            raise BookingNotFoundError(reference)
        return booking

    def list_tickets(self, booking_id: str) -> List[Ticket]:
        booking = self.get_booking(booking_id)
        return self.tickets.get_booking_tickets(booking.id)

    # Internals
    def _confirm(self, booking: Booking, now: datetime) -> Booking:
        hold_tokens = [item.hold_token for item in booking.line_items]

        if not self._claim(booking.id, BookingStatus.CONFIRMED, confirmed_at=now):
            self._refuse(booking, "confirm")

        try:
            self.db.expire(booking)
            self._finalize(booking, now)
            self.db.commit()
        except HoldNotFoundError:
            self.db.rollback()
            logger.warning(
                "Payment succeeded for booking %s after its holds lapsed; expiring it, refund required",
                booking.id
            )
            self._release_and_commit(booking.id, BookingStatus.EXPIRED, hold_tokens)
            raise
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.info("Booking %s confirmed with %s ticket(s)", booking.id, len(booking.tickets))
        return booking

    def _close(
        self,
        booking: Booking,
        target: BookingStatus,
        now: datetime,
        reason: Optional[str] = None
    ) -> Booking:
        hold_tokens = [item.hold_token for item in booking.line_items]
        fields = {}
        if target == BookingStatus.CANCELLED:
            fields = {"cancelled_at": now, "cancellation_reason": reason}

        if not self._claim(booking.id, target, **fields):
            self._refuse(booking, target.value)

        try:
            for token in hold_tokens:
                self.ledger.release(token)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.info("Booking %s %s%s", booking.id, target.value, f": {reason}" if reason else "")
        return booking

    def _release_and_commit(
        self,
        booking_id: str,
        target: BookingStatus,
        hold_tokens: List[str]
    ) -> None:
        if not self._claim(booking_id, target):
            self.db.rollback()
            return
        for token in hold_tokens:
            self.ledger.release(token)
        self.db.commit()

    def _finalize(self, booking: Booking, now: datetime) -> None:
        """Commit holds, mint tickets and count the coupon; caller commits"""

        for item in booking.line_items:
            self.ledger.commit(item.hold_token, now=now)

        self.tickets.mint_tickets(booking)

        if booking.coupon_code:
            self.coupons.redeem(booking.coupon_code)

    def _claim(self, booking_id: str, target: BookingStatus, **fields) -> bool:
        values = {Booking.status: target.value, Booking.updated_at: utcnow()}
        for name, value in fields.items():
            values[getattr(Booking, name)] = value

        updated = self.db.query(Booking).filter(
            Booking.id == booking_id,
            Booking.status.in_(sources_for(target))
        ).update(values, synchronize_session=False)
        return updated == 1

    def _refuse(self, booking: Booking, attempted: str):
        self.db.rollback()
        current = self.db.query(Booking.status).filter(Booking.id == booking.id).scalar()
        logger.info("Refused to %s booking %s in status %s", attempted, booking.id, current)
        raise InvalidTransitionError(booking.id, current, attempted)

    def _set_status(self, booking: Booking, target: BookingStatus, **fields) -> None:
        """Transition for a booking not yet visible to other requests"""
        current = BookingStatus(booking.status)
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError(booking.id, current.value, target.value)
        booking.status = target.value
        for name, value in fields.items():
            setattr(booking, name, value)
        self.db.flush()

    def _normalize_cart(self, cart: Cart) -> List[Tuple[str, int]]:
        if isinstance(cart, Mapping):
            entries = list(cart.items())
        else:
            entries = [(item.ticket_type_id, item.quantity) for item in cart]

        merged: Dict[str, int] = {}
        for ticket_type_id, quantity in entries:
            if quantity < 0:
                raise InvalidCartError("Quantities cannot be negative", ticket_type_id=ticket_type_id)
            if quantity == 0:
                continue
            merged[ticket_type_id] = merged.get(ticket_type_id, 0) + quantity

        if not merged:
            raise InvalidCartError("Select at least one ticket")

        total = sum(merged.values())
        if total > settings.MAX_TICKETS_PER_ORDER:
            raise InvalidCartError(
                f"At most {settings.MAX_TICKETS_PER_ORDER} tickets per order",
                requested=total,
                max_per_order=settings.MAX_TICKETS_PER_ORDER
            )

        return list(merged.items())

    def _load_ticket_types(self, event_id: str, selections: List[Tuple[str, int]]) -> Dict[str, TicketType]:
        ids = [ticket_type_id for ticket_type_id, _ in selections]
        found = {
            ticket_type.id: ticket_type
            for ticket_type in self.db.query(TicketType).filter(TicketType.id.in_(ids)).all()
        }

        for ticket_type_id, quantity in selections:
            ticket_type = found.get(ticket_type_id)
            if not ticket_type or ticket_type.event_id != event_id:
                raise TicketTypeNotFoundError(ticket_type_id)
            if ticket_type.max_per_order is not None and quantity > ticket_type.max_per_order:
                raise InvalidCartError(
                    f"At most {ticket_type.max_per_order} of {ticket_type.name} per order",
                    ticket_type_id=ticket_type_id,
                    requested=quantity,
                    max_per_order=ticket_type.max_per_order
                )
        return found

    def _find_session(self, booking_id: str, method: PaymentMethod) -> Optional[PaymentSession]:
        return self.db.query(PaymentSession).filter(
            PaymentSession.booking_id == booking_id,
            PaymentSession.method == method.value
        ).first()

    def _latest_session(self, booking: Booking) -> PaymentSession:
        session = self.db.query(PaymentSession).filter(
            PaymentSession.booking_id == booking.id
        ).order_by(PaymentSession.created_at.desc(), PaymentSession.id).first()
        if not session:
            raise InvalidTransitionError(booking.id, booking.status, "check payment before requesting one")
        return session

    def _record_session_outcome(self, session: PaymentSession, outcome: PaymentOutcome) -> None:
        if session.status == outcome.value:
            return
        session.status = outcome.value
        self.db.commit()

    def _generate_reference(self) -> str:
        """Human-readable booking reference such as EVT3FA9C21B"""
        while True:
            reference = f"{settings.BOOKING_REFERENCE_PREFIX}{secrets.token_hex(4).upper()}"
            exists = self.db.query(Booking.id).filter(Booking.reference == reference).first()
            if not exists:
                return reference
