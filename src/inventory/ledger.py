import logging
from typing import Iterable, Optional
from datetime import datetime, timedelta
from sqlalchemy import or_
from sqlalchemy.orm import Session

from src.errors import HoldNotFoundError, InsufficientInventoryError, TicketTypeNotFoundError
from src.models import InventoryHold, TicketType, utcnow

logger = logging.getLogger(__name__)


class InventoryLedger:
    """Tracks sold and held quantity per ticket type.

    Every check-and-reserve is one conditional UPDATE on the ticket type
    row, taken after a row lock where the database supports ``FOR UPDATE``.
    Concurrent holds on the same ticket type therefore serialize on that
    row only; other ticket types and events are never blocked.

    The ledger flushes but never commits. The calling service owns the
    transaction so counters and hold rows become visible together.
    """

    def __init__(self, db: Session):
        self.db = db

    def hold(
        self,
        ticket_type_id: str,
        quantity: int,
        booking_id: str,
        ttl: timedelta,
        now: Optional[datetime] = None
    ) -> str:
        """Reserve quantity for a booking and return the hold token"""

        if quantity <= 0:
            raise ValueError("Hold quantity must be positive")

        now = now or utcnow()
        ticket_type = self._get_ticket_type(ticket_type_id, for_update=True)
        if not ticket_type:
            raise TicketTypeNotFoundError(ticket_type_id)

        if not ticket_type.on_sale:
            raise InsufficientInventoryError(ticket_type_id, quantity, 0)

        # Only active holds count against availability
        self.expire_stale(now, ticket_type_ids=[ticket_type_id])

        updated = self.db.query(TicketType).filter(
            TicketType.id == ticket_type_id,
            TicketType.on_sale.is_(True),
            or_(
                TicketType.total_quantity.is_(None),
                TicketType.quantity_sold + TicketType.quantity_held + quantity <= TicketType.total_quantity
            )
        ).update(
            {TicketType.quantity_held: TicketType.quantity_held + quantity},
            synchronize_session=False
        )

        if not updated:
            self.db.refresh(ticket_type)
            available = max(ticket_type.available or 0, 0)
            logger.info(
                "Hold refused for ticket type %s: requested %s, available %s",
                ticket_type_id, quantity, available
            )
            raise InsufficientInventoryError(ticket_type_id, quantity, available)

        self.db.expire(ticket_type)

        hold = InventoryHold(
            ticket_type_id=ticket_type_id,
            booking_id=booking_id,
            quantity=quantity,
            expires_at=now + ttl,
            created_at=now
        )
        self.db.add(hold)
        self.db.flush()

        logger.info(
            "Held %s of ticket type %s for booking %s until %s",
            quantity, ticket_type_id, booking_id, hold.expires_at.isoformat()
        )
        return hold.id

    def commit(self, hold_token: str, now: Optional[datetime] = None) -> int:
        """Turn a hold into a permanent sale and return the quantity sold"""

        hold = self.db.query(InventoryHold).filter(InventoryHold.id == hold_token).first()
        if not hold:
            raise HoldNotFoundError(hold_token)

        now = now or utcnow()
        if hold.expires_at < now:
            self._delete_hold(hold)
            raise HoldNotFoundError(hold_token)

        ticket_type_id = hold.ticket_type_id
        quantity = hold.quantity

        # Deleting the hold row is the claim; only one caller can move the counters
        if not self._claim(hold):
            raise HoldNotFoundError(hold_token)

        self.db.query(TicketType).filter(TicketType.id == ticket_type_id).update(
            {
                TicketType.quantity_sold: TicketType.quantity_sold + quantity,
                TicketType.quantity_held: TicketType.quantity_held - quantity
            },
            synchronize_session=False
        )
        self._expire_cached(ticket_type_id)
        self.db.flush()

        logger.info("Committed hold %s: %s of ticket type %s sold", hold_token, quantity, ticket_type_id)
        return quantity

    def release(self, hold_token: Optional[str]) -> bool:
        """Return held quantity to the pool; missing holds are ignored"""

        if not hold_token:
            return False

        hold = self.db.query(InventoryHold).filter(InventoryHold.id == hold_token).first()
        if not hold:
            return False

        released = self._delete_hold(hold)
        if released:
            logger.info("Released hold %s for booking %s", hold_token, hold.booking_id)
        return released

    def expire_stale(
        self,
        now: Optional[datetime] = None,
        ticket_type_ids: Optional[Iterable[str]] = None
    ) -> int:
        """Release every hold whose TTL has lapsed, optionally for some ticket types only"""

        now = now or utcnow()
        query = self.db.query(InventoryHold).filter(InventoryHold.expires_at < now)
        if ticket_type_ids is not None:
            query = query.filter(InventoryHold.ticket_type_id.in_(list(ticket_type_ids)))

        released = 0
        for hold in query.all():
            if self._delete_hold(hold):
                released += 1

        if released:
            logger.info("Expired %s stale inventory hold(s)", released)
        return released

    def available(self, ticket_type_id: str, now: Optional[datetime] = None) -> Optional[int]:
        """Quantity still purchasable; None for unlimited ticket types.

        Lapsed holds of the ticket type are released first, so the caller
        should commit afterwards.
        """

        ticket_type = self._get_ticket_type(ticket_type_id)
        if not ticket_type:
            raise TicketTypeNotFoundError(ticket_type_id)
        if self.expire_stale(now, ticket_type_ids=[ticket_type_id]):
            ticket_type = self._get_ticket_type(ticket_type_id)
        return ticket_type.available

    def active_held(self, ticket_type_id: str, now: Optional[datetime] = None) -> int:
        """Sum of holds that have not yet lapsed"""

        now = now or utcnow()
        holds = self.db.query(InventoryHold).filter(
            InventoryHold.ticket_type_id == ticket_type_id,
            InventoryHold.expires_at >= now
        ).all()
        return sum(hold.quantity for hold in holds)

    def _delete_hold(self, hold: InventoryHold) -> bool:
        ticket_type_id = hold.ticket_type_id
        quantity = hold.quantity

        if not self._claim(hold):
            return False

        self.db.query(TicketType).filter(TicketType.id == ticket_type_id).update(
            {TicketType.quantity_held: TicketType.quantity_held - quantity},
            synchronize_session=False
        )
        self._expire_cached(ticket_type_id)
        self.db.flush()
        return True

    def _claim(self, hold: InventoryHold) -> bool:
        deleted = self.db.query(InventoryHold).filter(
            InventoryHold.id == hold.id
        ).delete(synchronize_session=False)
        self.db.expunge(hold)
        return deleted == 1

    def _get_ticket_type(self, ticket_type_id: str, for_update: bool = False) -> Optional[TicketType]:
        query = self.db.query(TicketType).filter(TicketType.id == ticket_type_id).populate_existing()
        if for_update:
            query = query.with_for_update()
        return query.first()

    def _expire_cached(self, ticket_type_id: str):
        cached = self.db.identity_map.get(self.db.identity_key(TicketType, ticket_type_id))
        if cached is not None:
            self.db.expire(cached)
