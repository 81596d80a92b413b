import logging
from typing import List, Optional
from datetime import datetime
from sqlalchemy.orm import Session

from src.errors import TicketTypeNotFoundError
from src.inventory.ledger import InventoryLedger
from src.models import TicketType
from src.inventory.schemas import TicketTypeCreate, AvailabilityResponse

logger = logging.getLogger(__name__)


class TicketTypeService:
    """Organizer-side management of ticket types"""

    def __init__(self, db: Session):
        self.db = db
        self.ledger = InventoryLedger(db)

    def create_ticket_type(self, event_id: str, request: TicketTypeCreate) -> TicketType:
        ticket_type = TicketType(
            event_id=event_id,
            name=request.name,
            description=request.description,
            unit_price=request.unit_price,
            currency=request.currency,
            total_quantity=request.total_quantity,
            max_per_order=request.max_per_order,
            on_sale=request.on_sale,
            quantity_sold=0,
            quantity_held=0
        )
        self.db.add(ticket_type)
        self.db.commit()
        self.db.refresh(ticket_type)

        logger.info("Created ticket type %s (%s) for event %s", ticket_type.id, ticket_type.name, event_id)
        return ticket_type

    def get_ticket_type(self, ticket_type_id: str) -> TicketType:
        ticket_type = self.db.query(TicketType).filter(TicketType.id == ticket_type_id).first()
        if not ticket_type:
            raise TicketTypeNotFoundError(ticket_type_id)
        return ticket_type

    def list_ticket_types(self, event_id: str, include_inactive: bool = False) -> List[TicketType]:
        query = self.db.query(TicketType).filter(TicketType.event_id == event_id)
        if not include_inactive:
            query = query.filter(TicketType.on_sale.is_(True))
        ticket_types = query.order_by(TicketType.unit_price, TicketType.created_at).all()

        if ticket_types and self.ledger.expire_stale(ticket_type_ids=[t.id for t in ticket_types]):
            self.db.commit()
        return ticket_types

    def set_on_sale(self, ticket_type_id: str, on_sale: bool) -> TicketType:
        """Ticket types are disabled, never deleted, once tickets exist"""
        ticket_type = self.get_ticket_type(ticket_type_id)
        ticket_type.on_sale = on_sale
        self.db.commit()
        self.db.refresh(ticket_type)

        logger.info("Ticket type %s on_sale=%s", ticket_type_id, on_sale)
        return ticket_type

    def get_availability(self, ticket_type_id: str, now: Optional[datetime] = None) -> AvailabilityResponse:
        """Counters after releasing the ticket type's lapsed holds"""
        available = self.ledger.available(ticket_type_id, now=now)
        self.db.commit()

        ticket_type = self.get_ticket_type(ticket_type_id)
        return AvailabilityResponse(
            ticket_type_id=ticket_type.id,
            total_quantity=ticket_type.total_quantity,
            sold=ticket_type.quantity_sold,
            held=ticket_type.quantity_held,
            available=available,
            unlimited=ticket_type.total_quantity is None
        )
