"""
Inventory Module

Ticket types and the ledger that keeps them from being oversold:

- Ticket type setup and on-sale switching for organizers
- Time-limited holds taken during checkout
- Hold commit on payment, release on cancellation or expiry
- Availability per ticket type (unlimited types report None)
"""

from .router import router
from .ledger import InventoryLedger
from .service import TicketTypeService
from .schemas import (
    TicketTypeCreate, TicketTypeResponse, OnSaleUpdate, AvailabilityResponse, SweepResult
)

__all__ = [
    "router",
    "InventoryLedger",
    "TicketTypeService",
    "TicketTypeCreate",
    "TicketTypeResponse",
    "OnSaleUpdate",
    "AvailabilityResponse",
    "SweepResult"
]
