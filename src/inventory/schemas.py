from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime
from decimal import Decimal

class TicketTypeCreate(BaseModel):
    """Organizer request to add a ticket type to an event"""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    unit_price: Decimal = Field(Decimal("0"), ge=0)
    currency: str = Field("INR", min_length=3, max_length=3)
    total_quantity: Optional[int] = Field(None, ge=0, description="Leave empty for unlimited")
    max_per_order: Optional[int] = Field(None, ge=1)
    on_sale: bool = True

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v):
        return v.upper()

class TicketTypeResponse(BaseModel):
    id: str
    event_id: str
    name: str
    description: Optional[str] = None
    unit_price: Decimal
    currency: str
    total_quantity: Optional[int] = None
    quantity_sold: int
    quantity_held: int
    available: Optional[int] = None
    max_per_order: Optional[int] = None
    on_sale: bool
    created_at: datetime

    class Config:
        from_attributes = True

class OnSaleUpdate(BaseModel):
    on_sale: bool

class AvailabilityResponse(BaseModel):
    ticket_type_id: str
    total_quantity: Optional[int] = None
    sold: int
    held: int
    available: Optional[int] = None
    unlimited: bool

class SweepResult(BaseModel):
    expired_bookings: int
    released_holds: int
    ran_at: datetime
