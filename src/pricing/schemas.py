from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

class PricedLineItem(BaseModel):
    """One ticket type and quantity with its computed line total"""
    ticket_type_id: str
    name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal

class OrderSummary(BaseModel):
    """Result of pricing a cart"""
    currency: str
    line_items: List[PricedLineItem]
    ticket_count: int
    subtotal: Decimal
    fees: Decimal
    discount_percent: Decimal
    discount_amount: Decimal
    total: Decimal

    @property
    def is_free(self) -> bool:
        return self.total == 0

# Coupon Models
class CouponCreate(BaseModel):
    """Organizer request to create a discount coupon"""
    code: str = Field(..., min_length=3, max_length=40)
    event_id: Optional[str] = None
    discount_percent: Decimal = Field(..., ge=0, le=100)
    max_redemptions: Optional[int] = Field(None, ge=1)

class CouponResponse(BaseModel):
    id: int
    code: str
    event_id: Optional[str] = None
    discount_percent: Decimal
    active: bool
    max_redemptions: Optional[int] = None
    times_redeemed: int
    created_at: datetime

    class Config:
        from_attributes = True
