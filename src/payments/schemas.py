from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
from datetime import datetime
from decimal import Decimal

from src.payments.gateway import PaymentMethod, PaymentOutcome

class PaymentRequest(BaseModel):
    """Buyer's choice of payment backend for a pending booking"""
    method: PaymentMethod

class PaymentSessionResponse(BaseModel):
    """Reference the client uses to complete payment with the provider"""
    booking_id: str
    method: PaymentMethod
    session_ref: str
    redirect_url: Optional[str] = None
    amount: Decimal
    currency: str
    requires_manual_confirmation: bool = False
    created_at: datetime

class PaymentCallback(BaseModel):
    """Outcome delivered by a provider webhook or the payment return page"""
    outcome: PaymentOutcome
    session_ref: Optional[str] = None
    provider_payload: Dict[str, Any] = Field(default_factory=dict)
