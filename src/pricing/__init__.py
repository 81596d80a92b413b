"""
Pricing Module

Order totals for ticket carts: subtotal, service fee with a minimum,
percentage discount and total, rounded at the currency's minor unit.
Discounts come only from server-side coupons.
"""

from .router import router
from .service import PricingEngine, round_money
from .coupon_service import CouponService
from .schemas import OrderSummary, PricedLineItem, CouponCreate, CouponResponse

__all__ = [
    "router",
    "PricingEngine",
    "round_money",
    "CouponService",
    "OrderSummary",
    "PricedLineItem",
    "CouponCreate",
    "CouponResponse"
]
