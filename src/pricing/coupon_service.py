import logging
from typing import Optional
from decimal import Decimal
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.errors import InvalidCouponError
from src.models import Coupon
from src.pricing.schemas import CouponCreate

logger = logging.getLogger(__name__)


class CouponService:
    """Server-side discount codes; the buyer only ever submits a code"""

    def __init__(self, db: Session):
        self.db = db

    def create_coupon(self, request: CouponCreate) -> Coupon:
        coupon = Coupon(
            code=request.code.strip().upper(),
            event_id=request.event_id,
            discount_percent=request.discount_percent,
            max_redemptions=request.max_redemptions,
            active=True,
            times_redeemed=0
        )
        try:
            self.db.add(coupon)
            self.db.commit()
            self.db.refresh(coupon)
            return coupon
        except IntegrityError:
            self.db.rollback()
            raise ValueError("Coupon code already exists")

    def resolve(self, code: Optional[str], event_id: str) -> Decimal:
        """Return the discount percent a coupon grants for an event"""
        if not code:
            return Decimal("0")

        normalized = code.strip().upper()
        coupon = self.db.query(Coupon).filter(Coupon.code == normalized).first()

        if not coupon or not coupon.active:
            raise InvalidCouponError(normalized, "unknown or inactive code")
        if coupon.event_id is not None and coupon.event_id != event_id:
            raise InvalidCouponError(normalized, "not valid for this event")
        if coupon.max_redemptions is not None and coupon.times_redeemed >= coupon.max_redemptions:
            raise InvalidCouponError(normalized, "redemption limit reached")

        return Decimal(str(coupon.discount_percent))

    def redeem(self, code: str) -> bool:
        """Count one redemption; flushes but leaves the commit to the caller"""
        updated = self.db.query(Coupon).filter(
            Coupon.code == code,
            or_(Coupon.max_redemptions.is_(None), Coupon.times_redeemed < Coupon.max_redemptions)
        ).update(
            {Coupon.times_redeemed: Coupon.times_redeemed + 1},
            synchronize_session=False
        )
        if not updated:
            # The price was fixed at checkout, so an exhausted code does not block confirmation
            logger.warning("Coupon %s exhausted before redemption was recorded", code)
        return bool(updated)
