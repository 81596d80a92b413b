from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from src.database import get_db
from src.pricing.coupon_service import CouponService
from src.pricing.schemas import CouponCreate, CouponResponse

router = APIRouter()

@router.post("/coupons", response_model=CouponResponse, status_code=status.HTTP_201_CREATED)
def create_coupon(
    request: CouponCreate,
    db: Session = Depends(get_db)
):
    """Create a discount code, optionally limited to one event"""

    service = CouponService(db)

    try:
        return service.create_coupon(request)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e)
        )
