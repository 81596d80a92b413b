"""Translation of domain errors into HTTP responses.

Routers catch DomainError and re-raise through here so every endpoint
reports the same status for the same error code.
"""

from fastapi import HTTPException, status

from src.errors import DomainError, ErrorCode

STATUS_BY_CODE = {
    ErrorCode.INSUFFICIENT_INVENTORY: status.HTTP_409_CONFLICT,
    ErrorCode.CURRENCY_MISMATCH: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.HOLD_NOT_FOUND: status.HTTP_409_CONFLICT,
    ErrorCode.TICKET_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.ALREADY_CHECKED_IN: status.HTTP_409_CONFLICT,
    ErrorCode.PAYMENT_ADAPTER_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.BOOKING_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.TICKET_TYPE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.INVALID_CART: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_COUPON: status.HTTP_400_BAD_REQUEST,
}


def http_error(exc: DomainError) -> HTTPException:
    return HTTPException(
        status_code=STATUS_BY_CODE.get(exc.code, status.HTTP_400_BAD_REQUEST),
        detail=exc.to_dict(),
    )
