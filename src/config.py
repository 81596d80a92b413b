from pydantic_settings import BaseSettings
from decimal import Decimal
from typing import Optional

class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./ticketing.db"
    DB_ECHO: bool = False

    # Application
    PROJECT_NAME: str = "Event Ticketing System"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Booking rules
    HOLD_TTL_MINUTES: int = 15
    MAX_TICKETS_PER_ORDER: int = 10
    BOOKING_REFERENCE_PREFIX: str = "EVT"

    # Pricing
    SERVICE_FEE_RATE: Decimal = Decimal("0.03")
    MINIMUM_FEE: Decimal = Decimal("20.00")
    DEFAULT_CURRENCY: str = "INR"

    # Background expiry sweep
    ENABLE_EXPIRY_SWEEPER: bool = True
    EXPIRY_SWEEP_INTERVAL_SECONDS: int = 60

    # Payment providers
    PAYMENT_RETURN_URL: str = "http://localhost:5173/payment/response"
    PAYMENT_HTTP_TIMEOUT: float = 10.0
    CASHFREE_BASE_URL: str = "https://sandbox.cashfree.com/pg"
    CASHFREE_APP_ID: Optional[str] = None
    CASHFREE_SECRET_KEY: Optional[str] = None
    CASHFREE_API_VERSION: str = "2023-08-01"
    PHONEPE_BASE_URL: str = "https://api-preprod.phonepe.com/apis/pg-sandbox"
    PHONEPE_MERCHANT_ID: Optional[str] = None
    PHONEPE_SALT_KEY: Optional[str] = None
    PHONEPE_SALT_INDEX: int = 1
    UPI_VPA: str = "events@upi"
    UPI_PAYEE_NAME: str = "Event Ticketing"

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
