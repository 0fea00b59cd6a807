from decimal import Decimal
from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production"] = "local"
    LOG_LEVEL: str = "INFO"
    SITE_TITLE: str = "SY Closeouts - B2B Wholesale Liquidation Marketplace"

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Auth
    AUTH_JWT_SECRET: str = "test-jwt-secret"
    AUTH_JWT_ALGORITHM: str = "HS256"

    # Marketplace pricing. The persisted "commission_rate" site setting wins
    # over this default once an admin has saved one.
    SERVICE_FEE_RATE: Decimal = Decimal("0.035")

    # Offers
    OFFER_REDEMPTION_HOURS: int = 24
    OFFER_MAX_COUNTER_ROUNDS: Optional[int] = None

    # Orders and payouts
    WIRE_PAYMENT_WINDOW_HOURS: int = 48
    SELLER_PAYOUT_DELAY_DAYS: int = 7
    LOW_STOCK_THRESHOLD: int = 10

    # Carrier tracking lookups (admin status sync)
    TRACKING_API_URL: str = "https://api.tracktry.com/v1/trackings/realtime"
    TRACKING_API_KEY: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+psycopg://", 1)
        return v

    @field_validator("SERVICE_FEE_RATE")
    @classmethod
    def validate_fee_rate(cls, v: Decimal) -> Decimal:
        if v < 0 or v >= 1:
            raise ValueError("SERVICE_FEE_RATE must be in [0, 1)")
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
