"""
Application configuration using Pydantic Settings
"""
from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import List, Optional, Union


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://localhost:5432/sorykpass"

    # Application
    APP_NAME: str = "SorykPass Checkout"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    APP_URL: str = "http://localhost:3000"  # Frontend, target of payment redirects
    API_URL: str = "http://localhost:8000"  # Public base URL of this service

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"

    # Seat locks
    SEAT_LOCK_TTL_SECONDS: int = 600  # 10 minutes to complete checkout
    SEAT_LOCK_KEY_PREFIX: str = "seatlock"
    MAX_SEATS_PER_CHECKOUT: int = 10

    # Pricing
    COMMISSION_RATE: float = 0.06
    DEFAULT_CURRENCY: str = "CLP"

    # Transbank Webpay Plus
    TRANSBANK_ENVIRONMENT: str = "integration"  # 'integration' or 'production'
    TRANSBANK_COMMERCE_CODE: Optional[str] = None
    TRANSBANK_API_KEY: Optional[str] = None
    TRANSBANK_TIMEOUT_SECONDS: float = 15.0
    GATEWAY_RETURN_SETTLE_WAIT_SECONDS: float = 3.0  # wait for a concurrent delivery of the same callback

    # Background Workers
    EXPIRY_WORKER_ENABLED: bool = False
    EXPIRY_CHECK_INTERVAL_SECONDS: int = 60
    ORDER_PENDING_TIMEOUT_MINUTES: int = 30

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    LOG_FILE: Optional[str] = None

    # CORS
    CORS_ORIGINS: Union[List[str], str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(',')]
        return v

    @field_validator('COMMISSION_RATE')
    @classmethod
    def check_commission_rate(cls, v):
        if v < 0 or v >= 1:
            raise ValueError("COMMISSION_RATE must be in [0, 1)")
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'
        case_sensitive = True
        extra = 'ignore'


# Global settings instance
settings = Settings()
