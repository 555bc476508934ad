"""API configuration from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+asyncpg://aquaflow:aquaflow@db:5432/aquaflow"
    REDIS_URL: str = "redis://redis:6379/0"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["*"]

    # Auth
    JWT_SECRET: str = "changeme"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_DAYS: int = 30

    # OTP provider (mocked: fixed code unless blanked out)
    OTP_BACKEND: str = "redis"  # redis | memory
    OTP_FIXED_CODE: str = "123456"
    OTP_TTL_SECONDS: int = 300
    OTP_MAX_ATTEMPTS: int = 3
    OTP_RESEND_COOLDOWN_SECONDS: int = 60
    LOGIN_MAX_FAILURES: int = 5
    LOGIN_BLOCK_MINUTES: int = 30

    # Payment provider (mocked gateway)
    PAYMENT_SUCCESS_RATE: float = 0.90
    AUTO_DEBIT_SUCCESS_RATE: float = 0.95
    PAYMENT_GATEWAY_URL: str = "https://mock-gateway.com/pay"
    INVOICE_BASE_URL: str = "https://mock-storage.com/invoices"

    # Notification provider
    WHATSAPP_API_URL: str | None = None
    SMS_API_URL: str | None = None
    NOTIFICATION_API_KEY: str | None = None

    # Business rules
    BILLING_CYCLE_DAYS: int = 30
    ESTIMATED_DELIVERY_MINUTES: int = 30

    class Config:
        env_file = ".env"
        extra = "allow"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
