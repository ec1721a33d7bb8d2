import os
from decimal import Decimal
from functools import lru_cache

from pydantic import BaseModel


class Settings(BaseModel):
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "postgresql+asyncpg://tumble:tumble@db:5432/tumble",
    )
    DB_ECHO: bool = os.getenv("DB_ECHO", "false").lower() == "true"
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://redis:6379/0")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Billing
    CURRENCY: str = os.getenv("CURRENCY", "usd")
    TAX_RATE: Decimal = Decimal(os.getenv("TAX_RATE", "0.06"))  # flat, not per-address
    QUOTE_TTL_SECONDS: int = int(os.getenv("QUOTE_TTL_SECONDS", "900"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
