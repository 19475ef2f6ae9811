from decimal import Decimal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "postgresql+asyncpg://buildledger:buildledger_dev@db:5432/buildledger"
    DATABASE_ECHO: bool = False

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"

    # Recompute
    RECOMPUTE_TIMEOUT_SECONDS: float = 10.0
    # Client-side cancel fires this long after the server-side statement timeout
    RECOMPUTE_CANCEL_GRACE_SECONDS: float = 2.0
    BACKFILL_BATCH_SIZE: int = 100

    # Ledger validation
    SPLIT_TOLERANCE: Decimal = Decimal("0.01")

    # Labor cushion
    DEFAULT_LABOR_ACTUAL_COST_RATE: Decimal | None = None

    # Margin warnings
    MARGIN_COST_DECREASE_WARN_PERCENT: Decimal = Decimal("5")
    MARGIN_COST_TO_CONTRACT_WARN_RATIO: Decimal = Decimal("0.95")
    QUOTE_COST_PRICE_WARN_RATIO: Decimal = Decimal("0.98")

    # App
    APP_ENV: str = "development"
    ALLOWED_ORIGINS: str = "*"
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
