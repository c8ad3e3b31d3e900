"""Application configuration."""

import os

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Budgetly"
    APP_ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database - Credentials must come from environment
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "budgetly"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "budgetly"

    # Database pool configuration
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 40
    DB_POOL_RECYCLE: int = 3600

    @property
    def DATABASE_URL(self) -> str:
        """Build async database URL. Uses DATABASE_URL env var if set."""
        external = os.environ.get("DATABASE_URL", "")
        if external:
            return external.replace("postgresql://", "postgresql+asyncpg://")
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # Redis
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379

    @property
    def REDIS_URL(self) -> str:
        """Build Redis URL. Uses REDIS_URL env var if set."""
        external = os.environ.get("REDIS_URL", "")
        if external:
            return external
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/0"

    # Goal ledger
    CURRENCY_MINOR_UNITS: int = 2
    LEDGER_MAX_RETRIES: int = 3
    LEDGER_RETRY_BACKOFF_SECONDS: float = 0.05
    GOAL_MILESTONE_STEP: int = 25  # percent
    GOAL_ON_TRACK_WINDOW_MONTHS: int = 3

    # Recurring transactions
    RECURRING_REMINDER_DAYS: int = 3
    CATCH_UP_LOCK_TIMEOUT_SECONDS: int = 300
    CATCH_UP_MAX_OCCURRENCES: int = 1000

    @field_validator("LEDGER_MAX_RETRIES", "CATCH_UP_MAX_OCCURRENCES")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("GOAL_MILESTONE_STEP")
    @classmethod
    def validate_milestone_step(cls, v: int) -> int:
        """Milestones are whole-percent steps below 100."""
        if v <= 0 or v > 100:
            raise ValueError("GOAL_MILESTONE_STEP must be in (0, 100]")
        return v

    @field_validator("CURRENCY_MINOR_UNITS")
    @classmethod
    def validate_minor_units(cls, v: int) -> int:
        if v < 0 or v > 8:
            raise ValueError("CURRENCY_MINOR_UNITS must be between 0 and 8")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
