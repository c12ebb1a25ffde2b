# backend/shipsarthi/core/settings.py
"""
Shipsarthi - Configuration Management with pydantic-settings

- Loads from environment and root .env
- Validates and normalizes values
- Cached singleton via get_settings()
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# backend/shipsarthi/core/settings.py -> <repo>/.env
_ENV_FILE = Path(__file__).resolve().parent.parent.parent.parent / ".env"

DELHIVERY_BASE_URLS = {
    "production": "https://track.delhivery.com",
    "staging": "https://staging-express.delhivery.com",
}


class Settings(BaseSettings):
    """
    Application settings with validation.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===================
    # Application Settings
    # ===================
    PROJECT_NAME: str = "Shipsarthi"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    ENVIRONMENT: str = Field(default="development", description="Deployment environment")

    ALLOWED_ORIGINS: List[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
        description="Allowed CORS origins",
    )

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # ===================
    # Database Settings
    # ===================
    DB_HOST: str = Field(default="localhost", description="PostgreSQL host")
    DB_PORT: int = Field(default=5432, description="PostgreSQL port")
    DB_NAME: str = Field(default="shipsarthi", description="Database name")
    DB_USER: str = Field(default="postgres", description="Database user")
    DB_PASSWORD: str = Field(default="postgres", description="Database password")
    DATABASE_URL: Optional[str] = Field(
        default=None, description="Full database URL (overrides DB_* settings)"
    )

    @property
    def database_url(self) -> str:
        """Build PostgreSQL database URL from components or use explicit URL."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    # ===================
    # Delhivery
    # ===================
    DELHIVERY_API_TOKEN: Optional[str] = Field(default=None, description="Delhivery API token")
    DELHIVERY_ENVIRONMENT: str = Field(
        default="staging", description="Delhivery environment (production or staging)"
    )
    DELHIVERY_BASE_URL: Optional[str] = Field(
        default=None, description="Override the Delhivery base URL"
    )
    DELHIVERY_TIMEOUT_SECONDS: float = Field(default=30.0, description="Per-request timeout")
    DELHIVERY_PICKUP_LOCATION: str = Field(
        default="Default Pickup", description="Registered pickup location name"
    )

    @field_validator("DELHIVERY_ENVIRONMENT")
    @classmethod
    def validate_delhivery_environment(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in DELHIVERY_BASE_URLS:
            raise ValueError(
                f"DELHIVERY_ENVIRONMENT must be one of {sorted(DELHIVERY_BASE_URLS)}"
            )
        return v

    @property
    def delhivery_base_url(self) -> str:
        if self.DELHIVERY_BASE_URL:
            return self.DELHIVERY_BASE_URL.rstrip("/")
        return DELHIVERY_BASE_URLS[self.DELHIVERY_ENVIRONMENT]

    # ===================
    # Tracking Reconciler
    # ===================
    TRACKING_ENABLED: bool = Field(default=True, description="Run the scheduled reconciler")
    TRACKING_INTERVAL_MINUTES: int = Field(default=5, ge=1, description="Minutes between passes")
    TRACKING_REQUEST_DELAY_SECONDS: float = Field(
        default=0.5, ge=0, description="Pause between carrier calls within a pass"
    )
    TRACKING_FAILURE_LOG_SIZE: int = Field(default=10, ge=1, description="Failures kept per record")
    TRACKING_TIMEZONE: str = Field(default="Asia/Kolkata", description="Scheduler timezone")

    # ===================
    # Webhook Queue
    # ===================
    WEBHOOK_QUEUE_MAX_SIZE: int = Field(default=10000, ge=1)
    WEBHOOK_MAX_RETRIES: int = Field(default=3, ge=0)
    WEBHOOK_RETRY_DELAY_SECONDS: float = Field(default=1.0, ge=0)
    WEBHOOK_JOB_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)
    WEBHOOK_MAX_IMAGE_MB: int = Field(default=10, ge=1, description="Max decoded image size")

    # ===================
    # Rate Cards
    # ===================
    RATE_CARD_CACHE_TTL_SECONDS: int = Field(default=300, ge=0)

    # ===================
    # Document Storage
    # ===================
    DOCUMENT_STORAGE_DIR: str = Field(default="./uploads/documents", description="Image root")
    DOCUMENT_BASE_URL: str = Field(
        default="/media/documents", description="Public URL prefix for stored images"
    )

    # ===================
    # Logging
    # ===================
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(default="json", description="Log format (json or text)")
    LOG_FILE: Optional[str] = Field(default=None, description="Optional log file path")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("json", "text"):
            raise ValueError("LOG_FORMAT must be 'json' or 'text'")
        return v

    # ===================
    # Observability / Rate limiting
    # ===================
    SENTRY_DSN: Optional[str] = Field(default=None, description="Sentry DSN (disabled if unset)")
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.1, ge=0, le=1)
    RATE_LIMIT_ADMIN: str = Field(
        default="10/minute", description="Limit for manual reconciliation triggers"
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
