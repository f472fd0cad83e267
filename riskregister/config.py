"""
Risk Register Configuration.

Pydantic Settings v2: loads from .env, environment variables.
"""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────────────────
    app_name: str = "Risk Register Engine"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # ── API ───────────────────────────────────────────────────────────────
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8001, alias="API_PORT")
    api_prefix: str = "/api/v1"
    allowed_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        alias="CORS_ORIGINS",
    )

    # ── Database ─────────────────────────────────────────────────────────
    database_url: str = Field(
        default="sqlite+aiosqlite:///./riskregister.db",
        alias="DATABASE_URL",
    )
    db_pool_size: int = Field(default=10, alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=20, alias="DB_MAX_OVERFLOW")
    db_pool_recycle: int = Field(default=3600, alias="DB_POOL_RECYCLE")

    # ── Identifier Generator ─────────────────────────────────────────────
    code_max_retries: int = Field(default=5, alias="CODE_MAX_RETRIES")
    code_pad_width: int = Field(default=3, alias="CODE_PAD_WIDTH")

    # ── Risk Scales ──────────────────────────────────────────────────────
    default_likelihood_scale: int = Field(default=5, alias="DEFAULT_LIKELIHOOD_SCALE")
    default_impact_scale: int = Field(default=5, alias="DEFAULT_IMPACT_SCALE")

    # Residual level bands (score = likelihood x impact)
    level_extreme_min: int = Field(default=15, alias="LEVEL_EXTREME_MIN")
    level_high_min: int = Field(default=10, alias="LEVEL_HIGH_MIN")
    level_medium_min: int = Field(default=5, alias="LEVEL_MEDIUM_MIN")

    # ── Tolerance ────────────────────────────────────────────────────────
    tolerance_stale_after_days: int = Field(default=90, alias="TOLERANCE_STALE_AFTER_DAYS")
    directional_warning_fraction: float = Field(
        default=0.5, alias="DIRECTIONAL_WARNING_FRACTION",
        description="Share of the allowed change at which a directional metric turns amber",
    )
    max_exception_days: int = Field(default=365, alias="MAX_EXCEPTION_DAYS")

    # ── Period Archiver ──────────────────────────────────────────────────
    period_commit_timeout_seconds: float = Field(default=60.0, alias="PERIOD_COMMIT_TIMEOUT_SECONDS")

    # ── Operational ────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")
    health_check_timeout_seconds: int = Field(default=5, alias="HEALTH_CHECK_TIMEOUT_SECONDS")

    @property
    def async_database_url(self) -> str:
        """Ensure the database URL uses an async driver."""
        url = self.database_url
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url.startswith("sqlite://"):
            url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return url

    @property
    def is_sqlite(self) -> bool:
        return self.async_database_url.startswith("sqlite")


settings = Settings()
