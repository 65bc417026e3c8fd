"""
Transaction Warehouse
Centralized Configuration Management

Pydantic settings with environment variable support, validation and type
safety. Every section can be overridden through the environment or a
local ``.env`` file.
"""

from datetime import datetime
from functools import lru_cache
from typing import Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Relational store configuration (PostgreSQL by default)"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_", populate_by_name=True)

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="transaction_warehouse", alias="POSTGRES_DB", description="Database name")
    user: str = Field(default="warehouse", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(
        default=None,
        alias="DATABASE_URL",
        description="Full SQLAlchemy URL (overrides host/port), e.g. sqlite+aiosqlite:///warehouse.db",
    )

    @property
    def async_url(self) -> str:
        """Async database URL, DATABASE_URL wins when set"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class EtlSettings(BaseSettings):
    """Batch load and validation configuration"""

    model_config = SettingsConfigDict(env_prefix="ETL_")

    batch_size: int = Field(default=10_000, gt=0, description="Records per unit of work")
    max_workers: int = Field(default=4, gt=0, description="Concurrent batch workers")
    retry_attempts: int = Field(default=2, ge=1, description="Attempts per batch on storage failure")
    retry_backoff_seconds: float = Field(default=1.0, ge=0, description="Initial retry backoff")

    # Source file
    delimiter: str = Field(default=",", description="Field delimiter of the raw file")
    encoding: str = Field(default="utf-8", description="Raw file encoding")

    # Accepted transaction timestamp window
    min_date: datetime = Field(default=datetime(2000, 1, 1), description="Earliest accepted timestamp")
    max_date: datetime = Field(default=datetime(2100, 1, 1), description="Latest accepted timestamp")

    refresh_after_load: bool = Field(default=True, description="Refresh aggregates after each load run")
    export_path: str = Field(default="./data/aggregates", description="Parquet export directory")

    @model_validator(mode="after")
    def validate_window(self) -> "EtlSettings":
        """The accepted date window must not be empty"""
        if self.min_date >= self.max_date:
            raise ValueError("ETL_MIN_DATE must be earlier than ETL_MAX_DATE")
        return self


class MonitoringSettings(BaseSettings):
    """Logging configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="transaction-warehouse", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    etl: EtlSettings = Field(default_factory=EtlSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
