"""
Pharmacy Synergy Engine
Centralized Configuration Management

Configuration for the relationship aggregation batch job and its query
service, loaded with Pydantic settings from environment variables and `.env`.
"""

from functools import lru_cache
from typing import Optional
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="pharmacy_league", alias="database", description="Database name")
    user: str = Field(default="league", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    url: Optional[str] = Field(default=None, description="Full SQLAlchemy URL (overrides host/port)")
    echo: bool = Field(default=False, description="Echo SQL queries")
    statement_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound for a single delete or insert during a snapshot write",
    )

    @property
    def async_url(self) -> str:
        """Async database URL for asyncpg"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")


class RelationshipSettings(BaseSettings):
    """Relationship aggregation and query tuning"""

    model_config = SettingsConfigDict(env_prefix="RELATIONSHIPS_")

    unmatched_sample_size: int = Field(
        default=3,
        ge=0,
        description="Unmatched names logged per entity kind for each run",
    )
    insert_error_log_limit: int = Field(
        default=3,
        ge=0,
        description="Failed inserts logged with full detail for each run",
    )
    default_top_limit: int = Field(
        default=10,
        gt=0,
        description="Default size of top-manufacturer rankings",
    )


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
    )

    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    relationships: RelationshipSettings = Field(default_factory=RelationshipSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
