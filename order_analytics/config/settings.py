"""
Store Order Analytics
Centralized Configuration Management

Configuration is loaded with Pydantic settings from environment variables
(and an optional ``.env`` file), validated and cached for the process.
"""

from functools import lru_cache
from typing import Optional, List
from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """SQL database backing the key-value store adapter"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="store_order_analytics", alias="database", description="Database name")
    user: str = Field(default="analytics", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(default=None, alias="DATABASE_URL", description="Database URL (overrides host/port)")

    @property
    def async_url(self) -> str:
        """DATABASE_URL when set (sqlite in development), else asyncpg from the parts"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class StoreSettings(BaseSettings):
    """Key-value store capability configuration"""

    model_config = SettingsConfigDict(env_prefix="STORE_")

    backend: str = Field(default="sql", description="Store backend: sql or memory")
    max_batch_size: int = Field(default=25, ge=1, description="Max items per batched put")
    batch_write_max_attempts: int = Field(default=5, ge=1, description="Attempts to drain unprocessed batch items")
    batch_write_backoff_ms: int = Field(default=50, ge=0, description="Base backoff between drain attempts")
    scan_page_size: int = Field(default=1000, ge=1, description="Items per scan page")

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Validate store backend"""
        allowed = ["sql", "memory"]
        if v.lower() not in allowed:
            raise ValueError(f"Store backend must be one of: {allowed}")
        return v.lower()


class IntakeSettings(BaseSettings):
    """Order intake configuration"""

    model_config = SettingsConfigDict(env_prefix="INTAKE_")

    max_concurrency: int = Field(default=8, ge=1, description="Concurrent dedup lookups per call")
    serialize_duplicate_keys: bool = Field(
        default=True,
        description="Resolve same-batch elements sharing a dedup key in list order",
    )


class AnalyticsSettings(BaseSettings):
    """Read-path configuration"""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_")

    active_window_days: int = Field(default=7, ge=1, description="Trailing window for the active-store metric")
    default_usage_days: int = Field(default=30, description="Default daily usage range")
    default_heatmap_days: int = Field(default=14, description="Default heatmap range")


class MonitoringSettings(BaseSettings):
    """Logging configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v.lower() not in ("json", "text"):
            raise ValueError("Log format must be json or text")
        return v.lower()


class Settings(BaseSettings):
    """
    Store Order Analytics settings.

    One section per component; each section reads its own prefixed
    environment variables, the top level reads the unprefixed ones.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="store-order-analytics", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Deployment environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="Bind host")
    api_port: int = Field(default=8000, alias="API_PORT", description="Bind port")
    version: str = Field(default="1.0.0", description="Reported API version")
    cors_origins: List[str] = Field(default=["*"], description="Origins allowed to call the API")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    intake: IntakeSettings = Field(default_factory=IntakeSettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        allowed = ("development", "staging", "production", "testing")
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {list(allowed)}")
        return v.lower()

    @model_validator(mode="after")
    def require_durable_store_in_production(self) -> "Settings":
        if self.app_env == "production" and self.store.backend == "memory":
            raise ValueError("STORE_BACKEND=memory is not allowed when APP_ENV=production")
        return self

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """Settings loaded once per process"""
    return Settings()
