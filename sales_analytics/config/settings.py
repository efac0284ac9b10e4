"""
Sales Reconciliation & Analytics Engine
Engine Configuration

Business thresholds used by the derived-metric, dependency-risk and
drain-forecast stages live here so they can be tuned through environment
variables (or a .env file) instead of code changes.
"""

from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnalyticsSettings(BaseSettings):
    """Business policy constants for the analytics engine"""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_")

    # Dependency risk
    dependency_risk_threshold_percent: float = Field(
        default=60.0, ge=0, description="Top-N order share above which a distributor is high risk"
    )
    dependency_top_n: int = Field(default=3, ge=1, description="Retailers counted in the concentration share")

    # Drain forecast
    drain_window_days: int = Field(default=7, ge=1, description="Trailing window for average daily sales")
    drain_critical_days: int = Field(default=7, ge=0, description="Days left below which stock is critical")
    drain_low_days: int = Field(default=30, ge=0, description="Days left below which stock is low")

    # Inventory age
    inventory_old_days: int = Field(default=90, ge=0, description="Catalog age above which stock is old")
    inventory_moderate_days: int = Field(default=30, ge=0, description="Catalog age above which stock is moderate")

    # Product trend series
    trend_days: int = Field(default=30, ge=0, description="Horizon of the per-product daily trend")

    timezone: str = Field(default="UTC", description="Zone for naive timestamps and window boundaries")

    # Fallback bucket labels
    unbranded_label: str = Field(default="Unbranded")
    uncategorized_label: str = Field(default="Uncategorized")
    unknown_label: str = Field(default="Unknown")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject zone names missing from the IANA database"""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @model_validator(mode="after")
    def validate_bands(self) -> "AnalyticsSettings":
        """Band thresholds must be ordered"""
        if self.drain_low_days < self.drain_critical_days:
            raise ValueError("drain_low_days must be >= drain_critical_days")
        if self.inventory_old_days < self.inventory_moderate_days:
            raise ValueError("inventory_old_days must be >= inventory_moderate_days")
        return self

    @property
    def tzinfo(self) -> ZoneInfo:
        """Configured zone as a tzinfo instance"""
        return ZoneInfo(self.timezone)


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="", populate_by_name=True)

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")

    @field_validator("log_format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format value"""
        if v.lower() not in ("json", "text"):
            raise ValueError("Log format must be 'json' or 'text'")
        return v.lower()


class Settings(BaseSettings):
    """
    Main Application Settings

    Root settings object: application identity plus the analytics and
    monitoring sections, each loaded from its own environment prefix.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = Field(default="sales-analytics", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    version: str = Field(default="1.0.0", description="Application version")

    # Sections
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Normalize APP_ENV and reject unknown environments"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """True when APP_ENV is production"""
        return self.app_env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Return the process-wide Settings.

    Environment variables are read on the first call only; tests that
    change them must call get_settings.cache_clear().

    Returns:
        Settings: Shared settings instance
    """
    return Settings()
