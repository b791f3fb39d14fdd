"""
Application configuration using Pydantic Settings.
All configuration is loaded from environment variables.
"""
from decimal import Decimal
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineConfig(BaseModel):
    """
    Pricing tables and thresholds used by the calculation engine.

    Passed explicitly to every engine component so alternate tables can be
    used without touching process-wide state.
    """

    model_config = ConfigDict(frozen=True)

    # Heuristic compute estimate (n1-standard reference rates)
    base_vcpu_price: Decimal = Decimal("0.0475")
    base_memory_price: Decimal = Decimal("0.0063")

    # Per GB-month
    storage_fallback_prices: Dict[str, Decimal] = Field(default_factory=lambda: {
        "pd-standard": Decimal("0.04"),
        "pd-balanced": Decimal("0.10"),
        "pd-ssd": Decimal("0.17"),
    })
    default_disk_type: str = "pd-standard"

    # Per GPU-hour
    gpu_fallback_prices: Dict[str, Decimal] = Field(default_factory=lambda: {
        "nvidia-tesla-t4": Decimal("0.35"),
        "nvidia-tesla-p4": Decimal("0.60"),
        "nvidia-tesla-k80": Decimal("0.45"),
        "nvidia-tesla-p100": Decimal("1.46"),
        "nvidia-tesla-v100": Decimal("2.48"),
        "nvidia-tesla-a100": Decimal("2.93"),
    })
    default_gpu_price: Decimal = Decimal("0.35")

    external_ip_hourly_price: Decimal = Decimal("0.004")
    hours_per_month: Decimal = Decimal("730")

    # Discount percentages
    spot_discount_percent: int = 60
    cud_1_year_discount_percent: int = 25
    cud_3_year_discount_percent: int = 37

    # Sustained-use discount ladder
    sud_threshold_hours: int = 183
    sud_step_hours: int = 73
    sud_step_percent: int = 5
    sud_max_percent: int = 30

    # Catalog lifecycle
    retention_days: int = 90
    insert_batch_size: int = 1000

    calculation_version: str = "1.0"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_env: str = Field(default="development", alias="APP_ENV")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database
    database_url: str = Field(default="sqlite:///./gcp_boq.db", alias="DATABASE_URL")

    # Cloud Billing Catalog API
    billing_api_base: str = Field(
        default="https://cloudbilling.googleapis.com/v1",
        alias="BILLING_API_BASE"
    )
    billing_api_key: str = Field(default="", alias="BILLING_API_KEY")
    compute_engine_service_id: str = Field(default="6F81-5844-456A", alias="COMPUTE_ENGINE_SERVICE_ID")
    billing_page_size: int = Field(default=5000, alias="BILLING_PAGE_SIZE")
    billing_timeout_seconds: float = Field(default=60.0, alias="BILLING_TIMEOUT_SECONDS")

    # Pricing refresh
    pricing_update_enabled: bool = Field(default=True, alias="PRICING_UPDATE_ENABLED")
    pricing_update_schedule: str = Field(default="0 2 * * *", alias="PRICING_UPDATE_SCHEDULE")
    catalog_retention_days: int = Field(default=90, alias="CATALOG_RETENTION_DAYS")
    insert_batch_size: int = Field(default=1000, alias="INSERT_BATCH_SIZE")

    # CORS
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        alias="CORS_ORIGINS"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from comma-separated string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.app_env.lower() == "production"

    def engine_config(self) -> EngineConfig:
        """Build the engine configuration from environment overrides."""
        return EngineConfig(
            retention_days=self.catalog_retention_days,
            insert_batch_size=self.insert_batch_size,
        )


# Global settings instance
settings = Settings()
