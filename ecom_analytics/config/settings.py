"""
E-Commerce Warehouse Analytics
Centralized Configuration Management

Pydantic settings with environment variable support for the load and
analytics phases: coercion formats, dedup tie-breaks, tier thresholds,
trend windows and alerting.
"""

from datetime import datetime
from functools import lru_cache
from typing import Dict, List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnalyticsSettings(BaseSettings):
    """Trend, RFM and alerting configuration"""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_")

    as_of: Optional[datetime] = Field(
        default=None,
        description="Reference instant for recency; current time when unset",
    )
    rolling_window: int = Field(default=3, ge=1, description="Rolling window width in periods")
    shipping_alert_threshold: float = Field(
        default=10.0,
        description="Rolling shipping days strictly above this raise an alert",
    )
    zero_growth_policy: Literal["null", "raise"] = Field(
        default="null",
        description="Growth percentage when the previous period is zero",
    )
    datetime_formats: List[str] = Field(
        default=[
            "%Y-%m-%d %H:%M:%S",
            "%Y-%m-%dT%H:%M:%S",
            "%Y-%m-%d %H:%M",
            "%Y-%m-%d",
            "%d/%m/%Y %H:%M:%S",
            "%d/%m/%Y %H:%M",
            "%d/%m/%Y",
        ],
        description="Accepted raw timestamp formats, tried in order",
    )
    max_workers: int = Field(default=4, ge=1, description="Parallel entity normalization workers")


class TierSettings(BaseSettings):
    """Tier classification thresholds"""

    model_config = SettingsConfigDict(env_prefix="TIER_")

    # Fixed thresholds
    shipping_fast_days: float = Field(default=5, description="Fast shipping upper bound")
    shipping_moderate_days: float = Field(default=10, description="Moderate shipping upper bound")
    review_excellent: float = Field(default=4.5, description="Excellent review lower bound")
    review_good: float = Field(default=3.5, description="Good review lower bound")
    category_shipping_fast_days: float = Field(default=7, description="Category fast shipping bound")
    category_shipping_moderate_days: float = Field(default=10, description="Category moderate shipping bound")
    price_cheap: float = Field(default=70, description="Cheap price upper bound")
    price_moderate: float = Field(default=110, description="Moderate price upper bound")

    # RFM
    monetary_high: float = Field(default=1000, description="High monetary lower bound")
    monetary_medium: float = Field(default=500, description="Medium monetary lower bound")
    frequency_high: float = Field(default=20, description="High frequency lower bound")
    frequency_medium: float = Field(default=10, description="Medium frequency lower bound")
    recency_high_days: float = Field(default=30, description="High recency upper bound")
    recency_medium_days: float = Field(default=90, description="Medium recency upper bound")

    # Relative (batch mean multipliers)
    relative_high_multiplier: float = Field(default=1.5, description="High tier mean multiplier")
    relative_moderate_multiplier: float = Field(default=1.0, description="Moderate tier mean multiplier")
    satisfaction_excellent_multiplier: float = Field(default=1.1, description="Excellent satisfaction multiplier")
    shipping_fast_multiplier: float = Field(default=0.9, description="Fast shipping mean multiplier")


class DedupSettings(BaseSettings):
    """Deduplication tie-break strategy per entity"""

    model_config = SettingsConfigDict(env_prefix="DEDUP_")

    strategies: Dict[str, str] = Field(
        default={
            "review": "latest_answer",
            "geolocation": "city_ascending",
        },
        description="Entity type to tie-break strategy; others use canonical_order",
    )
    default_strategy: str = Field(default="canonical_order", description="Fallback tie-break")


class DataLakeSettings(BaseSettings):
    """Data Lake Storage Configuration"""

    model_config = SettingsConfigDict(env_prefix="DATA_")

    raw_path: str = Field(default="./data/raw", description="Raw data zone path")
    curated_path: str = Field(default="./data/curated", description="Curated zone path")
    null_values: List[str] = Field(
        default=["", "NULL", "null", "None"],
        description="Raw strings read as missing",
    )
    raw_files: Dict[str, str] = Field(
        default={
            "customer": "olist_customers_dataset.csv",
            "order": "olist_orders_dataset.csv",
            "product": "olist_products_dataset.csv",
            "seller": "olist_sellers_dataset.csv",
            "category_translation": "product_category_name_translation.csv",
            "geolocation": "olist_geolocation_dataset.csv",
            "order_item": "olist_order_items_dataset.csv",
            "payment": "olist_order_payments_dataset.csv",
            "review": "olist_order_reviews_dataset.csv",
        },
        description="Raw file name per entity type",
    )


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")


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

    app_name: str = Field(default="ecom-analytics", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")
    version: str = Field(default="1.0.0", description="Application version")

    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
    tiers: TierSettings = Field(default_factory=TierSettings)
    dedup: DedupSettings = Field(default_factory=DedupSettings)
    data_lake: DataLakeSettings = Field(default_factory=DataLakeSettings)
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
        return self.app_env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
