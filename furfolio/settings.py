from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "furfolio-metrics"
    app_env: Literal["dev", "prod"] = Field("prod")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field("INFO")
    metrics_enabled: bool = Field(False)
    default_timezone: str = Field("UTC")
    engagement_retention_risk_days: int = Field(60)
    engagement_inactive_days: int = Field(180)
    engagement_new_client_days: int = Field(14)
    engagement_top_spender_percentile: float = Field(0.9)
    engagement_top_spender_min_cents: int | None = Field(None)
    engagement_strict_grouping: bool = Field(False)
    loyalty_visits_per_reward: int = Field(5)
    loyalty_silver_min_cents: int = Field(50_000)
    loyalty_gold_min_cents: int = Field(200_000)
    loyalty_platinum_min_cents: int = Field(500_000)
    revenue_average_window_days: int = Field(7)
    revenue_growth_window_days: int = Field(30)
    revenue_daily_series_days: int = Field(30)
    utilization_capacity_hours: float = Field(8.0)
    dashboard_top_clients_limit: int = Field(3)
    dashboard_include_no_history: bool = Field(False)

    model_config = SettingsConfigDict(env_file=".env", env_prefix="FURFOLIO_")

    @field_validator(
        "engagement_retention_risk_days",
        "engagement_inactive_days",
        "engagement_new_client_days",
        "loyalty_visits_per_reward",
        "revenue_average_window_days",
        "revenue_growth_window_days",
        "revenue_daily_series_days",
    )
    @classmethod
    def validate_positive_days(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("day and visit thresholds must be positive")
        return value

    @field_validator("engagement_top_spender_percentile")
    @classmethod
    def validate_percentile(cls, value: float) -> float:
        if value <= 0 or value >= 1:
            raise ValueError("engagement_top_spender_percentile must be between 0 and 1 (exclusive)")
        return value

    @field_validator("engagement_top_spender_min_cents")
    @classmethod
    def validate_top_spender_threshold(cls, value: int | None) -> int | None:
        if value is not None and value <= 0:
            raise ValueError("engagement_top_spender_min_cents must be positive when set")
        return value

    @field_validator("utilization_capacity_hours")
    @classmethod
    def validate_capacity(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("utilization_capacity_hours must be positive")
        return value

    @field_validator("dashboard_top_clients_limit")
    @classmethod
    def validate_top_clients_limit(cls, value: int) -> int:
        if value < 0:
            raise ValueError("dashboard_top_clients_limit must not be negative")
        return value

    @field_validator("default_timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @model_validator(mode="after")
    def validate_thresholds(self) -> "Settings":
        if self.engagement_inactive_days < self.engagement_retention_risk_days:
            raise ValueError(
                "engagement_inactive_days must not be shorter than engagement_retention_risk_days"
            )
        if not (
            0 < self.loyalty_silver_min_cents < self.loyalty_gold_min_cents < self.loyalty_platinum_min_cents
        ):
            raise ValueError("loyalty tier thresholds must be positive and strictly increasing")
        return self

    @property
    def utilization_capacity_seconds(self) -> int:
        return int(self.utilization_capacity_hours * 3600)

    @property
    def timezone(self) -> ZoneInfo:
        return ZoneInfo(self.default_timezone)


settings = Settings()
