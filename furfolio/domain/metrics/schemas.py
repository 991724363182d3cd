from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from furfolio.domain.engagement.schemas import ClientStats, RetentionSummary
from furfolio.domain.revenue.schemas import GoalProgress, RevenuePoint, ServiceRevenueEntry
from furfolio.domain.service_frequency.schemas import ServiceFrequencyEntry
from furfolio.domain.utilization.schemas import UtilizationResult
from furfolio.settings import Settings


def _setting_default(name: str) -> Any:
    return Settings.model_fields[name].default


class DashboardOptions(BaseModel):
    """Per-facade thresholds; defaults are the declared ``Settings`` defaults."""

    model_config = ConfigDict(frozen=True)

    retention_risk_days: int = Field(_setting_default("engagement_retention_risk_days"), gt=0)
    inactive_days: int = Field(_setting_default("engagement_inactive_days"), gt=0)
    new_client_days: int = Field(_setting_default("engagement_new_client_days"), gt=0)
    top_spender_percentile: float = Field(_setting_default("engagement_top_spender_percentile"), gt=0, lt=1)
    top_spender_min_cents: int | None = Field(_setting_default("engagement_top_spender_min_cents"), gt=0)
    visits_per_reward: int = Field(_setting_default("loyalty_visits_per_reward"), gt=0)
    strict_grouping: bool = _setting_default("engagement_strict_grouping")
    average_window_days: int = Field(_setting_default("revenue_average_window_days"), gt=0)
    growth_window_days: int = Field(_setting_default("revenue_growth_window_days"), gt=0)
    daily_series_days: int = Field(_setting_default("revenue_daily_series_days"), gt=0)
    capacity_seconds: int = Field(int(_setting_default("utilization_capacity_hours") * 3600), gt=0)
    top_clients_limit: int = Field(_setting_default("dashboard_top_clients_limit"), ge=0)
    include_no_history_in_risk_list: bool = _setting_default("dashboard_include_no_history")

    @classmethod
    def from_settings(cls, config: Settings) -> "DashboardOptions":
        return cls(
            retention_risk_days=config.engagement_retention_risk_days,
            inactive_days=config.engagement_inactive_days,
            new_client_days=config.engagement_new_client_days,
            top_spender_percentile=config.engagement_top_spender_percentile,
            top_spender_min_cents=config.engagement_top_spender_min_cents,
            visits_per_reward=config.loyalty_visits_per_reward,
            strict_grouping=config.engagement_strict_grouping,
            average_window_days=config.revenue_average_window_days,
            growth_window_days=config.revenue_growth_window_days,
            daily_series_days=config.revenue_daily_series_days,
            capacity_seconds=config.utilization_capacity_seconds,
            top_clients_limit=config.dashboard_top_clients_limit,
            include_no_history_in_risk_list=config.dashboard_include_no_history,
        )


class DashboardMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    generated_for: datetime
    timezone: str
    snapshot_captured_at: datetime
    snapshot_fingerprint: str
    client_stats: list[ClientStats]
    retention_risk_clients: list[ClientStats]
    top_clients: list[ClientStats]
    retention_summary: RetentionSummary
    clients_without_history: list[str]
    loyalty_rate: float
    revenue_total_cents: int
    today_total_cents: int
    average_daily_cents: Decimal
    daily_revenue: list[RevenuePoint]
    revenue_by_service: list[ServiceRevenueEntry]
    revenue_growth_percent: float | None
    goal_progress: GoalProgress | None
    service_frequency: list[ServiceFrequencyEntry]
    utilization: UtilizationResult
