from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class RetentionTag(StrEnum):
    no_history = "no_history"
    inactive = "inactive"
    retention_risk = "retention_risk"
    new_client = "new_client"
    active = "active"


# Highest priority first; drives the single badge a summary widget shows.
ALERT_PRIORITY = (RetentionTag.retention_risk, RetentionTag.inactive, RetentionTag.new_client)


class LoyaltyTier(StrEnum):
    bronze = "bronze"
    silver = "silver"
    gold = "gold"
    platinum = "platinum"


class LoyaltyProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    visits: int
    visits_per_reward: int
    rewards_earned: int
    progress: float


class ClientStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    client_id: str
    client_name: str | None
    is_retention_risk: bool
    is_top_spender: bool
    lifetime_value_cents: int
    last_activity: datetime | None
    first_activity: datetime | None
    has_history: bool
    days_since_last_activity: int | None
    appointment_count: int
    charge_count: int
    completed_visits: int
    retention_tag: RetentionTag
    loyalty_tier: LoyaltyTier
    loyalty: LoyaltyProgress


class RetentionSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_clients: int
    counts: dict[RetentionTag, int]
    alert_count: int
    highest_priority: RetentionTag | None
