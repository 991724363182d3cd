from datetime import date

from pydantic import BaseModel, ConfigDict


class RevenuePoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: date
    total_cents: int


class RevenueSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_cents: int
    charge_count: int
    daily: list[RevenuePoint] | None = None


class ServiceRevenueEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    service: str
    total_cents: int
    charge_count: int


class GoalProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    month_start: date
    total_cents: int
    goal_cents: int
    progress: float
