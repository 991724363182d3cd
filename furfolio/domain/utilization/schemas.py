from pydantic import BaseModel, ConfigDict


class UtilizationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    billable_seconds: int
    capacity_seconds: int
    percentage: float
    session_count: int
    open_sessions: int
