import logging
from datetime import datetime, timedelta
from typing import Iterable

from furfolio.domain.errors import InvalidConfiguration
from furfolio.domain.records.schemas import SessionLog
from furfolio.domain.records.service import validated_sessions
from furfolio.domain.utilization.schemas import UtilizationResult
from furfolio.infra.metrics import track_aggregation
from furfolio.settings import settings
from furfolio.shared.calendar import normalize_dt

logger = logging.getLogger(__name__)


def compute_utilization(
    sessions: Iterable[SessionLog],
    *,
    capacity_seconds: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> UtilizationResult:
    """Billable time of closed sessions against a capacity.

    Open sessions contribute nothing; they are only counted. ``start`` and
    ``end`` restrict the sessions considered by their start time, inclusively.
    """
    capacity = capacity_seconds if capacity_seconds is not None else settings.utilization_capacity_seconds
    if capacity <= 0:
        raise InvalidConfiguration(
            detail="Utilization capacity must be positive",
            errors=[{"capacity_seconds": capacity}],
        )
    window_start = normalize_dt(start) if start is not None else None
    window_end = normalize_dt(end) if end is not None else None
    if window_start is not None and window_end is not None and window_start > window_end:
        raise InvalidConfiguration(detail="Date range end is before its start")

    with track_aggregation("utilization"):
        selected = [
            session
            for session in validated_sessions(sessions)
            if (window_start is None or session.started_at >= window_start)
            and (window_end is None or session.started_at <= window_end)
        ]
        billable = timedelta(0)
        open_sessions = 0
        for session in selected:
            if session.ended_at is None:
                open_sessions += 1
                continue
            billable += session.ended_at - session.started_at
        billable_seconds = billable.total_seconds()
        result = UtilizationResult(
            billable_seconds=int(billable_seconds),
            capacity_seconds=capacity,
            percentage=min(billable_seconds / capacity, 1.0),
            session_count=len(selected),
            open_sessions=open_sessions,
        )

    logger.debug(
        "utilization_computed",
        extra={
            "extra": {
                "billable_seconds": result.billable_seconds,
                "capacity_seconds": result.capacity_seconds,
                "open_sessions": result.open_sessions,
            }
        },
    )
    return result
