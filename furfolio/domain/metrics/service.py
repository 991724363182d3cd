import logging
from datetime import datetime, tzinfo
from typing import Iterable

from furfolio.domain.engagement import service as engagement_service
from furfolio.domain.metrics.schemas import DashboardMetrics, DashboardOptions
from furfolio.domain.records.schemas import Appointment, Charge, Client, SessionLog, Snapshot
from furfolio.domain.revenue import service as revenue_service
from furfolio.domain.service_frequency import service as frequency_service
from furfolio.domain.utilization import service as utilization_service
from furfolio.infra.logging import log_context
from furfolio.infra.metrics import metrics, track_aggregation
from furfolio.settings import settings
from furfolio.shared.calendar import day_bounds, local_day, normalize_dt

logger = logging.getLogger(__name__)


class MetricsFacade:
    """Builds every dashboard metric from one captured snapshot.

    The facade only ever reads the ``Snapshot`` handed to it, so no metric in
    a result can reflect a different point in time than another.
    """

    def __init__(self, options: DashboardOptions | None = None) -> None:
        self.options = options or DashboardOptions.from_settings(settings)

    def build_dashboard(
        self,
        snapshot: Snapshot,
        *,
        now: datetime,
        tz: tzinfo,
        goal_cents: int | None = None,
    ) -> DashboardMetrics:
        options = self.options
        reference = normalize_dt(now)
        fingerprint = snapshot.fingerprint()
        with log_context(snapshot_fingerprint=fingerprint), track_aggregation("dashboard"):
            stats = engagement_service.compute_client_stats(
                snapshot.appointments,
                snapshot.charges,
                now=reference,
                retention_risk_days=options.retention_risk_days,
                inactive_days=options.inactive_days,
                new_client_days=options.new_client_days,
                top_spender_percentile=options.top_spender_percentile,
                top_spender_min_cents=options.top_spender_min_cents,
                visits_per_reward=options.visits_per_reward,
                strict=options.strict_grouping,
            )
            day_start, day_end = day_bounds(local_day(reference, tz), tz)
            goal_progress = None
            if goal_cents is not None:
                goal_progress = revenue_service.monthly_goal_progress(
                    snapshot.charges, goal_cents=goal_cents, reference=reference, tz=tz
                )
            dashboard = DashboardMetrics(
                generated_for=reference,
                timezone=str(tz),
                snapshot_captured_at=snapshot.captured_at,
                snapshot_fingerprint=fingerprint,
                client_stats=stats,
                retention_risk_clients=engagement_service.retention_risk_list(
                    stats, include_no_history=options.include_no_history_in_risk_list
                ),
                top_clients=engagement_service.top_clients(stats, limit=options.top_clients_limit),
                retention_summary=engagement_service.retention_summary(stats),
                clients_without_history=[
                    client.client_id
                    for client in engagement_service.clients_without_history(snapshot.clients, stats)
                ],
                loyalty_rate=engagement_service.loyalty_rate(stats),
                revenue_total_cents=revenue_service.total_cents(snapshot.charges),
                today_total_cents=revenue_service.day_total(snapshot.charges, reference=reference, tz=tz),
                average_daily_cents=revenue_service.average_over_window(
                    snapshot.charges, days=options.average_window_days, reference=reference, tz=tz
                ),
                daily_revenue=revenue_service.daily_series(
                    snapshot.charges, days=options.daily_series_days, reference=reference, tz=tz
                ),
                revenue_by_service=revenue_service.revenue_by_service(snapshot.charges),
                revenue_growth_percent=revenue_service.revenue_growth(
                    snapshot.charges, days=options.growth_window_days, reference=reference
                ),
                goal_progress=goal_progress,
                service_frequency=frequency_service.service_frequency(snapshot.appointments),
                utilization=utilization_service.compute_utilization(
                    snapshot.sessions,
                    capacity_seconds=options.capacity_seconds,
                    start=day_start,
                    end=day_end,
                ),
            )

        metrics.record_dashboard_build()
        logger.info(
            "dashboard_built",
            extra={
                "extra": {
                    "snapshot_fingerprint": dashboard.snapshot_fingerprint,
                    "clients": len(dashboard.client_stats),
                    "retention_risk": len(dashboard.retention_risk_clients),
                    "revenue_total_cents": dashboard.revenue_total_cents,
                }
            },
        )
        return dashboard

    def dashboard(
        self,
        *,
        appointments: Iterable[Appointment] = (),
        charges: Iterable[Charge] = (),
        sessions: Iterable[SessionLog] = (),
        clients: Iterable[Client] = (),
        now: datetime,
        tz: tzinfo,
        goal_cents: int | None = None,
    ) -> DashboardMetrics:
        snapshot = Snapshot.capture(
            appointments=appointments,
            charges=charges,
            sessions=sessions,
            clients=clients,
            captured_at=now,
        )
        return self.build_dashboard(snapshot, now=now, tz=tz, goal_cents=goal_cents)
