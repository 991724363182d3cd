import logging
import time
from contextlib import contextmanager
from typing import Iterator

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from furfolio.settings import settings

logger = logging.getLogger(__name__)


class Metrics:
    def __init__(self, enabled: bool = False) -> None:
        self._configure(enabled)

    def _configure(self, enabled: bool) -> None:
        self.enabled = enabled
        self.registry = CollectorRegistry(auto_describe=True)
        if not enabled:
            self.aggregation_runs = None
            self.aggregation_latency = None
            self.rejected_records = None
            self.dashboard_builds = None
            return

        self.aggregation_runs = Counter(
            "aggregation_runs_total",
            "Aggregation calls by aggregator and outcome.",
            ["aggregator", "outcome"],
            registry=self.registry,
        )
        self.aggregation_latency = Histogram(
            "aggregation_latency_seconds",
            "Aggregation latency in seconds.",
            ["aggregator"],
            buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1, 5),
            registry=self.registry,
        )
        self.rejected_records = Counter(
            "aggregation_rejected_records_total",
            "Input records rejected at the aggregation boundary.",
            ["kind", "reason"],
            registry=self.registry,
        )
        self.dashboard_builds = Counter(
            "dashboard_builds_total",
            "Dashboard snapshots built by the metrics facade.",
            registry=self.registry,
        )

    def record_aggregation(self, aggregator: str, outcome: str, duration_seconds: float) -> None:
        if not self.enabled or self.aggregation_runs is None or self.aggregation_latency is None:
            return
        safe_outcome = outcome or "unknown"
        self.aggregation_runs.labels(aggregator=aggregator, outcome=safe_outcome).inc()
        self.aggregation_latency.labels(aggregator=aggregator).observe(max(0.0, float(duration_seconds)))

    def record_rejected_record(self, kind: str, reason: str) -> None:
        if not self.enabled or self.rejected_records is None:
            return
        self.rejected_records.labels(kind=kind or "unknown", reason=reason or "unknown").inc()

    def record_dashboard_build(self) -> None:
        if not self.enabled or self.dashboard_builds is None:
            return
        self.dashboard_builds.inc()

    def render(self) -> tuple[bytes, str]:
        if not self.enabled:
            return b"metrics_disabled 1\n", "text/plain; version=0.0.4"
        try:
            return generate_latest(self.registry), CONTENT_TYPE_LATEST
        except Exception:  # noqa: BLE001
            logger.exception("metrics_render_failed")
            return b"metrics_render_failed 1\n", "text/plain; version=0.0.4"


metrics = Metrics(enabled=settings.metrics_enabled)


def configure_metrics(enabled: bool) -> Metrics:
    metrics._configure(enabled)
    return metrics


@contextmanager
def track_aggregation(aggregator: str) -> Iterator[None]:
    started = time.perf_counter()
    outcome = "success"
    try:
        yield
    except Exception:
        outcome = "error"
        raise
    finally:
        metrics.record_aggregation(aggregator, outcome, time.perf_counter() - started)
