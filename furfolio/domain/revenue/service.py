import logging
from collections import defaultdict
from datetime import date, datetime, timedelta, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from typing import Collection, Iterable, Sequence

from furfolio.domain.errors import InvalidConfiguration
from furfolio.domain.records.schemas import Charge
from furfolio.domain.records.service import sum_cents, validated_charges
from furfolio.domain.revenue.schemas import (
    GoalProgress,
    RevenuePoint,
    RevenueSummary,
    ServiceRevenueEntry,
)
from furfolio.infra.metrics import track_aggregation
from furfolio.shared.calendar import day_bounds, iter_days, local_day, month_start, normalize_dt, week_start

logger = logging.getLogger(__name__)

CENTS_QUANTUM = Decimal("0.01")


def _validate_range(start: datetime | None, end: datetime | None) -> tuple[datetime | None, datetime | None]:
    normalized_start = normalize_dt(start) if start is not None else None
    normalized_end = normalize_dt(end) if end is not None else None
    if normalized_start is not None and normalized_end is not None and normalized_start > normalized_end:
        raise InvalidConfiguration(
            detail="Date range end is before its start",
            errors=[{"start": normalized_start.isoformat(), "end": normalized_end.isoformat()}],
        )
    return normalized_start, normalized_end


def _filter_charges(
    charges: Sequence[Charge],
    start: datetime | None,
    end: datetime | None,
    excluded_services: Collection[str] = (),
) -> list[Charge]:
    return [
        charge
        for charge in charges
        if (start is None or charge.charged_at >= start)
        and (end is None or charge.charged_at <= end)
        and charge.service not in excluded_services
    ]


def _totals_by_day(charges: Iterable[Charge], tz: tzinfo) -> dict[date, int]:
    totals: defaultdict[date, int] = defaultdict(int)
    for charge in charges:
        totals[local_day(charge.charged_at, tz)] += charge.amount_cents
    return totals


def _zero_filled(totals: dict[date, int], first: date, last: date) -> list[RevenuePoint]:
    return [RevenuePoint(date=day, total_cents=totals.get(day, 0)) for day in iter_days(first, last)]


def _trailing_window(reference: datetime, days: int, tz: tzinfo) -> tuple[date, date, datetime, datetime]:
    last_day = local_day(reference, tz)
    first_day = last_day - timedelta(days=days - 1)
    window_start, _ = day_bounds(first_day, tz)
    _, window_end = day_bounds(last_day, tz)
    return first_day, last_day, window_start, window_end


def total_cents(
    charges: Iterable[Charge],
    start: datetime | None = None,
    end: datetime | None = None,
    *,
    excluded_services: Collection[str] = (),
) -> int:
    """Sum charge amounts in the inclusive ``[start, end]`` range; a missing bound is unbounded."""
    range_start, range_end = _validate_range(start, end)
    with track_aggregation("revenue_total"):
        rows = validated_charges(charges)
        return sum_cents(_filter_charges(rows, range_start, range_end, excluded_services))


def summarize(
    charges: Iterable[Charge],
    start: datetime | None = None,
    end: datetime | None = None,
    *,
    tz: tzinfo,
    include_daily: bool = False,
    excluded_services: Collection[str] = (),
) -> RevenueSummary:
    range_start, range_end = _validate_range(start, end)
    with track_aggregation("revenue_summary"):
        rows = validated_charges(charges)
        selected = _filter_charges(rows, range_start, range_end, excluded_services)
        daily: list[RevenuePoint] | None = None
        if include_daily:
            totals = _totals_by_day(selected, tz)
            if range_start is not None and range_end is not None:
                daily = _zero_filled(totals, local_day(range_start, tz), local_day(range_end, tz))
            else:
                daily = [RevenuePoint(date=day, total_cents=totals[day]) for day in sorted(totals)]
        summary = RevenueSummary(total_cents=sum_cents(selected), charge_count=len(selected), daily=daily)

    logger.debug(
        "revenue_summarized",
        extra={"extra": {"charge_count": summary.charge_count, "total_cents": summary.total_cents}},
    )
    return summary


def day_total(charges: Iterable[Charge], *, reference: datetime, tz: tzinfo) -> int:
    """Total for the calendar day containing ``reference`` in ``tz``."""
    day_start, day_end = day_bounds(local_day(reference, tz), tz)
    return total_cents(charges, day_start, day_end)


def average_over_window(
    charges: Iterable[Charge], *, days: int, reference: datetime, tz: tzinfo
) -> Decimal:
    """Mean daily revenue in cents over the trailing ``days`` calendar days.

    Days without charges count as zero; the divisor is always ``days``.
    """
    if days <= 0:
        raise InvalidConfiguration(detail="Averaging window must be at least one day")
    _, _, window_start, window_end = _trailing_window(reference, days, tz)
    window_total = total_cents(charges, window_start, window_end)
    return (Decimal(window_total) / Decimal(days)).quantize(CENTS_QUANTUM, rounding=ROUND_HALF_UP)


def daily_series(
    charges: Iterable[Charge], *, days: int, reference: datetime, tz: tzinfo
) -> list[RevenuePoint]:
    if days <= 0:
        raise InvalidConfiguration(detail="Series length must be at least one day")
    first_day, last_day, window_start, window_end = _trailing_window(reference, days, tz)
    with track_aggregation("revenue_daily_series"):
        rows = validated_charges(charges)
        totals = _totals_by_day(_filter_charges(rows, window_start, window_end), tz)
        return _zero_filled(totals, first_day, last_day)


def weekly_breakdown(
    charges: Iterable[Charge],
    start: datetime | None = None,
    end: datetime | None = None,
    *,
    tz: tzinfo,
) -> list[RevenuePoint]:
    """Totals per ISO week (keyed by the Monday); zero-filled when both bounds are given."""
    range_start, range_end = _validate_range(start, end)
    with track_aggregation("revenue_weekly"):
        rows = validated_charges(charges)
        totals: defaultdict[date, int] = defaultdict(int)
        for day, amount in _totals_by_day(_filter_charges(rows, range_start, range_end), tz).items():
            totals[week_start(day)] += amount
        if range_start is None or range_end is None:
            return [RevenuePoint(date=week, total_cents=totals[week]) for week in sorted(totals)]

        points: list[RevenuePoint] = []
        week = week_start(local_day(range_start, tz))
        last_week = week_start(local_day(range_end, tz))
        while week <= last_week:
            points.append(RevenuePoint(date=week, total_cents=totals.get(week, 0)))
            week += timedelta(days=7)
        return points


def revenue_by_service(
    charges: Iterable[Charge], *, excluded_services: Collection[str] = ()
) -> list[ServiceRevenueEntry]:
    with track_aggregation("revenue_by_service"):
        rows = validated_charges(charges)
        totals: defaultdict[str, int] = defaultdict(int)
        counts: defaultdict[str, int] = defaultdict(int)
        for charge in _filter_charges(rows, None, None, excluded_services):
            totals[str(charge.service)] += charge.amount_cents
            counts[str(charge.service)] += 1
        return [
            ServiceRevenueEntry(service=service, total_cents=total, charge_count=counts[service])
            for service, total in sorted(totals.items(), key=lambda item: (-item[1], item[0]))
        ]


def monthly_goal_progress(
    charges: Iterable[Charge], *, goal_cents: int, reference: datetime, tz: tzinfo
) -> GoalProgress:
    if goal_cents <= 0:
        raise InvalidConfiguration(detail="Revenue goal must be positive")
    first_day = month_start(local_day(reference, tz))
    window_start, _ = day_bounds(first_day, tz)
    month_total = total_cents(charges, window_start, normalize_dt(reference))
    progress = min(Decimal(month_total) / Decimal(goal_cents), Decimal(1))
    return GoalProgress(
        month_start=first_day,
        total_cents=month_total,
        goal_cents=goal_cents,
        progress=float(progress.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)),
    )


def revenue_growth(charges: Iterable[Charge], *, days: int, reference: datetime) -> float | None:
    """Percent change of the trailing ``days`` against the window just before it.

    Returns ``None`` when both windows are empty and ``100.0`` when only the
    previous one is.
    """
    if days <= 0:
        raise InvalidConfiguration(detail="Growth window must be at least one day")
    now = normalize_dt(reference)
    period_start = now - timedelta(days=days)
    previous_start = now - timedelta(days=2 * days)
    with track_aggregation("revenue_growth"):
        rows = validated_charges(charges)
        current = sum_cents(_filter_charges(rows, period_start, now))
        previous = sum_cents(
            [charge for charge in rows if previous_start <= charge.charged_at < period_start]
        )
    if previous == 0:
        return None if current == 0 else 100.0
    growth = (Decimal(current - previous) / Decimal(previous)) * 100
    return float(growth.quantize(CENTS_QUANTUM, rounding=ROUND_HALF_UP))
