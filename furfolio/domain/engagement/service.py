import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Iterable, Sequence

from furfolio.domain.engagement.schemas import (
    ALERT_PRIORITY,
    ClientStats,
    LoyaltyProgress,
    LoyaltyTier,
    RetentionSummary,
    RetentionTag,
)
from furfolio.domain.errors import AmbiguousGrouping, InvalidConfiguration
from furfolio.domain.records.schemas import (
    INACTIVE_APPOINTMENT_STATUSES,
    Appointment,
    AppointmentStatus,
    Charge,
    Client,
)
from furfolio.domain.records.service import normalize_name, sum_cents, validated_charges
from furfolio.infra.metrics import track_aggregation
from furfolio.settings import settings
from furfolio.shared.calendar import days_between, normalize_dt

logger = logging.getLogger(__name__)

# Distinguishes "not passed" from an explicit None (percentile mode).
_UNSET: Any = object()


@dataclass
class _ClientActivity:
    client_id: str
    client_name: str | None = None
    appointments: list[Appointment] = field(default_factory=list)
    charges: list[Charge] = field(default_factory=list)

    def remember_name(self, name: str | None) -> None:
        if self.client_name is None and name and name.strip():
            self.client_name = name.strip()

    def record_times(self) -> list[datetime]:
        times = [appointment.scheduled_at for appointment in self.appointments]
        times.extend(charge.charged_at for charge in self.charges)
        return times

    def activity_times(self, now: datetime) -> list[datetime]:
        times = [
            appointment.scheduled_at
            for appointment in self.appointments
            if appointment.status not in INACTIVE_APPOINTMENT_STATUSES and appointment.scheduled_at <= now
        ]
        times.extend(charge.charged_at for charge in self.charges if charge.charged_at <= now)
        return times


def _group_by_client(
    appointments: Sequence[Appointment], charges: Sequence[Charge]
) -> dict[str, _ClientActivity]:
    grouped: dict[str, _ClientActivity] = {}
    for appointment in appointments:
        activity = grouped.setdefault(appointment.client_id, _ClientActivity(appointment.client_id))
        activity.appointments.append(appointment)
        activity.remember_name(appointment.client_name)
    for charge in charges:
        activity = grouped.setdefault(charge.client_id, _ClientActivity(charge.client_id))
        activity.charges.append(charge)
        activity.remember_name(charge.client_name)
    return grouped


def _check_ambiguous_names(appointments: Sequence[Appointment], charges: Sequence[Charge]) -> None:
    ids_by_name: dict[str, set[str]] = defaultdict(set)
    for record in (*appointments, *charges):
        name = normalize_name(record.client_name)
        if name is None:
            continue
        ids_by_name[name].add(record.client_id)

    collisions = [
        {"client_name": name, "client_ids": sorted(client_ids)}
        for name, client_ids in sorted(ids_by_name.items())
        if len(client_ids) > 1
    ]
    if collisions:
        logger.warning(
            "client_grouping_ambiguous",
            extra={"extra": {"collisions": len(collisions)}},
        )
        raise AmbiguousGrouping(
            detail=f"{len(collisions)} client name(s) map to more than one client id",
            errors=collisions,
        )


def _top_spender_ids(
    spend_by_client: dict[str, int], *, percentile: float, min_cents: int | None
) -> set[str]:
    if min_cents is not None:
        return {client_id for client_id, total in spend_by_client.items() if total >= min_cents}

    positive_totals = sorted((total for total in spend_by_client.values() if total > 0), reverse=True)
    if not positive_totals:
        return set()
    share = Decimal(1) - Decimal(str(percentile))
    slots = max(1, math.ceil(Decimal(len(spend_by_client)) * share))
    cutoff = positive_totals[min(slots, len(positive_totals)) - 1]
    return {
        client_id for client_id, total in spend_by_client.items() if total > 0 and total >= cutoff
    }


def _is_retention_risk(
    *,
    last_activity: datetime | None,
    record_times: Sequence[datetime],
    now: datetime,
    retention_risk_days: int,
) -> bool:
    if last_activity is not None:
        return days_between(now, last_activity) >= retention_risk_days
    if not any(timestamp <= now for timestamp in record_times):
        return False
    cutoff = now - timedelta(days=retention_risk_days)
    has_stale_record = any(timestamp <= cutoff for timestamp in record_times)
    has_recent_record = any(timestamp > cutoff for timestamp in record_times)
    return has_stale_record and not has_recent_record


def _retention_tag(
    *,
    has_history: bool,
    is_retention_risk: bool,
    days_since_last_activity: int | None,
    first_activity: datetime | None,
    now: datetime,
    inactive_days: int,
    new_client_days: int,
) -> RetentionTag:
    if not has_history:
        return RetentionTag.no_history
    if days_since_last_activity is not None and days_since_last_activity >= inactive_days:
        return RetentionTag.inactive
    if is_retention_risk:
        return RetentionTag.retention_risk
    if first_activity is not None and days_between(now, first_activity) < new_client_days:
        return RetentionTag.new_client
    return RetentionTag.active


def loyalty_tier_for(lifetime_value_cents: int) -> LoyaltyTier:
    if lifetime_value_cents < settings.loyalty_silver_min_cents:
        return LoyaltyTier.bronze
    if lifetime_value_cents < settings.loyalty_gold_min_cents:
        return LoyaltyTier.silver
    if lifetime_value_cents < settings.loyalty_platinum_min_cents:
        return LoyaltyTier.gold
    return LoyaltyTier.platinum


def loyalty_progress(visits: int, *, visits_per_reward: int | None = None) -> LoyaltyProgress:
    per_reward = visits_per_reward if visits_per_reward is not None else settings.loyalty_visits_per_reward
    if per_reward <= 0:
        raise InvalidConfiguration(detail="visits_per_reward must be positive")
    return LoyaltyProgress(
        visits=visits,
        visits_per_reward=per_reward,
        rewards_earned=visits // per_reward,
        progress=round((visits % per_reward) / per_reward, 4),
    )


def compute_client_stats(
    appointments: Iterable[Appointment],
    charges: Iterable[Charge],
    *,
    now: datetime,
    retention_risk_days: int | None = None,
    inactive_days: int | None = None,
    new_client_days: int | None = None,
    top_spender_percentile: float | None = None,
    top_spender_min_cents: int | None = _UNSET,
    visits_per_reward: int | None = None,
    strict: bool | None = None,
) -> list[ClientStats]:
    """Derive one ``ClientStats`` per client referenced by the given records.

    Clients are keyed by ``client_id``; a client with no records cannot appear.
    Top spenders are ranked against the cohort passed in, so the same client
    may classify differently against a different cohort. Omitted thresholds
    fall back to settings; an explicit ``top_spender_min_cents=None`` selects
    the percentile rule regardless of settings.
    """
    risk_days = retention_risk_days if retention_risk_days is not None else settings.engagement_retention_risk_days
    inactive_after = inactive_days if inactive_days is not None else settings.engagement_inactive_days
    new_within = new_client_days if new_client_days is not None else settings.engagement_new_client_days
    percentile = (
        top_spender_percentile
        if top_spender_percentile is not None
        else settings.engagement_top_spender_percentile
    )
    min_cents = (
        settings.engagement_top_spender_min_cents
        if top_spender_min_cents is _UNSET
        else top_spender_min_cents
    )
    strict_mode = strict if strict is not None else settings.engagement_strict_grouping

    if risk_days <= 0 or inactive_after <= 0 or new_within <= 0:
        raise InvalidConfiguration(detail="Engagement day thresholds must be positive")
    if not 0 < percentile < 1:
        raise InvalidConfiguration(detail="top_spender_percentile must be between 0 and 1 (exclusive)")
    if min_cents is not None and min_cents <= 0:
        raise InvalidConfiguration(detail="top_spender_min_cents must be positive")
    if visits_per_reward is not None and visits_per_reward <= 0:
        raise InvalidConfiguration(detail="visits_per_reward must be positive")

    reference = normalize_dt(now)
    with track_aggregation("engagement"):
        appointment_rows = tuple(appointments)
        charge_rows = validated_charges(charges)
        if strict_mode:
            _check_ambiguous_names(appointment_rows, charge_rows)

        grouped = _group_by_client(appointment_rows, charge_rows)
        spend_by_client = {client_id: sum_cents(activity.charges) for client_id, activity in grouped.items()}
        top_spenders = _top_spender_ids(spend_by_client, percentile=percentile, min_cents=min_cents)

        results: list[ClientStats] = []
        for client_id in sorted(grouped):
            activity = grouped[client_id]
            record_times = activity.record_times()
            activity_times = activity.activity_times(reference)
            last_activity = max(activity_times) if activity_times else None
            first_activity = min(activity_times) if activity_times else None
            has_history = any(timestamp <= reference for timestamp in record_times)
            days_since = days_between(reference, last_activity) if last_activity is not None else None
            is_risk = _is_retention_risk(
                last_activity=last_activity,
                record_times=record_times,
                now=reference,
                retention_risk_days=risk_days,
            )
            completed_visits = sum(
                1
                for appointment in activity.appointments
                if appointment.status == AppointmentStatus.completed and appointment.scheduled_at <= reference
            )
            lifetime_value = spend_by_client[client_id]
            results.append(
                ClientStats(
                    client_id=client_id,
                    client_name=activity.client_name,
                    is_retention_risk=is_risk,
                    is_top_spender=client_id in top_spenders,
                    lifetime_value_cents=lifetime_value,
                    last_activity=last_activity,
                    first_activity=first_activity,
                    has_history=has_history,
                    days_since_last_activity=days_since,
                    appointment_count=len(activity.appointments),
                    charge_count=len(activity.charges),
                    completed_visits=completed_visits,
                    retention_tag=_retention_tag(
                        has_history=has_history,
                        is_retention_risk=is_risk,
                        days_since_last_activity=days_since,
                        first_activity=first_activity,
                        now=reference,
                        inactive_days=inactive_after,
                        new_client_days=new_within,
                    ),
                    loyalty_tier=loyalty_tier_for(lifetime_value),
                    loyalty=loyalty_progress(completed_visits, visits_per_reward=visits_per_reward),
                )
            )

    logger.info(
        "engagement_stats_computed",
        extra={
            "extra": {
                "clients": len(results),
                "retention_risk": sum(1 for stats in results if stats.is_retention_risk),
                "top_spenders": len(top_spenders),
            }
        },
    )
    return results


def retention_risk_list(
    stats: Iterable[ClientStats], *, include_no_history: bool = False
) -> list[ClientStats]:
    """At-risk clients, stalest first.

    Clients at risk without any qualifying activity have no ``last_activity``
    to sort on; they are appended last when ``include_no_history`` is set.
    """
    at_risk = [entry for entry in stats if entry.is_retention_risk]
    dated = sorted(
        (entry for entry in at_risk if entry.last_activity is not None),
        key=lambda entry: (entry.last_activity, entry.client_id),
    )
    if not include_no_history:
        return dated
    undated = sorted(
        (entry for entry in at_risk if entry.last_activity is None),
        key=lambda entry: entry.client_id,
    )
    return dated + undated


def top_clients(stats: Iterable[ClientStats], *, limit: int = 3) -> list[ClientStats]:
    if limit < 0:
        raise InvalidConfiguration(detail="limit must not be negative")
    ranked = sorted(
        stats,
        key=lambda entry: (
            -entry.lifetime_value_cents,
            (entry.client_name or "").casefold(),
            entry.client_id,
        ),
    )
    return ranked[:limit]


def retention_summary(stats: Sequence[ClientStats]) -> RetentionSummary:
    counts = {tag: 0 for tag in RetentionTag}
    for entry in stats:
        counts[entry.retention_tag] += 1
    alert_count = sum(counts[tag] for tag in ALERT_PRIORITY)
    highest = next((tag for tag in ALERT_PRIORITY if counts[tag] > 0), None)
    return RetentionSummary(
        total_clients=len(stats),
        counts=counts,
        alert_count=alert_count,
        highest_priority=highest,
    )


def clients_without_history(clients: Iterable[Client], stats: Iterable[ClientStats]) -> list[Client]:
    with_history = {entry.client_id for entry in stats if entry.has_history}
    return sorted(
        (client for client in clients if client.client_id not in with_history),
        key=lambda client: client.client_id,
    )


def loyalty_rate(stats: Iterable[ClientStats]) -> float:
    eligible = [entry for entry in stats if entry.has_history]
    if not eligible:
        return 0.0
    rewarded = sum(1 for entry in eligible if entry.loyalty.rewards_earned > 0)
    return round(rewarded / len(eligible), 4)
