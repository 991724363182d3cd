from datetime import datetime, timedelta, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from conftest import NOW, make_appointment, make_charge, make_session
from furfolio.domain.engagement.schemas import RetentionTag
from furfolio.domain.errors import InvalidConfiguration
from furfolio.domain.metrics.schemas import DashboardOptions
from furfolio.domain.metrics.service import MetricsFacade
from furfolio.domain.records.schemas import AppointmentStatus, Client, ServiceCategory, Snapshot
from furfolio.settings import Settings, settings

UTC = timezone.utc


def _records():
    appointments = [
        make_appointment("c1", days_ago=2, service=ServiceCategory.full_groom, client_name="Ana"),
        make_appointment("c1", days_ago=20, service=ServiceCategory.nail_trim, client_name="Ana"),
        make_appointment("c2", days_ago=75, service=ServiceCategory.full_groom, client_name="Ben"),
    ]
    charges = [
        make_charge("c1", 8000, days_ago=0, client_name="Ana"),
        make_charge("c1", 2000, days_ago=20, service=ServiceCategory.nail_trim, client_name="Ana"),
        make_charge("c2", 6500, days_ago=75, client_name="Ben"),
    ]
    sessions = [
        make_session("s1", NOW.replace(hour=9), NOW.replace(hour=10, minute=30)),
        make_session("s2", NOW.replace(hour=13), NOW.replace(hour=13, minute=45)),
        make_session("s-old", NOW - timedelta(days=1), NOW - timedelta(days=1, hours=-3)),
    ]
    clients = [Client(client_id="c1", name="Ana"), Client(client_id="c2", name="Ben"), Client(client_id="c3", name="Cy")]
    return appointments, charges, sessions, clients


def test_dashboard_combines_every_metric_from_one_snapshot():
    appointments, charges, sessions, clients = _records()
    facade = MetricsFacade(DashboardOptions())

    dashboard = facade.dashboard(
        appointments=appointments,
        charges=charges,
        sessions=sessions,
        clients=clients,
        now=NOW,
        tz=UTC,
        goal_cents=32_000,
    )

    assert [entry.client_id for entry in dashboard.client_stats] == ["c1", "c2"]
    assert [entry.client_id for entry in dashboard.retention_risk_clients] == ["c2"]
    assert [entry.client_id for entry in dashboard.top_clients] == ["c1", "c2"]
    assert dashboard.retention_summary.counts[RetentionTag.retention_risk] == 1
    assert dashboard.clients_without_history == ["c3"]
    assert dashboard.revenue_total_cents == 16_500
    assert dashboard.today_total_cents == 8000
    assert dashboard.average_daily_cents == Decimal("1142.86")
    assert len(dashboard.daily_revenue) == 30
    assert dashboard.daily_revenue[-1].total_cents == 8000
    assert [entry.service for entry in dashboard.revenue_by_service] == ["full_groom", "nail_trim"]
    assert dashboard.revenue_growth_percent == 100.0
    assert dashboard.goal_progress is not None
    assert dashboard.goal_progress.progress == 0.25
    assert [(entry.category, entry.count) for entry in dashboard.service_frequency] == [
        ("full_groom", 2),
        ("nail_trim", 1),
    ]
    assert dashboard.utilization.billable_seconds == 8100
    assert dashboard.utilization.percentage == pytest.approx(0.28125)
    assert dashboard.timezone == "UTC"


def test_snapshot_is_isolated_from_later_mutation():
    appointments, charges, sessions, clients = _records()
    snapshot = Snapshot.capture(
        appointments=appointments, charges=charges, sessions=sessions, clients=clients, captured_at=NOW
    )
    facade = MetricsFacade(DashboardOptions())

    before = facade.build_dashboard(snapshot, now=NOW, tz=UTC)
    charges.append(make_charge("c9", 100_000, days_ago=0))
    appointments.clear()
    after = facade.build_dashboard(snapshot, now=NOW, tz=UTC)

    assert before == after
    assert after.revenue_total_cents == 16_500
    assert "c9" not in [entry.client_id for entry in after.client_stats]


def test_dashboard_is_idempotent_and_fingerprinted():
    appointments, charges, sessions, clients = _records()
    snapshot = Snapshot.capture(appointments=appointments, charges=charges, sessions=sessions, captured_at=NOW)
    facade = MetricsFacade(DashboardOptions())

    first = facade.build_dashboard(snapshot, now=NOW, tz=UTC)
    second = facade.build_dashboard(snapshot, now=NOW, tz=UTC)

    assert first == second
    assert first.snapshot_fingerprint.startswith("sha256:")

    recaptured = Snapshot.capture(
        appointments=appointments, charges=charges, sessions=sessions, captured_at=NOW + timedelta(hours=1)
    )
    changed = Snapshot.capture(
        appointments=appointments, charges=charges[:-1], sessions=sessions, captured_at=NOW
    )
    assert recaptured.fingerprint() == snapshot.fingerprint()
    assert changed.fingerprint() != snapshot.fingerprint()


def test_snapshot_records_are_immutable():
    snapshot = Snapshot.capture(charges=[make_charge("c1", 100, days_ago=1)], captured_at=NOW)

    with pytest.raises(Exception):
        snapshot.charges[0].amount_cents = 5


def test_today_follows_the_dashboard_timezone():
    toronto = ZoneInfo("America/Toronto")
    reference = datetime(2026, 6, 10, 2, 0, tzinfo=UTC)
    charges = [make_charge("c1", 1200, at=datetime(2026, 6, 9, 15, 0, tzinfo=UTC))]
    facade = MetricsFacade(DashboardOptions())

    local = facade.dashboard(charges=charges, now=reference, tz=toronto)
    utc = facade.dashboard(charges=charges, now=reference, tz=UTC)

    assert local.today_total_cents == 1200
    assert utc.today_total_cents == 0
    assert local.timezone == "America/Toronto"


def test_options_default_from_settings():
    config = Settings(engagement_retention_risk_days=30, utilization_capacity_hours=4)

    options = DashboardOptions.from_settings(config)

    assert options.retention_risk_days == 30
    assert options.capacity_seconds == 4 * 3600
    assert MetricsFacade().options.retention_risk_days > 0


def test_invalid_goal_surfaces_configuration_error():
    facade = MetricsFacade(DashboardOptions())

    with pytest.raises(InvalidConfiguration):
        facade.dashboard(charges=[], now=NOW, tz=UTC, goal_cents=0)


def test_facade_options_win_over_global_top_spender_threshold(monkeypatch):
    monkeypatch.setattr(settings, "engagement_top_spender_min_cents", 1)
    charges = [make_charge(f"c{index:02d}", index * 1000, days_ago=1) for index in range(1, 11)]

    dashboard = MetricsFacade(DashboardOptions()).dashboard(charges=charges, now=NOW, tz=UTC)

    assert [entry.client_id for entry in dashboard.client_stats if entry.is_top_spender] == ["c10"]


def test_option_defaults_track_declared_settings_defaults(monkeypatch):
    monkeypatch.setenv("FURFOLIO_ENGAGEMENT_RETENTION_RISK_DAYS", "21")
    options = DashboardOptions()
    declared = Settings.model_fields

    assert options.retention_risk_days == declared["engagement_retention_risk_days"].default
    assert options.top_spender_percentile == declared["engagement_top_spender_percentile"].default
    assert options.capacity_seconds == int(declared["utilization_capacity_hours"].default * 3600)
    assert options.include_no_history_in_risk_list is declared["dashboard_include_no_history"].default


def test_no_history_risk_clients_follow_settings():
    appointments = [
        make_appointment("dated", days_ago=70),
        make_appointment("undated", days_ago=90, status=AppointmentStatus.cancelled),
    ]
    options = DashboardOptions.from_settings(Settings(dashboard_include_no_history=True))

    dashboard = MetricsFacade(options).dashboard(appointments=appointments, now=NOW, tz=UTC)

    assert options.include_no_history_in_risk_list is True
    assert [entry.client_id for entry in dashboard.retention_risk_clients] == ["dated", "undated"]
