from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_session
from furfolio.domain.errors import InvalidConfiguration, InvalidRecord
from furfolio.domain.utilization.service import compute_utilization
from furfolio.settings import settings


def _at(hour, minute=0, day=4):
    return datetime(2026, 5, day, hour, minute, tzinfo=timezone.utc)


def test_closed_sessions_against_eight_hour_capacity():
    sessions = [
        make_session("s1", _at(9), _at(10, 30)),
        make_session("s2", _at(13), _at(13, 45)),
    ]

    result = compute_utilization(sessions, capacity_seconds=8 * 3600)

    assert result.billable_seconds == 8100
    assert result.capacity_seconds == 28_800
    assert result.percentage == pytest.approx(0.28125)
    assert result.session_count == 2


def test_default_capacity_comes_from_settings(monkeypatch):
    sessions = [make_session("s1", _at(9), _at(13))]

    assert compute_utilization(sessions).capacity_seconds == 8 * 3600

    monkeypatch.setattr(settings, "utilization_capacity_hours", 4.0)
    assert compute_utilization(sessions).percentage == 1.0


def test_open_sessions_contribute_nothing():
    sessions = [make_session("s1", _at(9), _at(10)), make_session("s2", _at(11), None)]

    result = compute_utilization(sessions, capacity_seconds=3600 * 8)

    assert result.billable_seconds == 3600
    assert result.open_sessions == 1
    assert result.session_count == 2


def test_percentage_is_clamped():
    result = compute_utilization([make_session("s1", _at(6), _at(20))], capacity_seconds=3600)

    assert result.billable_seconds == 14 * 3600
    assert result.percentage == 1.0


def test_non_positive_capacity_is_rejected():
    with pytest.raises(InvalidConfiguration):
        compute_utilization([], capacity_seconds=0)
    with pytest.raises(InvalidConfiguration):
        compute_utilization([], capacity_seconds=-60)


def test_session_ending_before_start_is_rejected():
    with pytest.raises(InvalidRecord):
        compute_utilization([make_session("bad", _at(10), _at(9))], capacity_seconds=3600)


def test_window_filters_on_session_start():
    sessions = [
        make_session("yesterday", _at(9, day=3), _at(10, day=3)),
        make_session("today", _at(9), _at(9, 30)),
    ]

    result = compute_utilization(sessions, capacity_seconds=3600, start=_at(0), end=_at(23, 59))

    assert result.billable_seconds == 1800
    assert result.percentage == 0.5
    assert result.session_count == 1


def test_empty_input_is_zero_percent():
    result = compute_utilization([], capacity_seconds=3600)

    assert result.billable_seconds == 0
    assert result.percentage == 0.0


def test_sub_second_sessions_are_summed_before_truncation():
    start = _at(9)
    sessions = [
        make_session(f"s{index}", start + timedelta(seconds=index), start + timedelta(seconds=index, milliseconds=900))
        for index in range(100)
    ]

    result = compute_utilization(sessions, capacity_seconds=3600)

    assert result.billable_seconds == 90
    assert result.percentage == pytest.approx(90 / 3600)
