import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from furfolio.domain.records.schemas import (
    Appointment,
    AppointmentStatus,
    Charge,
    PaymentMethod,
    ServiceCategory,
    SessionLog,
)
from furfolio.infra.logging import clear_log_context
from furfolio.infra.metrics import configure_metrics

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_charge(
    client_id: str,
    amount_cents: int,
    *,
    at: datetime | None = None,
    days_ago: int | None = None,
    service: str = ServiceCategory.full_groom,
    client_name: str | None = None,
    charge_id: str | None = None,
) -> Charge:
    charged_at = at if at is not None else NOW - timedelta(days=days_ago or 0)
    return Charge(
        charge_id=charge_id or f"ch-{client_id}-{charged_at.isoformat()}-{amount_cents}",
        client_id=client_id,
        client_name=client_name,
        charged_at=charged_at,
        amount_cents=amount_cents,
        service=service,
        payment_method=PaymentMethod.credit_card,
    )


def make_appointment(
    client_id: str,
    *,
    at: datetime | None = None,
    days_ago: int | None = None,
    service: str = ServiceCategory.full_groom,
    status: AppointmentStatus = AppointmentStatus.completed,
    client_name: str | None = None,
    appointment_id: str | None = None,
) -> Appointment:
    scheduled_at = at if at is not None else NOW - timedelta(days=days_ago or 0)
    return Appointment(
        appointment_id=appointment_id or f"ap-{client_id}-{scheduled_at.isoformat()}-{service}",
        client_id=client_id,
        client_name=client_name,
        scheduled_at=scheduled_at,
        service=service,
        status=status,
    )


def make_session(session_id: str, start: datetime, end: datetime | None) -> SessionLog:
    return SessionLog(session_id=session_id, staff_id="groomer-1", started_at=start, ended_at=end)


@pytest.fixture(autouse=True)
def _reset_ambient_state():
    yield
    configure_metrics(False)
    clear_log_context()
