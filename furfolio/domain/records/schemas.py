import hashlib
from datetime import datetime, timezone
from enum import StrEnum
from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field, field_validator

from furfolio.shared.calendar import normalize_dt


class ServiceCategory(StrEnum):
    basic_bath = "basic_bath"
    custom = "custom"
    full_groom = "full_groom"
    nail_trim = "nail_trim"
    product = "product"


class AppointmentStatus(StrEnum):
    scheduled = "scheduled"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"
    missed = "missed"


INACTIVE_APPOINTMENT_STATUSES = frozenset({AppointmentStatus.cancelled, AppointmentStatus.missed})


class Recurrence(StrEnum):
    weekly = "weekly"
    biweekly = "biweekly"
    monthly = "monthly"


class PaymentMethod(StrEnum):
    unpaid = "unpaid"
    cash = "cash"
    credit_card = "credit_card"
    debit_card = "debit_card"
    zelle = "zelle"
    other = "other"


class RecordModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


def _category_name(value: object) -> object:
    if isinstance(value, str):
        return str(value).strip()
    return value


class Client(RecordModel):
    client_id: str
    name: str
    email: str | None = None
    phone: str | None = None
    last_activity_at: datetime | None = None
    loyalty_visits: int = Field(0, ge=0)

    @field_validator("last_activity_at")
    @classmethod
    def normalize_last_activity(cls, value: datetime | None) -> datetime | None:
        return normalize_dt(value) if value is not None else None


class Appointment(RecordModel):
    appointment_id: str
    client_id: str
    client_name: str | None = None
    scheduled_at: datetime
    service: str
    status: AppointmentStatus = AppointmentStatus.scheduled
    recurrence: Recurrence | None = None

    @field_validator("scheduled_at")
    @classmethod
    def normalize_scheduled_at(cls, value: datetime) -> datetime:
        return normalize_dt(value)

    @field_validator("service", mode="before")
    @classmethod
    def normalize_service(cls, value: object) -> object:
        return _category_name(value)


class Charge(RecordModel):
    # Sign is checked by the aggregators so a bad row surfaces as InvalidRecord.
    charge_id: str
    client_id: str
    client_name: str | None = None
    charged_at: datetime
    amount_cents: int
    service: str
    payment_method: PaymentMethod = PaymentMethod.other

    @field_validator("charged_at")
    @classmethod
    def normalize_charged_at(cls, value: datetime) -> datetime:
        return normalize_dt(value)

    @field_validator("service", mode="before")
    @classmethod
    def normalize_service(cls, value: object) -> object:
        return _category_name(value)


class SessionLog(RecordModel):
    session_id: str
    staff_id: str | None = None
    started_at: datetime
    ended_at: datetime | None = None

    @field_validator("started_at", "ended_at")
    @classmethod
    def normalize_bounds(cls, value: datetime | None) -> datetime | None:
        return normalize_dt(value) if value is not None else None

    @property
    def is_open(self) -> bool:
        return self.ended_at is None


class Snapshot(RecordModel):
    """Immutable set of records passed into one aggregation call."""

    captured_at: datetime
    clients: tuple[Client, ...] = ()
    appointments: tuple[Appointment, ...] = ()
    charges: tuple[Charge, ...] = ()
    sessions: tuple[SessionLog, ...] = ()

    @field_validator("captured_at")
    @classmethod
    def normalize_captured_at(cls, value: datetime) -> datetime:
        return normalize_dt(value)

    @classmethod
    def capture(
        cls,
        *,
        appointments: Iterable[Appointment] = (),
        charges: Iterable[Charge] = (),
        sessions: Iterable[SessionLog] = (),
        clients: Iterable[Client] = (),
        captured_at: datetime | None = None,
    ) -> "Snapshot":
        return cls(
            captured_at=captured_at or datetime.now(timezone.utc),
            clients=tuple(clients),
            appointments=tuple(appointments),
            charges=tuple(charges),
            sessions=tuple(sessions),
        )

    def fingerprint(self) -> str:
        canonical = self.model_dump_json(exclude={"captured_at"})
        digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
        return f"sha256:{digest}"
