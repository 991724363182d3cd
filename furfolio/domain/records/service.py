import logging
from typing import Iterable, Sequence

from furfolio.domain.errors import InvalidRecord
from furfolio.domain.records.schemas import Charge, SessionLog
from furfolio.infra.metrics import metrics

logger = logging.getLogger(__name__)


def validated_charges(charges: Iterable[Charge]) -> tuple[Charge, ...]:
    """Materialize ``charges`` and reject any row with a negative amount."""
    materialized = tuple(charges)
    for charge in materialized:
        if charge.amount_cents < 0:
            logger.warning(
                "charge_rejected",
                extra={
                    "extra": {
                        "charge_id": charge.charge_id,
                        "client_id": charge.client_id,
                        "amount_cents": charge.amount_cents,
                    }
                },
            )
            metrics.record_rejected_record("charge", "negative_amount")
            raise InvalidRecord(
                detail=f"Charge {charge.charge_id} has a negative amount",
                errors=[{"charge_id": charge.charge_id, "amount_cents": charge.amount_cents}],
            )
    return materialized


def validated_sessions(sessions: Iterable[SessionLog]) -> tuple[SessionLog, ...]:
    materialized = tuple(sessions)
    for session in materialized:
        if session.ended_at is not None and session.ended_at < session.started_at:
            logger.warning(
                "session_rejected",
                extra={"extra": {"session_id": session.session_id, "staff_id": session.staff_id}},
            )
            metrics.record_rejected_record("session", "end_before_start")
            raise InvalidRecord(
                detail=f"Session {session.session_id} ends before it starts",
                errors=[
                    {
                        "session_id": session.session_id,
                        "started_at": session.started_at.isoformat(),
                        "ended_at": session.ended_at.isoformat(),
                    }
                ],
            )
    return materialized


def normalize_name(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = " ".join(value.split()).casefold()
    return normalized or None


def sum_cents(charges: Sequence[Charge]) -> int:
    return sum(charge.amount_cents for charge in charges)
