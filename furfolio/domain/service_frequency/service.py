import logging
from collections import Counter
from typing import Collection, Iterable

from furfolio.domain.errors import InvalidConfiguration
from furfolio.domain.records.schemas import Appointment, AppointmentStatus
from furfolio.domain.service_frequency.schemas import ServiceFrequencyEntry
from furfolio.infra.metrics import track_aggregation

logger = logging.getLogger(__name__)


def service_frequency(
    appointments: Iterable[Appointment],
    *,
    categories: Iterable[str] | None = None,
    statuses: Collection[AppointmentStatus] | None = None,
) -> list[ServiceFrequencyEntry]:
    """Bookings per service category, most booked first.

    Equal counts are ordered by category name so the output is stable. When
    ``categories`` lists the full enumeration, unbooked categories are
    reported with a zero count.
    """
    with track_aggregation("service_frequency"):
        counts: Counter[str] = Counter()
        for appointment in appointments:
            if statuses is not None and appointment.status not in statuses:
                continue
            counts[str(appointment.service)] += 1
        if categories is not None:
            for category in categories:
                counts.setdefault(str(category), 0)
        entries = [
            ServiceFrequencyEntry(category=category, count=count)
            for category, count in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        ]

    logger.debug(
        "service_frequency_computed",
        extra={"extra": {"categories": len(entries), "bookings": sum(counts.values())}},
    )
    return entries


def top_services(
    appointments: Iterable[Appointment],
    *,
    limit: int,
    statuses: Collection[AppointmentStatus] | None = None,
) -> list[ServiceFrequencyEntry]:
    if limit < 0:
        raise InvalidConfiguration(detail="limit must not be negative")
    return service_frequency(appointments, statuses=statuses)[:limit]
