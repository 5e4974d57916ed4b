from visits.domain.models import (
    CapacityDay,
    CategorySettings,
    EligibilityRule,
    QueueEntry,
    SlotReservation,
    Ticket,
)
from visits.domain.statuses import QueueStatus, ReservationStatus, TicketStatus
from visits.domain.value_objects import (
    Capacity,
    QueueEntryId,
    ReservationId,
    TicketNumber,
    TimeWindow,
)

__all__ = [
    "CapacityDay",
    "CategorySettings",
    "EligibilityRule",
    "QueueEntry",
    "SlotReservation",
    "Ticket",
    "QueueStatus",
    "ReservationStatus",
    "TicketStatus",
    "Capacity",
    "QueueEntryId",
    "ReservationId",
    "TicketNumber",
    "TimeWindow",
]
