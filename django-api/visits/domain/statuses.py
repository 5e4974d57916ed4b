"""Closed status enumerations and their allowed transitions."""

from enum import StrEnum


class ReservationStatus(StrEnum):
    RESERVED = "reserved"
    CONSUMED = "consumed"
    RELEASED = "released"

    @classmethod
    def holding_capacity(cls) -> tuple["ReservationStatus", ...]:
        """Statuses that count against a CapacityDay."""
        return (cls.RESERVED, cls.CONSUMED)


class TicketStatus(StrEnum):
    """Stored ticket statuses. ``expired`` is derived, see Ticket.status_on."""

    ACTIVE = "active"
    USED = "used"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class QueueStatus(StrEnum):
    WAITING = "waiting"
    CALLED = "called"
    SERVED = "served"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    @classmethod
    def open_statuses(cls) -> tuple["QueueStatus", ...]:
        return (cls.WAITING, cls.CALLED)


QUEUE_TRANSITIONS: dict[QueueStatus, frozenset[QueueStatus]] = {
    QueueStatus.WAITING: frozenset({QueueStatus.CALLED, QueueStatus.CANCELLED, QueueStatus.NO_SHOW}),
    QueueStatus.CALLED: frozenset({QueueStatus.SERVED, QueueStatus.CANCELLED, QueueStatus.NO_SHOW}),
    QueueStatus.SERVED: frozenset({QueueStatus.COMPLETED}),
    QueueStatus.COMPLETED: frozenset(),
    QueueStatus.CANCELLED: frozenset(),
    QueueStatus.NO_SHOW: frozenset(),
}


def queue_sources(target: QueueStatus) -> tuple[QueueStatus, ...]:
    """Return the statuses from which ``target`` may be reached."""
    return tuple(source for source, targets in QUEUE_TRANSITIONS.items() if target in targets)
