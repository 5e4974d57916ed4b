"""Domain models representing persisted state.

These are pure domain objects with no API input rules.
Django ORM models are in visits/models.py (persistence layer).
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from visits.domain.statuses import QueueStatus, ReservationStatus, TicketStatus
from visits.domain.value_objects import (
    Capacity,
    QueueEntryId,
    ReservationId,
    TicketNumber,
    TimeWindow,
)


@dataclass(frozen=True)
class EligibilityRule:
    """Frequency rule for one category."""

    cooldown: timedelta

    def __post_init__(self) -> None:
        if self.cooldown < timedelta(0):
            raise ValueError("Cooldown cannot be negative")


@dataclass(frozen=True)
class CategorySettings:
    """Configuration for one service category.

    Defaults come from ``settings.VISITS["CATEGORIES"]``; a CategorySettings
    row in the database overrides them.
    """

    category: str
    default_capacity: Capacity
    cooldown_days: int
    ticket_prefix: str
    average_service_minutes: int
    capacity_exempt: bool = False
    service_desks: int = 1
    alert_threshold_minutes: int = 30
    max_queue_alert: int = 15
    is_active: bool = True

    def __post_init__(self) -> None:
        if self.average_service_minutes <= 0:
            raise ValueError("Average service time must be positive")
        if self.service_desks < 1:
            raise ValueError("At least one service desk is required")

    @property
    def rule(self) -> EligibilityRule:
        return EligibilityRule(cooldown=timedelta(days=self.cooldown_days))


@dataclass(frozen=True)
class CapacityDay:
    """Domain representation of a CapacityDay."""

    date: date
    category: str
    max_capacity: Capacity
    current_count: int
    is_operating_day: bool
    notes: str = ""
    temporary_adjustment: bool = False


@dataclass(frozen=True)
class SlotReservation:
    """Domain representation of a SlotReservation."""

    id: ReservationId
    requester_id: str
    category: str
    date: date
    time_window: TimeWindow | None
    status: ReservationStatus
    created_at: datetime


@dataclass(frozen=True)
class Ticket:
    """Domain representation of a Ticket."""

    ticket_number: TicketNumber
    reservation_id: ReservationId
    requester_id: str
    category: str
    valid_date: date
    time_window: TimeWindow | None
    issued_at: datetime
    status: TicketStatus
    redeemed_at: datetime | None = None
    redeemed_by: str | None = None

    def status_on(self, today: date) -> TicketStatus:
        """Stored status, with ``expired`` derived for an unused past ticket."""
        if self.status == TicketStatus.ACTIVE and today > self.valid_date:
            return TicketStatus.EXPIRED
        return self.status


@dataclass(frozen=True)
class QueueEntry:
    """Domain representation of a QueueEntry."""

    id: QueueEntryId
    ticket_number: TicketNumber
    category: str
    service_date: date
    status: QueueStatus
    joined_at: datetime
    priority: bool = False
    called_at: datetime | None = None
    served_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancel_reason: str = ""

    @property
    def ordering_key(self) -> tuple[datetime, int]:
        """Total arrival order: timestamp, then insertion sequence."""
        return (self.joined_at, self.id.value)

    @property
    def service_duration(self) -> timedelta | None:
        if self.called_at is None or self.completed_at is None:
            return None
        return self.completed_at - self.called_at
