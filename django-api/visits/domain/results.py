"""Typed outcomes for expected, user-facing decisions.

Denials are values, not exceptions: an ineligible requester, a full day or
a ticket presented on the wrong day are normal answers for the caller.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from enum import StrEnum

from visits.domain.errors import ErrorCode
from visits.domain.models import QueueEntry, SlotReservation, Ticket


class ReserveOutcome(StrEnum):
    RESERVED = "reserved"
    FULL = "full"
    CLOSED = "closed"


@dataclass(frozen=True)
class Availability:
    date: date
    category: str
    max_capacity: int
    current_count: int
    is_operating_day: bool

    @property
    def remaining(self) -> int:
        if not self.is_operating_day:
            return 0
        return max(self.max_capacity - self.current_count, 0)


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    next_available_date: date | None = None

    @classmethod
    def allowed(cls) -> "Eligibility":
        return cls(eligible=True)

    @classmethod
    def blocked_until(cls, next_available_date: date) -> "Eligibility":
        return cls(eligible=False, next_available_date=next_available_date)


@dataclass(frozen=True)
class Rejection:
    """A refused operation with a code and a user-safe message."""

    code: ErrorCode
    message: str

    ok = False


@dataclass(frozen=True)
class SlotGranted:
    reservation: SlotReservation

    ok = True


@dataclass(frozen=True)
class SlotDenied(Rejection):
    next_available_date: date | None = None
    alternate_dates: tuple[date, ...] = ()


@dataclass(frozen=True)
class ReservationReleased:
    reservation: SlotReservation

    ok = True


@dataclass(frozen=True)
class Redeemed:
    ticket: Ticket

    ok = True


@dataclass(frozen=True)
class RedemptionRejected(Rejection):
    pass


@dataclass(frozen=True)
class CheckedIn:
    entry: QueueEntry
    position: int
    estimated_wait: timedelta

    ok = True


@dataclass(frozen=True)
class Transitioned:
    entry: QueueEntry

    ok = True


@dataclass(frozen=True)
class WaitingEntry:
    entry: QueueEntry
    position: int
    estimated_wait: timedelta


@dataclass(frozen=True)
class QueueAlert:
    level: str
    message: str


@dataclass(frozen=True)
class QueueSnapshot:
    """Point-in-time view of one category's queue; re-query for updates."""

    category: str
    service_date: date
    waiting: tuple[WaitingEntry, ...]
    called: tuple[QueueEntry, ...]
    status_counts: dict[str, int]
    average_service_time: timedelta
    alerts: tuple[QueueAlert, ...] = ()


@dataclass(frozen=True)
class Admitted:
    reservation: SlotReservation
    ticket: Ticket
    payload: str

    ok = True


SlotResult = SlotGranted | SlotDenied
ReleaseResult = ReservationReleased | Rejection
RedemptionResult = Redeemed | RedemptionRejected
CheckInResult = CheckedIn | Rejection
TransitionResult = Transitioned | Rejection
AdmissionResult = Admitted | SlotDenied | Rejection
