"""Store interfaces (repository pattern).

Stores must be swappable and return domain models. Every method that
changes a status is a conditional update: it only applies when the record
is still in one of the expected source statuses, and reports whether it did.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date, datetime, timedelta

from visits.domain import (
    Capacity,
    CapacityDay,
    CategorySettings,
    QueueEntry,
    QueueEntryId,
    QueueStatus,
    ReservationId,
    ReservationStatus,
    SlotReservation,
    Ticket,
    TicketNumber,
    TicketStatus,
    TimeWindow,
)
from visits.domain.results import ReserveOutcome


class CategoryStore(ABC):
    """Interface for category configuration lookups."""

    @abstractmethod
    def get(self, category: str) -> CategorySettings:
        """Return settings for a category.

        Raises:
            UnknownCategoryError: If the category is not configured.
        """
        ...

    @abstractmethod
    def operating_weekdays(self) -> frozenset[int]:
        """Return weekdays (Monday == 0) on which visits are served."""
        ...


class CapacityStore(ABC):
    """Interface for CapacityDay counters."""

    @abstractmethod
    def atomic(self) -> AbstractContextManager:
        """Context in which capacity and reservation writes commit together."""
        ...

    @abstractmethod
    def get_or_create_day(
        self, day: date, category: str, max_capacity: Capacity, is_operating_day: bool
    ) -> CapacityDay:
        """Return the CapacityDay, creating it with the given defaults if absent."""
        ...

    @abstractmethod
    def try_reserve(self, day: date, category: str) -> ReserveOutcome:
        """Atomically take one unit of capacity if the day is open and not full."""
        ...

    @abstractmethod
    def track(self, day: date, category: str) -> None:
        """Increment the counter without a capacity guard."""
        ...

    @abstractmethod
    def release(self, day: date, category: str) -> None:
        """Atomically give back one unit of capacity, floored at zero."""
        ...

    @abstractmethod
    def update_day(
        self,
        day: date,
        category: str,
        max_capacity: Capacity | None,
        is_operating_day: bool | None,
        notes: str | None,
    ) -> CapacityDay:
        """Apply a staff adjustment to an existing day."""
        ...


class ReservationStore(ABC):
    """Interface for SlotReservation persistence."""

    @abstractmethod
    def create(
        self, requester_id: str, category: str, day: date, time_window: TimeWindow | None
    ) -> SlotReservation:
        """Create a reservation in status ``reserved``.

        Raises:
            DuplicateReservationError: If an open reservation holds the same key.
        """
        ...

    @abstractmethod
    def get(self, reservation_id: ReservationId) -> SlotReservation | None:
        ...

    @abstractmethod
    def find_open(self, requester_id: str, category: str, day: date) -> SlotReservation | None:
        """Return the reserved or consumed reservation for this key, if any."""
        ...

    @abstractmethod
    def consumed_history(self, requester_id: str, category: str) -> list[SlotReservation]:
        """Return consumed reservations, most recent date first."""
        ...

    @abstractmethod
    def transition(
        self, reservation_id: ReservationId, source: ReservationStatus, target: ReservationStatus
    ) -> bool:
        ...

    @abstractmethod
    def list_reserved_before(self, day: date) -> list[SlotReservation]:
        """Return ``reserved`` reservations dated strictly before ``day``."""
        ...


class TicketStore(ABC):
    """Interface for Ticket persistence."""

    @abstractmethod
    def number_exists(self, ticket_number: TicketNumber) -> bool:
        ...

    @abstractmethod
    def count_for_prefix(self, prefix: str, year: int) -> int:
        """Return how many tickets carry ``<prefix>-<year>-``."""
        ...

    @abstractmethod
    def create(self, ticket: Ticket) -> Ticket:
        """Persist a new ticket.

        Raises:
            StorageConflictError: If the ticket number was taken concurrently.
        """
        ...

    @abstractmethod
    def get(self, ticket_number: TicketNumber) -> Ticket | None:
        ...

    @abstractmethod
    def get_for_reservation(self, reservation_id: ReservationId) -> Ticket | None:
        ...

    @abstractmethod
    def mark_used(self, ticket_number: TicketNumber, redeemer_id: str, at: datetime) -> bool:
        """Move an ``active`` ticket to ``used``; False if it was not active."""
        ...

    @abstractmethod
    def cancel(self, ticket_number: TicketNumber) -> bool:
        """Move an ``active`` ticket to ``cancelled``; False if it was not active."""
        ...

    @abstractmethod
    def undo_use(self, ticket_number: TicketNumber, redeemed_at: datetime, target: TicketStatus) -> bool:
        """Move a ticket used at ``redeemed_at`` to ``target`` and clear its redemption.

        False if the ticket is not used or was redeemed at another time.
        """
        ...


class QueueStore(ABC):
    """Interface for QueueEntry persistence."""

    @abstractmethod
    def atomic(self) -> AbstractContextManager:
        """Context in which a redemption and its queue entry commit together."""
        ...

    @abstractmethod
    def create(
        self,
        ticket_number: TicketNumber,
        category: str,
        service_date: date,
        joined_at: datetime,
        priority: bool,
    ) -> QueueEntry:
        """Create a ``waiting`` entry.

        Raises:
            DuplicateQueueEntryError: If the ticket already has an open entry.
        """
        ...

    @abstractmethod
    def get(self, entry_id: QueueEntryId) -> QueueEntry | None:
        ...

    @abstractmethod
    def has_open_entry(self, ticket_number: TicketNumber) -> bool:
        ...

    @abstractmethod
    def count_waiting_before(self, entry: QueueEntry) -> int:
        """Count waiting entries of the same category and day ordered before ``entry``."""
        ...

    @abstractmethod
    def list_entries(
        self, category: str, service_date: date, statuses: tuple[QueueStatus, ...] | None = None
    ) -> list[QueueEntry]:
        """Return entries ordered by (joined_at, id)."""
        ...

    @abstractmethod
    def next_waiting(self, category: str, service_date: date) -> QueueEntry | None:
        """Return the waiting entry to call next: priority tier first, then FIFO."""
        ...

    @abstractmethod
    def transition(
        self,
        entry_id: QueueEntryId,
        sources: tuple[QueueStatus, ...],
        target: QueueStatus,
        at: datetime,
        reason: str = "",
    ) -> QueueEntry | None:
        """Apply a status change and stamp its timestamp; None if not in ``sources``."""
        ...

    @abstractmethod
    def recent_service_durations(self, category: str, limit: int) -> list[timedelta]:
        """Return called-to-completed durations of the latest completed entries."""
        ...
