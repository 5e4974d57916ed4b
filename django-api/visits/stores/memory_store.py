"""In-process implementation of the visit stores.

Each CapacityDay key and each ticket number gets its own lock, so callers
racing on one key serialize while unrelated keys proceed in parallel. Used
by the unit tests and by single-process deployments without a database.
"""

import itertools
import threading
import uuid
from collections import defaultdict
from contextlib import AbstractContextManager, nullcontext
from dataclasses import replace
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
from visits.domain.errors import (
    DuplicateQueueEntryError,
    DuplicateReservationError,
    StorageConflictError,
    UnknownCategoryError,
)
from visits.domain.results import ReserveOutcome
from visits.stores.interfaces import (
    CapacityStore,
    CategoryStore,
    QueueStore,
    ReservationStore,
    TicketStore,
)


class KeyedLocks:
    """Lazily created lock per key."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[object, threading.Lock] = {}

    def __call__(self, key: object) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock


class InMemoryCategoryStore(CategoryStore):
    def __init__(
        self, categories: dict[str, CategorySettings], operating_weekdays: frozenset[int]
    ) -> None:
        self._categories = dict(categories)
        self._weekdays = frozenset(operating_weekdays)

    def get(self, category: str) -> CategorySettings:
        try:
            return self._categories[category]
        except KeyError:
            raise UnknownCategoryError(category) from None

    def operating_weekdays(self) -> frozenset[int]:
        return self._weekdays


class InMemoryCapacityStore(CapacityStore):
    def __init__(self) -> None:
        self._days: dict[tuple[date, str], CapacityDay] = {}
        self._locks = KeyedLocks()
        self._transaction = threading.RLock()

    def atomic(self) -> AbstractContextManager:
        return self._transaction

    def get_or_create_day(
        self, day: date, category: str, max_capacity: Capacity, is_operating_day: bool
    ) -> CapacityDay:
        key = (day, category)
        with self._locks(key):
            existing = self._days.get(key)
            if existing is None:
                existing = self._days[key] = CapacityDay(
                    date=day,
                    category=category,
                    max_capacity=max_capacity,
                    current_count=0,
                    is_operating_day=is_operating_day,
                )
            return existing

    def try_reserve(self, day: date, category: str) -> ReserveOutcome:
        key = (day, category)
        with self._locks(key):
            current = self._days.get(key)
            if current is None or not current.is_operating_day:
                return ReserveOutcome.CLOSED
            if current.current_count >= current.max_capacity.value:
                return ReserveOutcome.FULL
            self._days[key] = replace(current, current_count=current.current_count + 1)
            return ReserveOutcome.RESERVED

    def track(self, day: date, category: str) -> None:
        key = (day, category)
        with self._locks(key):
            current = self._days[key]
            self._days[key] = replace(current, current_count=current.current_count + 1)

    def release(self, day: date, category: str) -> None:
        key = (day, category)
        with self._locks(key):
            current = self._days.get(key)
            if current is not None and current.current_count > 0:
                self._days[key] = replace(current, current_count=current.current_count - 1)

    def update_day(
        self,
        day: date,
        category: str,
        max_capacity: Capacity | None,
        is_operating_day: bool | None,
        notes: str | None,
    ) -> CapacityDay:
        key = (day, category)
        with self._locks(key):
            current = self._days[key]
            changes: dict[str, object] = {"temporary_adjustment": True}
            if max_capacity is not None:
                changes["max_capacity"] = Capacity(max(max_capacity.value, current.current_count))
            if is_operating_day is not None:
                changes["is_operating_day"] = is_operating_day
            if notes is not None:
                changes["notes"] = notes
            updated = self._days[key] = replace(current, **changes)
            return updated


class InMemoryReservationStore(ReservationStore):
    def __init__(self) -> None:
        self._rows: dict[ReservationId, SlotReservation] = {}
        self._lock = threading.Lock()

    def create(
        self, requester_id: str, category: str, day: date, time_window: TimeWindow | None
    ) -> SlotReservation:
        with self._lock:
            if self._find_open(requester_id, category, day) is not None:
                raise DuplicateReservationError()
            reservation = SlotReservation(
                id=ReservationId(uuid.uuid4()),
                requester_id=requester_id,
                category=category,
                date=day,
                time_window=time_window,
                status=ReservationStatus.RESERVED,
                created_at=datetime.now().astimezone(),
            )
            self._rows[reservation.id] = reservation
            return reservation

    def get(self, reservation_id: ReservationId) -> SlotReservation | None:
        return self._rows.get(reservation_id)

    def _find_open(self, requester_id: str, category: str, day: date) -> SlotReservation | None:
        for row in self._rows.values():
            if (
                row.requester_id == requester_id
                and row.category == category
                and row.date == day
                and row.status in ReservationStatus.holding_capacity()
            ):
                return row
        return None

    def find_open(self, requester_id: str, category: str, day: date) -> SlotReservation | None:
        with self._lock:
            return self._find_open(requester_id, category, day)

    def consumed_history(self, requester_id: str, category: str) -> list[SlotReservation]:
        with self._lock:
            rows = [
                row
                for row in self._rows.values()
                if row.requester_id == requester_id
                and row.category == category
                and row.status == ReservationStatus.CONSUMED
            ]
        return sorted(rows, key=lambda row: row.date, reverse=True)

    def transition(
        self, reservation_id: ReservationId, source: ReservationStatus, target: ReservationStatus
    ) -> bool:
        with self._lock:
            current = self._rows.get(reservation_id)
            if current is None or current.status != source:
                return False
            self._rows[reservation_id] = replace(current, status=target)
            return True

    def list_reserved_before(self, day: date) -> list[SlotReservation]:
        with self._lock:
            rows = [
                row
                for row in self._rows.values()
                if row.status == ReservationStatus.RESERVED and row.date < day
            ]
        return sorted(rows, key=lambda row: row.date)


class InMemoryTicketStore(TicketStore):
    def __init__(self) -> None:
        self._rows: dict[TicketNumber, Ticket] = {}
        self._lock = threading.Lock()
        self._locks = KeyedLocks()

    def number_exists(self, ticket_number: TicketNumber) -> bool:
        return ticket_number in self._rows

    def count_for_prefix(self, prefix: str, year: int) -> int:
        start = f"{prefix}-{year:04d}-"
        return sum(1 for number in list(self._rows) if number.value.startswith(start))

    def create(self, ticket: Ticket) -> Ticket:
        with self._lock:
            if ticket.ticket_number in self._rows:
                raise StorageConflictError("create_ticket")
            self._rows[ticket.ticket_number] = ticket
        return ticket

    def get(self, ticket_number: TicketNumber) -> Ticket | None:
        return self._rows.get(ticket_number)

    def get_for_reservation(self, reservation_id: ReservationId) -> Ticket | None:
        for ticket in list(self._rows.values()):
            if ticket.reservation_id == reservation_id:
                return ticket
        return None

    def _conditional(
        self,
        ticket_number: TicketNumber,
        changes: dict[str, object],
        source: TicketStatus = TicketStatus.ACTIVE,
        used_at: datetime | None = None,
    ) -> bool:
        with self._locks(ticket_number):
            current = self._rows.get(ticket_number)
            if current is None or current.status != source:
                return False
            if used_at is not None and current.redeemed_at != used_at:
                return False
            self._rows[ticket_number] = replace(current, **changes)
            return True

    def mark_used(self, ticket_number: TicketNumber, redeemer_id: str, at: datetime) -> bool:
        return self._conditional(
            ticket_number, {"status": TicketStatus.USED, "redeemed_at": at, "redeemed_by": redeemer_id}
        )

    def cancel(self, ticket_number: TicketNumber) -> bool:
        return self._conditional(ticket_number, {"status": TicketStatus.CANCELLED})

    def undo_use(self, ticket_number: TicketNumber, redeemed_at: datetime, target: TicketStatus) -> bool:
        return self._conditional(
            ticket_number,
            {"status": target, "redeemed_at": None, "redeemed_by": None},
            source=TicketStatus.USED,
            used_at=redeemed_at,
        )


class InMemoryQueueStore(QueueStore):
    TIMESTAMP_FIELDS = {
        QueueStatus.CALLED: "called_at",
        QueueStatus.SERVED: "served_at",
        QueueStatus.COMPLETED: "completed_at",
        QueueStatus.CANCELLED: "cancelled_at",
        QueueStatus.NO_SHOW: "cancelled_at",
    }

    def __init__(self) -> None:
        self._rows: dict[QueueEntryId, QueueEntry] = {}
        self._sequence = itertools.count(1)
        self._lock = threading.Lock()

    def atomic(self) -> AbstractContextManager:
        # Writes apply immediately; QueueManager compensates a failed check-in itself.
        return nullcontext()

    def _snapshot(self) -> list[QueueEntry]:
        with self._lock:
            return list(self._rows.values())

    def create(
        self,
        ticket_number: TicketNumber,
        category: str,
        service_date: date,
        joined_at: datetime,
        priority: bool,
    ) -> QueueEntry:
        with self._lock:
            for row in self._rows.values():
                if row.ticket_number == ticket_number and row.status in QueueStatus.open_statuses():
                    raise DuplicateQueueEntryError()
            entry = QueueEntry(
                id=QueueEntryId(next(self._sequence)),
                ticket_number=ticket_number,
                category=category,
                service_date=service_date,
                status=QueueStatus.WAITING,
                joined_at=joined_at,
                priority=priority,
            )
            self._rows[entry.id] = entry
            return entry

    def get(self, entry_id: QueueEntryId) -> QueueEntry | None:
        return self._rows.get(entry_id)

    def has_open_entry(self, ticket_number: TicketNumber) -> bool:
        return any(
            row.ticket_number == ticket_number and row.status in QueueStatus.open_statuses()
            for row in self._snapshot()
        )

    def count_waiting_before(self, entry: QueueEntry) -> int:
        return sum(
            1
            for row in self._snapshot()
            if row.category == entry.category
            and row.service_date == entry.service_date
            and row.status == QueueStatus.WAITING
            and row.ordering_key < entry.ordering_key
        )

    def list_entries(
        self, category: str, service_date: date, statuses: tuple[QueueStatus, ...] | None = None
    ) -> list[QueueEntry]:
        rows = [
            row
            for row in self._snapshot()
            if row.category == category
            and row.service_date == service_date
            and (statuses is None or row.status in statuses)
        ]
        return sorted(rows, key=lambda row: row.ordering_key)

    def next_waiting(self, category: str, service_date: date) -> QueueEntry | None:
        waiting = self.list_entries(category, service_date, (QueueStatus.WAITING,))
        if not waiting:
            return None
        return min(waiting, key=lambda row: (not row.priority, row.ordering_key))

    def transition(
        self,
        entry_id: QueueEntryId,
        sources: tuple[QueueStatus, ...],
        target: QueueStatus,
        at: datetime,
        reason: str = "",
    ) -> QueueEntry | None:
        with self._lock:
            current = self._rows.get(entry_id)
            if current is None or current.status not in sources:
                return None
            changes: dict[str, object] = {"status": target, self.TIMESTAMP_FIELDS[target]: at}
            if reason:
                changes["cancel_reason"] = reason
            updated = self._rows[entry_id] = replace(current, **changes)
            return updated

    def recent_service_durations(self, category: str, limit: int) -> list[timedelta]:
        completed = [
            row
            for row in self._snapshot()
            if row.category == category
            and row.status == QueueStatus.COMPLETED
            and row.service_duration is not None
        ]
        completed.sort(key=lambda row: row.completed_at, reverse=True)
        return [row.service_duration for row in completed[:limit]]
