"""Django ORM implementation of the visit stores.

Counters and statuses are changed with guarded ``UPDATE ... WHERE`` statements
so the database, not the Python process, decides which concurrent writer wins.
"""

import logging
from contextlib import AbstractContextManager
from datetime import date, datetime, timedelta

from django.core.cache import cache
from django.db import IntegrityError, OperationalError, transaction
from django.db.models import F, Q
from django.utils import timezone

from visits import conf, models
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

logger = logging.getLogger(__name__)

CATEGORY_FIELDS = (
    "default_capacity",
    "cooldown_days",
    "capacity_exempt",
    "ticket_prefix",
    "average_service_minutes",
    "service_desks",
    "alert_threshold_minutes",
    "max_queue_alert",
    "is_active",
)


def category_cache_key(category: str) -> str:
    return f"visits:category:{category}"


def _window(value: str) -> TimeWindow | None:
    return TimeWindow.from_string(value) if value else None


def _capacity_day(row: models.CapacityDay) -> CapacityDay:
    return CapacityDay(
        date=row.date,
        category=row.category,
        max_capacity=Capacity(row.max_capacity),
        current_count=row.current_count,
        is_operating_day=row.is_operating_day,
        notes=row.notes,
        temporary_adjustment=row.temporary_adjustment,
    )


def _reservation(row: models.SlotReservation) -> SlotReservation:
    return SlotReservation(
        id=ReservationId(row.id),
        requester_id=row.requester_id,
        category=row.category,
        date=row.date,
        time_window=_window(row.time_window),
        status=ReservationStatus(row.status),
        created_at=row.created_at,
    )


def _ticket(row: models.Ticket) -> Ticket:
    return Ticket(
        ticket_number=TicketNumber(row.ticket_number),
        reservation_id=ReservationId(row.reservation_id),
        requester_id=row.requester_id,
        category=row.category,
        valid_date=row.valid_date,
        time_window=_window(row.time_window),
        issued_at=row.issued_at,
        status=TicketStatus(row.status),
        redeemed_at=row.redeemed_at,
        redeemed_by=row.redeemed_by,
    )


def _queue_entry(row: models.QueueEntry) -> QueueEntry:
    return QueueEntry(
        id=QueueEntryId(row.id),
        ticket_number=TicketNumber(row.ticket.ticket_number),
        category=row.category,
        service_date=row.service_date,
        status=QueueStatus(row.status),
        joined_at=row.joined_at,
        priority=row.priority,
        called_at=row.called_at,
        served_at=row.served_at,
        completed_at=row.completed_at,
        cancelled_at=row.cancelled_at,
        cancel_reason=row.cancel_reason,
    )


class DjangoCategoryStore(CategoryStore):
    """Settings defaults overridden by CategorySettings rows, cached."""

    def get(self, category: str) -> CategorySettings:
        key = category_cache_key(category)
        cached = cache.get(key)
        if cached is not None:
            return cached

        row = models.CategorySettings.objects.filter(category=category).values(*CATEGORY_FIELDS).first()
        if row is not None:
            result = conf.category_from_mapping(category, row)
        else:
            result = conf.default_categories().get(category)
        if result is None:
            raise UnknownCategoryError(category)

        cache.set(key, result, conf.get("CATEGORY_CACHE_TIMEOUT"))
        return result

    def operating_weekdays(self) -> frozenset[int]:
        return frozenset(conf.get("OPERATING_WEEKDAYS"))


class DjangoCapacityStore(CapacityStore):
    """PostgreSQL/SQLite-backed capacity ledger storage."""

    def atomic(self) -> AbstractContextManager:
        return transaction.atomic()

    def get_or_create_day(
        self, day: date, category: str, max_capacity: Capacity, is_operating_day: bool
    ) -> CapacityDay:
        row, created = models.CapacityDay.objects.get_or_create(
            date=day,
            category=category,
            defaults={"max_capacity": max_capacity.value, "is_operating_day": is_operating_day},
        )
        if created:
            logger.debug("Initialized capacity day %s/%s max=%s", day, category, max_capacity.value)
        return _capacity_day(row)

    def try_reserve(self, day: date, category: str) -> ReserveOutcome:
        try:
            updated = models.CapacityDay.objects.filter(
                date=day,
                category=category,
                is_operating_day=True,
                current_count__lt=F("max_capacity"),
            ).update(current_count=F("current_count") + 1, updated_at=timezone.now())
        except OperationalError as exc:
            raise StorageConflictError("try_reserve") from exc
        if updated:
            return ReserveOutcome.RESERVED

        is_open = models.CapacityDay.objects.filter(date=day, category=category).values_list(
            "is_operating_day", flat=True
        ).first()
        return ReserveOutcome.FULL if is_open else ReserveOutcome.CLOSED

    def track(self, day: date, category: str) -> None:
        try:
            models.CapacityDay.objects.filter(date=day, category=category).update(
                current_count=F("current_count") + 1, updated_at=timezone.now()
            )
        except OperationalError as exc:
            raise StorageConflictError("track") from exc

    def release(self, day: date, category: str) -> None:
        try:
            with transaction.atomic():
                models.CapacityDay.objects.filter(
                    date=day, category=category, current_count__gt=0
                ).update(current_count=F("current_count") - 1, updated_at=timezone.now())
        except OperationalError as exc:
            raise StorageConflictError("release") from exc

    def update_day(
        self,
        day: date,
        category: str,
        max_capacity: Capacity | None,
        is_operating_day: bool | None,
        notes: str | None,
    ) -> CapacityDay:
        with transaction.atomic():
            row = models.CapacityDay.objects.select_for_update().get(date=day, category=category)
            if max_capacity is not None:
                row.max_capacity = max(max_capacity.value, row.current_count)
            if is_operating_day is not None:
                row.is_operating_day = is_operating_day
            if notes is not None:
                row.notes = notes
            row.temporary_adjustment = True
            row.save()
        return _capacity_day(row)


class DjangoReservationStore(ReservationStore):
    def create(
        self, requester_id: str, category: str, day: date, time_window: TimeWindow | None
    ) -> SlotReservation:
        try:
            with transaction.atomic():
                row = models.SlotReservation.objects.create(
                    requester_id=requester_id,
                    category=category,
                    date=day,
                    time_window=str(time_window) if time_window else "",
                )
        except IntegrityError as exc:
            raise DuplicateReservationError() from exc
        return _reservation(row)

    def get(self, reservation_id: ReservationId) -> SlotReservation | None:
        row = models.SlotReservation.objects.filter(pk=reservation_id.value).first()
        return _reservation(row) if row else None

    def find_open(self, requester_id: str, category: str, day: date) -> SlotReservation | None:
        row = models.SlotReservation.objects.filter(
            requester_id=requester_id,
            category=category,
            date=day,
            status__in=models.HOLDING_RESERVATION_STATUSES,
        ).first()
        return _reservation(row) if row else None

    def consumed_history(self, requester_id: str, category: str) -> list[SlotReservation]:
        rows = models.SlotReservation.objects.filter(
            requester_id=requester_id,
            category=category,
            status=ReservationStatus.CONSUMED.value,
        ).order_by("-date")
        return [_reservation(row) for row in rows]

    def transition(
        self, reservation_id: ReservationId, source: ReservationStatus, target: ReservationStatus
    ) -> bool:
        updated = models.SlotReservation.objects.filter(
            pk=reservation_id.value, status=source.value
        ).update(status=target.value, updated_at=timezone.now())
        return updated == 1

    def list_reserved_before(self, day: date) -> list[SlotReservation]:
        rows = models.SlotReservation.objects.filter(
            status=ReservationStatus.RESERVED.value, date__lt=day
        ).order_by("date")
        return [_reservation(row) for row in rows]


class DjangoTicketStore(TicketStore):
    def number_exists(self, ticket_number: TicketNumber) -> bool:
        return models.Ticket.objects.filter(ticket_number=ticket_number.value).exists()

    def count_for_prefix(self, prefix: str, year: int) -> int:
        return models.Ticket.objects.filter(ticket_number__startswith=f"{prefix}-{year:04d}-").count()

    def create(self, ticket: Ticket) -> Ticket:
        try:
            with transaction.atomic():
                models.Ticket.objects.create(
                    ticket_number=ticket.ticket_number.value,
                    reservation_id=ticket.reservation_id.value,
                    requester_id=ticket.requester_id,
                    category=ticket.category,
                    valid_date=ticket.valid_date,
                    time_window=str(ticket.time_window) if ticket.time_window else "",
                    status=ticket.status.value,
                    issued_at=ticket.issued_at,
                )
        except IntegrityError as exc:
            raise StorageConflictError("create_ticket") from exc
        return ticket

    def get(self, ticket_number: TicketNumber) -> Ticket | None:
        row = models.Ticket.objects.filter(ticket_number=ticket_number.value).first()
        return _ticket(row) if row else None

    def get_for_reservation(self, reservation_id: ReservationId) -> Ticket | None:
        row = models.Ticket.objects.filter(reservation_id=reservation_id.value).first()
        return _ticket(row) if row else None

    def mark_used(self, ticket_number: TicketNumber, redeemer_id: str, at: datetime) -> bool:
        try:
            with transaction.atomic():
                updated = models.Ticket.objects.filter(
                    ticket_number=ticket_number.value, status=TicketStatus.ACTIVE.value
                ).update(status=TicketStatus.USED.value, redeemed_at=at, redeemed_by=redeemer_id)
        except OperationalError as exc:
            raise StorageConflictError("redeem") from exc
        return updated == 1

    def cancel(self, ticket_number: TicketNumber) -> bool:
        updated = models.Ticket.objects.filter(
            ticket_number=ticket_number.value, status=TicketStatus.ACTIVE.value
        ).update(status=TicketStatus.CANCELLED.value)
        return updated == 1

    def undo_use(self, ticket_number: TicketNumber, redeemed_at: datetime, target: TicketStatus) -> bool:
        updated = models.Ticket.objects.filter(
            ticket_number=ticket_number.value,
            status=TicketStatus.USED.value,
            redeemed_at=redeemed_at,
        ).update(status=target.value, redeemed_at=None, redeemed_by=None)
        return updated == 1


class DjangoQueueStore(QueueStore):
    TIMESTAMP_FIELDS = {
        QueueStatus.CALLED: "called_at",
        QueueStatus.SERVED: "served_at",
        QueueStatus.COMPLETED: "completed_at",
        QueueStatus.CANCELLED: "cancelled_at",
        QueueStatus.NO_SHOW: "cancelled_at",
    }

    def atomic(self) -> AbstractContextManager:
        return transaction.atomic()

    def _rows(self):
        return models.QueueEntry.objects.select_related("ticket")

    def create(
        self,
        ticket_number: TicketNumber,
        category: str,
        service_date: date,
        joined_at: datetime,
        priority: bool,
    ) -> QueueEntry:
        ticket_id = models.Ticket.objects.values_list("id", flat=True).get(
            ticket_number=ticket_number.value
        )
        try:
            with transaction.atomic():
                row = models.QueueEntry.objects.create(
                    ticket_id=ticket_id,
                    category=category,
                    service_date=service_date,
                    joined_at=joined_at,
                    priority=priority,
                )
        except IntegrityError as exc:
            raise DuplicateQueueEntryError() from exc
        return _queue_entry(self._rows().get(pk=row.pk))

    def get(self, entry_id: QueueEntryId) -> QueueEntry | None:
        row = self._rows().filter(pk=entry_id.value).first()
        return _queue_entry(row) if row else None

    def has_open_entry(self, ticket_number: TicketNumber) -> bool:
        return models.QueueEntry.objects.filter(
            ticket__ticket_number=ticket_number.value,
            status__in=models.OPEN_QUEUE_STATUSES,
        ).exists()

    def count_waiting_before(self, entry: QueueEntry) -> int:
        return models.QueueEntry.objects.filter(
            Q(joined_at__lt=entry.joined_at) | Q(joined_at=entry.joined_at, id__lt=entry.id.value),
            category=entry.category,
            service_date=entry.service_date,
            status=QueueStatus.WAITING.value,
        ).count()

    def list_entries(
        self, category: str, service_date: date, statuses: tuple[QueueStatus, ...] | None = None
    ) -> list[QueueEntry]:
        rows = self._rows().filter(category=category, service_date=service_date)
        if statuses is not None:
            rows = rows.filter(status__in=[status.value for status in statuses])
        return [_queue_entry(row) for row in rows.order_by("joined_at", "id")]

    def next_waiting(self, category: str, service_date: date) -> QueueEntry | None:
        row = (
            self._rows()
            .filter(category=category, service_date=service_date, status=QueueStatus.WAITING.value)
            .order_by("-priority", "joined_at", "id")
            .first()
        )
        return _queue_entry(row) if row else None

    def transition(
        self,
        entry_id: QueueEntryId,
        sources: tuple[QueueStatus, ...],
        target: QueueStatus,
        at: datetime,
        reason: str = "",
    ) -> QueueEntry | None:
        changes = {"status": target.value, self.TIMESTAMP_FIELDS[target]: at}
        if reason:
            changes["cancel_reason"] = reason
        updated = models.QueueEntry.objects.filter(
            pk=entry_id.value, status__in=[source.value for source in sources]
        ).update(**changes)
        if not updated:
            return None
        return self.get(entry_id)

    def recent_service_durations(self, category: str, limit: int) -> list[timedelta]:
        rows = (
            models.QueueEntry.objects.filter(
                category=category,
                status=QueueStatus.COMPLETED.value,
                called_at__isnull=False,
                completed_at__isnull=False,
            )
            .order_by("-completed_at")
            .values_list("called_at", "completed_at")[:limit]
        )
        return [completed_at - called_at for called_at, completed_at in rows]
