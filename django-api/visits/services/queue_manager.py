"""Queue manager - the live, same-day queue per category.

Position is derived on every read from the (joined_at, id) arrival order; no
row ever stores another row's position, so joins and removals never cascade
into renumbering writes.
"""

import logging
from collections import Counter
from datetime import date, datetime, timedelta

from django.utils import timezone

from visits import events
from visits.domain import QueueEntry, QueueEntryId, QueueStatus, TicketNumber
from visits.domain.errors import DuplicateQueueEntryError, ErrorCode, QueueEntryNotFoundError
from visits.domain.results import (
    CheckedIn,
    CheckInResult,
    QueueAlert,
    QueueSnapshot,
    Rejection,
    Transitioned,
    TransitionResult,
    WaitingEntry,
)
from visits.domain.statuses import queue_sources
from visits.services.credential_issuer import CredentialIssuer
from visits.stores.interfaces import CategoryStore, QueueStore

logger = logging.getLogger(__name__)


class QueueManager:
    """Service owning QueueEntry state and derived position/wait values."""

    def __init__(
        self,
        queue: QueueStore,
        issuer: CredentialIssuer,
        categories: CategoryStore,
        rolling_window: int = 20,
    ) -> None:
        self._queue = queue
        self._issuer = issuer
        self._categories = categories
        self._rolling_window = rolling_window

    def get_entry(self, entry_id: QueueEntryId) -> QueueEntry:
        """Return a queue entry.

        Raises:
            QueueEntryNotFoundError: If the entry does not exist.
        """
        entry = self._queue.get(entry_id)
        if entry is None:
            raise QueueEntryNotFoundError(str(entry_id))
        return entry

    def check_in(
        self,
        ticket_number: TicketNumber,
        redeemer_id: str,
        today: date | None = None,
        priority: bool = False,
        now: datetime | None = None,
    ) -> CheckInResult:
        """Redeem the ticket and put its holder in the waiting line."""
        today = today or timezone.localdate()
        now = now or timezone.now()

        if self._queue.has_open_entry(ticket_number):
            return Rejection(code=ErrorCode.ALREADY_IN_QUEUE, message="Ticket is already in the queue")

        redemption = None
        try:
            with self._queue.atomic():
                redemption = self._issuer.redeem(ticket_number, redeemer_id, today=today, now=now)
                if not redemption.ok:
                    return redemption
                entry = self._queue.create(ticket_number, redemption.ticket.category, today, now, priority)
        except DuplicateQueueEntryError as exc:
            self._issuer.undo_redemption(redemption.ticket)
            return Rejection(code=exc.code, message=exc.message)
        except Exception:
            if redemption is not None and redemption.ok:
                logger.warning("Queue entry for %s could not be written", ticket_number)
                self._issuer.undo_redemption(redemption.ticket)
            raise

        position = self.position(entry.id)
        logger.info(
            "Checked in %s to %s queue at position %s", ticket_number, entry.category, position
        )
        return CheckedIn(entry=entry, position=position, estimated_wait=self.estimated_wait(entry.id))

    def check_in_payload(
        self,
        payload: str,
        redeemer_id: str,
        today: date | None = None,
        priority: bool = False,
    ) -> CheckInResult:
        """Check in from a scanned payload; the stored ticket is re-validated.

        Raises:
            InvalidPayloadError: If the payload signature does not verify.
        """
        ticket_number = self._issuer.ticket_number_from_payload(payload)
        return self.check_in(ticket_number, redeemer_id, today=today, priority=priority)

    def position(self, entry_id: QueueEntryId) -> int:
        """1-based place among waiting entries; 0 once the entry left the line."""
        entry = self.get_entry(entry_id)
        if entry.status is not QueueStatus.WAITING:
            return 0
        return self._queue.count_waiting_before(entry) + 1

    def average_service_time(self, category: str) -> timedelta:
        """Rolling mean of recent services, or the configured default without history."""
        durations = self._queue.recent_service_durations(category, self._rolling_window)
        if durations:
            return sum(durations, timedelta(0)) / len(durations)
        return timedelta(minutes=self._categories.get(category).average_service_minutes)

    def _wait_for(self, category: str, ahead: int) -> timedelta:
        desks = self._categories.get(category).service_desks
        return self.average_service_time(category) * ahead / desks

    def estimated_wait(self, entry_id: QueueEntryId) -> timedelta:
        position = self.position(entry_id)
        if position == 0:
            return timedelta(0)
        return self._wait_for(self.get_entry(entry_id).category, position - 1)

    def call_next(
        self, category: str, today: date | None = None, now: datetime | None = None
    ) -> QueueEntry | None:
        """Call the next waiting entry, or return None at once if nobody waits."""
        self._categories.get(category)
        today = today or timezone.localdate()
        now = now or timezone.now()

        while True:
            candidate = self._queue.next_waiting(category, today)
            if candidate is None:
                return None
            called = self._queue.transition(
                candidate.id, (QueueStatus.WAITING,), QueueStatus.CALLED, now
            )
            if called is not None:
                logger.info("Called entry %s (%s) in %s", called.id, called.ticket_number, category)
                events.queue_entry_called.send(sender=self.__class__, entry=called)
                return called
            # Another desk called or cancelled this entry first; pick again.

    def _transition(
        self,
        entry_id: QueueEntryId,
        target: QueueStatus,
        now: datetime | None = None,
        reason: str = "",
    ) -> TransitionResult:
        current = self.get_entry(entry_id)
        updated = self._queue.transition(
            entry_id, queue_sources(target), target, now or timezone.now(), reason
        )
        if updated is None:
            current = self.get_entry(entry_id)
            return Rejection(
                code=ErrorCode.INVALID_STATE_TRANSITION,
                message=f"Cannot move entry from {current.status.value} to {target.value}",
            )
        logger.info("Queue entry %s %s -> %s", entry_id, current.status.value, target.value)
        return Transitioned(entry=updated)

    def mark_served(self, entry_id: QueueEntryId, now: datetime | None = None) -> TransitionResult:
        return self._transition(entry_id, QueueStatus.SERVED, now)

    def mark_completed(self, entry_id: QueueEntryId, now: datetime | None = None) -> TransitionResult:
        result = self._transition(entry_id, QueueStatus.COMPLETED, now)
        if result.ok:
            events.queue_entry_completed.send(sender=self.__class__, entry=result.entry)
        return result

    def cancel(
        self,
        entry_id: QueueEntryId,
        reason: str = "",
        no_show: bool = False,
        now: datetime | None = None,
    ) -> TransitionResult:
        """Take a waiting or called entry out of the queue."""
        target = QueueStatus.NO_SHOW if no_show else QueueStatus.CANCELLED
        result = self._transition(entry_id, target, now, reason or target.value)
        if result.ok:
            events.queue_entry_cancelled.send(
                sender=self.__class__, entry=result.entry, reason=result.entry.cancel_reason
            )
        return result

    def snapshot(
        self, category: str, today: date | None = None, now: datetime | None = None
    ) -> QueueSnapshot:
        """Staff dashboard view: waiting line with positions, counts and alerts."""
        settings = self._categories.get(category)
        today = today or timezone.localdate()
        now = now or timezone.now()

        entries = self._queue.list_entries(category, today)
        waiting_entries = [entry for entry in entries if entry.status is QueueStatus.WAITING]
        average = self.average_service_time(category)
        waiting = tuple(
            WaitingEntry(
                entry=entry,
                position=index + 1,
                estimated_wait=average * index / settings.service_desks,
            )
            for index, entry in enumerate(waiting_entries)
        )

        alerts = []
        if len(waiting) > settings.max_queue_alert:
            alerts.append(
                QueueAlert(level="warning", message=f"High queue volume: {len(waiting)} visitors waiting")
            )
        threshold = timedelta(minutes=settings.alert_threshold_minutes)
        long_waits = sum(1 for entry in waiting_entries if now - entry.joined_at > threshold)
        if long_waits:
            alerts.append(
                QueueAlert(
                    level="error",
                    message=f"{long_waits} visitors waiting over {settings.alert_threshold_minutes} minutes",
                )
            )

        return QueueSnapshot(
            category=category,
            service_date=today,
            waiting=waiting,
            called=tuple(entry for entry in entries if entry.status is QueueStatus.CALLED),
            status_counts=dict(Counter(entry.status.value for entry in entries)),
            average_service_time=average,
            alerts=tuple(alerts),
        )
