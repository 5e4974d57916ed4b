"""Slot allocator - admission decisions against the capacity ledger.

There are no cross-entity transactions in the admission flow: once
``try_reserve`` succeeded, any later failure must be compensated with an
explicit ``release``.

A reservation and its ticket leave ``reserved``/``active`` together. The
ticket's conditional status change decides the race: cancelling voids the
ticket before giving capacity back, and redeeming marks it used before
consuming the reservation. Whichever side changes the ticket first wins.
"""

import logging
from datetime import date

from django.utils import timezone

from visits import events
from visits.domain import ReservationId, ReservationStatus, SlotReservation, TicketStatus, TimeWindow
from visits.domain.errors import DuplicateReservationError, ErrorCode, ReservationNotFoundError
from visits.domain.results import (
    ReleaseResult,
    Rejection,
    ReservationReleased,
    ReserveOutcome,
    SlotDenied,
    SlotGranted,
    SlotResult,
)
from visits.services.capacity_ledger import CapacityLedger
from visits.services.eligibility import EligibilityEvaluator
from visits.stores.interfaces import CategoryStore, ReservationStore, TicketStore

logger = logging.getLogger(__name__)


class SlotAllocator:
    """Service owning SlotReservation creation and release."""

    def __init__(
        self,
        ledger: CapacityLedger,
        evaluator: EligibilityEvaluator,
        reservations: ReservationStore,
        tickets: TicketStore,
        categories: CategoryStore,
    ) -> None:
        self._ledger = ledger
        self._evaluator = evaluator
        self._reservations = reservations
        self._tickets = tickets
        self._categories = categories

    def get_reservation(self, reservation_id: ReservationId) -> SlotReservation:
        """Return a reservation.

        Raises:
            ReservationNotFoundError: If the reservation does not exist.
        """
        reservation = self._reservations.get(reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(str(reservation_id))
        return reservation

    def request_slot(
        self,
        requester_id: str,
        category: str,
        day: date,
        time_window: TimeWindow | None = None,
        today: date | None = None,
    ) -> SlotResult:
        """Reserve capacity and a slot for one requester.

        Raises:
            UnknownCategoryError: If the category is not configured.
        """
        today = today or timezone.localdate()
        settings = self._categories.get(category)

        if day < today:
            return SlotDenied(code=ErrorCode.INVALID_DATE, message="Visit date is in the past")

        if self._reservations.find_open(requester_id, category, day) is not None:
            return SlotDenied(
                code=ErrorCode.DUPLICATE_RESERVATION,
                message="You already have a reservation for this date",
            )

        eligibility = self._evaluator.check(requester_id, category, today)
        if not eligibility.eligible:
            return SlotDenied(
                code=ErrorCode.INELIGIBLE,
                message=f"Next visit possible from {eligibility.next_available_date.isoformat()}",
                next_available_date=eligibility.next_available_date,
            )

        if settings.capacity_exempt:
            self._ledger.track(day, category)
        else:
            outcome = self._ledger.try_reserve(day, category)
            if outcome is not ReserveOutcome.RESERVED:
                message = "The day is fully booked" if outcome is ReserveOutcome.FULL else "Closed on this day"
                return SlotDenied(
                    code=ErrorCode.NO_CAPACITY,
                    message=message,
                    alternate_dates=self._ledger.alternate_dates(category, day),
                )

        try:
            reservation = self._reservations.create(requester_id, category, day, time_window)
        except DuplicateReservationError:
            self._ledger.release(day, category)
            logger.warning(
                "Concurrent duplicate reservation for %s %s/%s, capacity released",
                requester_id,
                day,
                category,
            )
            return SlotDenied(
                code=ErrorCode.DUPLICATE_RESERVATION,
                message="You already have a reservation for this date",
            )
        except Exception:
            self._ledger.release(day, category)
            logger.warning("Reservation write failed for %s %s/%s, capacity released", requester_id, day, category)
            raise

        logger.info("Slot granted %s for %s on %s/%s", reservation.id, requester_id, day, category)
        events.slot_granted.send(sender=self.__class__, reservation=reservation)
        return SlotGranted(reservation=reservation)

    def cancel_reservation(self, reservation_id: ReservationId) -> ReleaseResult:
        """Release a reservation that has not been consumed yet.

        The reservation's ticket, if one was issued, is cancelled first. A
        ticket that was already redeemed blocks the release.

        Raises:
            ReservationNotFoundError: If the reservation does not exist.
        """
        reservation = self.get_reservation(reservation_id)
        if reservation.status is not ReservationStatus.RESERVED:
            return self._not_cancellable(reservation)

        ticket = self._tickets.get_for_reservation(reservation_id)
        if ticket is not None:
            if self._tickets.cancel(ticket.ticket_number):
                logger.info("Ticket %s cancelled with reservation %s", ticket.ticket_number, reservation_id)
            else:
                current = self._tickets.get(ticket.ticket_number)
                if current.status is not TicketStatus.CANCELLED:
                    return Rejection(
                        code=ErrorCode.INVALID_STATE_TRANSITION,
                        message=f"Ticket {current.ticket_number} is {current.status.value}; reservation kept",
                    )

        with self._ledger.atomic():
            released = self._reservations.transition(
                reservation_id, ReservationStatus.RESERVED, ReservationStatus.RELEASED
            )
            if released:
                self._ledger.release(reservation.date, reservation.category)

        if not released:
            return self._not_cancellable(self.get_reservation(reservation_id))

        released_reservation = self.get_reservation(reservation_id)
        logger.info("Reservation %s released", reservation_id)
        events.slot_released.send(sender=self.__class__, reservation=released_reservation)
        return ReservationReleased(reservation=released_reservation)

    def _not_cancellable(self, reservation: SlotReservation) -> Rejection:
        return Rejection(
            code=ErrorCode.INVALID_STATE_TRANSITION,
            message=f"Reservation is {reservation.status.value} and cannot be cancelled",
        )

    def consume(self, reservation_id: ReservationId) -> bool:
        """Mark a reservation consumed after its ticket was redeemed.

        False if the reservation was released in the meantime.
        """
        return self._reservations.transition(
            reservation_id, ReservationStatus.RESERVED, ReservationStatus.CONSUMED
        )

    def restore(self, reservation_id: ReservationId) -> bool:
        """Undo ``consume`` for a check-in that could not be completed."""
        return self._reservations.transition(
            reservation_id, ReservationStatus.CONSUMED, ReservationStatus.RESERVED
        )

    def expire_stale(self, today: date | None = None) -> list[SlotReservation]:
        """Release reserved slots whose date passed without a redemption."""
        today = today or timezone.localdate()
        expired = []
        for reservation in self._reservations.list_reserved_before(today):
            result = self.cancel_reservation(reservation.id)
            if isinstance(result, ReservationReleased):
                expired.append(result.reservation)
        if expired:
            logger.info("Expired %s stale reservations before %s", len(expired), today)
        return expired
