"""Admission saga: reserve a slot, then issue its ticket.

The two steps are separate writes. If issuing fails after the slot was
granted, the reservation is cancelled, which returns its capacity.
"""

import logging
from datetime import date

from visits.domain import ReservationId, TimeWindow
from visits.domain.errors import DomainError
from visits.domain.results import (
    Admitted,
    AdmissionResult,
    Rejection,
    ReleaseResult,
    SlotGranted,
)
from visits.services.credential_issuer import CredentialIssuer
from visits.services.slot_allocator import SlotAllocator

logger = logging.getLogger(__name__)


class AdmissionService:
    """Entry point for the approval workflow."""

    def __init__(self, allocator: SlotAllocator, issuer: CredentialIssuer) -> None:
        self._allocator = allocator
        self._issuer = issuer

    def admit(
        self,
        requester_id: str,
        category: str,
        day: date,
        time_window: TimeWindow | None = None,
        today: date | None = None,
    ) -> AdmissionResult:
        """Grant a slot and mint its ticket, compensating if minting fails."""
        slot = self._allocator.request_slot(requester_id, category, day, time_window, today=today)
        if not isinstance(slot, SlotGranted):
            return slot

        reservation = slot.reservation
        try:
            ticket = self._issuer.issue_ticket(reservation.id)
        except DomainError as exc:
            logger.warning("Ticket issue failed for %s (%s); releasing slot", reservation.id, exc)
            self._allocator.cancel_reservation(reservation.id)
            return Rejection(code=exc.code, message=exc.message)
        except Exception:
            logger.exception("Ticket issue failed for %s; releasing slot", reservation.id)
            self._allocator.cancel_reservation(reservation.id)
            raise

        return Admitted(
            reservation=reservation,
            ticket=ticket,
            payload=self._issuer.payload_for(ticket),
        )

    def withdraw(self, reservation_id: ReservationId) -> ReleaseResult:
        """Cancel a reservation and the ticket issued for it.

        The ticket is cancelled before capacity is returned, so a concurrent
        check-in either wins outright or is refused.
        """
        result = self._allocator.cancel_reservation(reservation_id)
        if not result.ok:
            logger.info("Withdrawal of %s refused: %s", reservation_id, result.message)
        return result
