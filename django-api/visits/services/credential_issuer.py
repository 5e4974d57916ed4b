"""Credential issuer - visit tickets and their single-use redemption.

Services:
- Mint ticket numbers unique across the system
- Sign scannable payloads that carry no authority of their own
- Redeem exactly once, on the ticket's valid date only
"""

import logging
from datetime import date, datetime

from django.core.signing import BadSignature, Signer
from django.utils import timezone

from visits import events
from visits.domain import ReservationId, ReservationStatus, Ticket, TicketNumber, TicketStatus
from visits.domain.errors import (
    ErrorCode,
    InvalidPayloadError,
    ReservationNotActiveError,
    StorageConflictError,
    TicketNotFoundError,
)
from visits.domain.results import Redeemed, RedemptionRejected, RedemptionResult
from visits.services.retry import call_with_retry
from visits.services.slot_allocator import SlotAllocator
from visits.stores.interfaces import CategoryStore, TicketStore

logger = logging.getLogger(__name__)

PAYLOAD_PREFIX = "VISIT-TICKET:"
PAYLOAD_SALT = "visits.ticket"


class CredentialIssuer:
    """Service owning Ticket state."""

    def __init__(
        self,
        tickets: TicketStore,
        allocator: SlotAllocator,
        categories: CategoryStore,
        number_attempts: int = 5,
        retry_attempts: int = 3,
    ) -> None:
        self._tickets = tickets
        self._allocator = allocator
        self._categories = categories
        self._number_attempts = number_attempts
        self._retry_attempts = retry_attempts
        self._signer = Signer(salt=PAYLOAD_SALT)

    def get_ticket(self, ticket_number: TicketNumber) -> Ticket:
        """Return a ticket.

        Raises:
            TicketNotFoundError: If no ticket has this number.
        """
        ticket = self._tickets.get(ticket_number)
        if ticket is None:
            raise TicketNotFoundError(str(ticket_number))
        return ticket

    def _next_number(self, prefix: str, year: int) -> TicketNumber:
        sequence = self._tickets.count_for_prefix(prefix, year) + 1
        number = TicketNumber.build(prefix, year, sequence)
        while self._tickets.number_exists(number):
            sequence += 1
            number = TicketNumber.build(prefix, year, sequence)
        return number

    def issue_ticket(self, reservation_id: ReservationId, now: datetime | None = None) -> Ticket:
        """Mint the ticket for a granted reservation.

        Issuing twice for the same reservation returns the existing ticket.

        Raises:
            ReservationNotFoundError: If the reservation does not exist.
            ReservationNotActiveError: If the reservation is no longer reserved.
            StorageConflictError: If no free ticket number could be claimed.
        """
        reservation = self._allocator.get_reservation(reservation_id)
        existing = self._tickets.get_for_reservation(reservation_id)
        if existing is not None:
            return existing
        if reservation.status is not ReservationStatus.RESERVED:
            raise ReservationNotActiveError(reservation.status.value)

        now = now or timezone.now()
        prefix = self._categories.get(reservation.category).ticket_prefix
        for attempt in range(1, self._number_attempts + 1):
            ticket = Ticket(
                ticket_number=self._next_number(prefix, now.year),
                reservation_id=reservation.id,
                requester_id=reservation.requester_id,
                category=reservation.category,
                valid_date=reservation.date,
                time_window=reservation.time_window,
                issued_at=now,
                status=TicketStatus.ACTIVE,
            )
            try:
                self._tickets.create(ticket)
            except StorageConflictError:
                logger.warning(
                    "Ticket number %s taken concurrently (attempt %s)", ticket.ticket_number, attempt
                )
                continue
            # Cancelled while the ticket was being written.
            if self._allocator.get_reservation(reservation_id).status is not ReservationStatus.RESERVED:
                self._tickets.cancel(ticket.ticket_number)
                raise ReservationNotActiveError(ReservationStatus.RELEASED.value)
            logger.info("Issued ticket %s for reservation %s", ticket.ticket_number, reservation.id)
            events.ticket_issued.send(sender=self.__class__, ticket=ticket)
            return ticket

        raise StorageConflictError("issue_ticket")

    def payload_for(self, ticket: Ticket) -> str:
        """Scannable payload: ticket number and valid date under a signature."""
        value = f"{ticket.ticket_number}:{ticket.valid_date.isoformat()}"
        return PAYLOAD_PREFIX + self._signer.sign(value)

    def ticket_number_from_payload(self, payload: str) -> TicketNumber:
        """Verify a scanned payload and return the ticket number it names.

        Raises:
            InvalidPayloadError: If the payload is malformed or tampered with.
        """
        if not payload.startswith(PAYLOAD_PREFIX):
            raise InvalidPayloadError()
        try:
            value = self._signer.unsign(payload[len(PAYLOAD_PREFIX):])
            number, _valid_date = value.rsplit(":", 1)
            return TicketNumber(number)
        except (BadSignature, ValueError) as exc:
            raise InvalidPayloadError() from exc

    def redeem(
        self,
        ticket_number: TicketNumber,
        redeemer_id: str,
        today: date | None = None,
        now: datetime | None = None,
    ) -> RedemptionResult:
        """Consume a ticket; exactly one of any concurrent calls succeeds."""
        today = today or timezone.localdate()
        now = now or timezone.now()

        ticket = self._tickets.get(ticket_number)
        if ticket is None:
            return RedemptionRejected(code=ErrorCode.TICKET_NOT_FOUND, message="Ticket not found")
        rejection = self._status_rejection(ticket)
        if rejection is not None:
            return rejection
        if today != ticket.valid_date:
            when = "has expired" if today > ticket.valid_date else "is not valid yet"
            return RedemptionRejected(
                code=ErrorCode.TICKET_WRONG_DAY,
                message=f"Ticket is only valid on {ticket.valid_date.isoformat()} and {when}",
            )

        used = call_with_retry(
            "redeem",
            lambda: self._tickets.mark_used(ticket_number, redeemer_id, now),
            self._retry_attempts,
        )
        if not used:
            return self._status_rejection(self.get_ticket(ticket_number)) or RedemptionRejected(
                code=ErrorCode.TICKET_ALREADY_USED, message="Ticket has already been used"
            )

        if not self._allocator.consume(ticket.reservation_id):
            self._tickets.undo_use(ticket_number, now, TicketStatus.CANCELLED)
            logger.warning(
                "Ticket %s voided: reservation %s was released before redemption",
                ticket_number,
                ticket.reservation_id,
            )
            return RedemptionRejected(code=ErrorCode.TICKET_CANCELLED, message="Ticket was cancelled")

        redeemed = self.get_ticket(ticket_number)
        logger.info("Ticket %s redeemed by %s", ticket_number, redeemer_id)
        return Redeemed(ticket=redeemed)

    def undo_redemption(self, ticket: Ticket) -> bool:
        """Make a redeemed ticket redeemable again and un-consume its reservation.

        Only applies while the ticket still carries this redemption.
        """
        if not self._tickets.undo_use(ticket.ticket_number, ticket.redeemed_at, TicketStatus.ACTIVE):
            return False
        self._allocator.restore(ticket.reservation_id)
        logger.warning("Redemption of %s undone", ticket.ticket_number)
        return True

    def _status_rejection(self, ticket: Ticket) -> RedemptionRejected | None:
        if ticket.status is TicketStatus.USED:
            return RedemptionRejected(
                code=ErrorCode.TICKET_ALREADY_USED, message="Ticket has already been used"
            )
        if ticket.status is TicketStatus.CANCELLED:
            return RedemptionRejected(code=ErrorCode.TICKET_CANCELLED, message="Ticket was cancelled")
        return None

