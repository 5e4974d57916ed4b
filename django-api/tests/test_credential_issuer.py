"""Tests for ticket issuing, payloads and single-use redemption.

Run with: pytest tests/test_credential_issuer.py -v
"""

import threading
from datetime import timedelta

import pytest
from django.utils import timezone

from tests.factories import SERVICE_DAY, at
from visits.domain import ReservationStatus, TicketNumber, TicketStatus
from visits.domain.errors import ErrorCode, InvalidPayloadError, ReservationNotActiveError
from visits.domain.results import Redeemed
from visits.stores.memory_store import InMemoryReservationStore, InMemoryTicketStore


class ReleasingTicketStore(InMemoryTicketStore):
    """Releases the reservation while its ticket is being written."""

    def __init__(self, reservations):
        super().__init__()
        self.reservations = reservations

    def create(self, ticket):
        self.reservations.transition(
            ticket.reservation_id, ReservationStatus.RESERVED, ReservationStatus.RELEASED
        )
        return super().create(ticket)


class TestIssueTicket:
    """Tests for CredentialIssuer.issue_ticket."""

    def test_numbers_are_sequential_per_prefix(self, services, admit):
        year = timezone.now().year

        first = admit("r-1").ticket
        second = admit("r-2").ticket

        assert first.ticket_number == TicketNumber.build("FOOD", year, 1)
        assert second.ticket_number == TicketNumber.build("FOOD", year, 2)

    def test_prefix_follows_category(self, services, admit):
        ticket = admit("r-1", "emergency").ticket
        assert ticket.ticket_number.value.startswith("EMG-")

    def test_issue_is_idempotent(self, services, admit):
        admitted = admit("r-1")
        again = services.issuer.issue_ticket(admitted.reservation.id)
        assert again == admitted.ticket

    def test_released_reservation_gets_no_ticket(self, services):
        granted = services.allocator.request_slot("r-1", "food", SERVICE_DAY, today=SERVICE_DAY)
        services.allocator.cancel_reservation(granted.reservation.id)

        with pytest.raises(ReservationNotActiveError):
            services.issuer.issue_ticket(granted.reservation.id)

    def test_cancel_during_issue_voids_the_new_ticket(self, make_services):
        reservations = InMemoryReservationStore()
        tickets = ReleasingTicketStore(reservations)
        services = make_services(reservations=reservations, tickets=tickets)
        granted = services.allocator.request_slot("r-1", "food", SERVICE_DAY, today=SERVICE_DAY)

        with pytest.raises(ReservationNotActiveError):
            services.issuer.issue_ticket(granted.reservation.id)

        ticket = tickets.get_for_reservation(granted.reservation.id)
        assert ticket.status is TicketStatus.CANCELLED

    def test_withdrawn_numbers_are_not_reused(self, services, admit):
        first = admit("r-1").ticket
        services.admission.withdraw(first.reservation_id)

        second = admit("r-2").ticket

        assert second.ticket_number != first.ticket_number


class TestPayload:
    """The payload identifies a ticket; it grants nothing by itself."""

    def test_round_trip(self, services, admit):
        admitted = admit("r-1")
        number = services.issuer.ticket_number_from_payload(admitted.payload)
        assert number == admitted.ticket.ticket_number

    def test_tampered_payload_is_rejected(self, services, admit):
        admitted = admit("r-1")
        tampered = admitted.payload.replace("000001", "000002")

        with pytest.raises(InvalidPayloadError):
            services.issuer.ticket_number_from_payload(tampered)

    @pytest.mark.parametrize("payload", ["", "FOOD-2026-000001", "VISIT-TICKET:garbage"])
    def test_malformed_payload_is_rejected(self, services, payload):
        with pytest.raises(InvalidPayloadError):
            services.issuer.ticket_number_from_payload(payload)


class TestRedeem:
    """Tests for CredentialIssuer.redeem."""

    def test_redeem_marks_used_and_consumes_reservation(self, services, admit):
        admitted = admit("r-1")

        result = services.issuer.redeem(
            admitted.ticket.ticket_number, "staff-1", today=SERVICE_DAY, now=at(SERVICE_DAY, 9)
        )

        assert isinstance(result, Redeemed)
        assert result.ticket.status is TicketStatus.USED
        assert result.ticket.redeemed_by == "staff-1"
        assert result.ticket.redeemed_at == at(SERVICE_DAY, 9)
        reservation = services.allocator.get_reservation(admitted.reservation.id)
        assert reservation.status is ReservationStatus.CONSUMED

    def test_second_redeem_is_rejected(self, services, admit):
        number = admit("r-1").ticket.ticket_number
        services.issuer.redeem(number, "staff-1", today=SERVICE_DAY)

        result = services.issuer.redeem(number, "staff-2", today=SERVICE_DAY)

        assert result.code is ErrorCode.TICKET_ALREADY_USED

    def test_unknown_ticket(self, services):
        result = services.issuer.redeem(TicketNumber("FOOD-2026-999999"), "staff-1", today=SERVICE_DAY)
        assert result.code is ErrorCode.TICKET_NOT_FOUND

    def test_cancelled_ticket(self, services, admit):
        admitted = admit("r-1")
        services.admission.withdraw(admitted.reservation.id)

        result = services.issuer.redeem(admitted.ticket.ticket_number, "staff-1", today=SERVICE_DAY)

        assert result.code is ErrorCode.TICKET_CANCELLED

    def test_early_redeem_is_wrong_day(self, services, admit):
        number = admit("r-1", today=SERVICE_DAY - timedelta(days=2)).ticket.ticket_number

        result = services.issuer.redeem(number, "staff-1", today=SERVICE_DAY - timedelta(days=1))

        assert result.code is ErrorCode.TICKET_WRONG_DAY
        assert "not valid yet" in result.message

    def test_late_redeem_is_wrong_day(self, services, admit):
        admitted = admit("r-1")
        later = SERVICE_DAY + timedelta(days=1)

        result = services.issuer.redeem(admitted.ticket.ticket_number, "staff-1", today=later)

        assert result.code is ErrorCode.TICKET_WRONG_DAY
        assert services.issuer.get_ticket(admitted.ticket.ticket_number).status_on(later) is TicketStatus.EXPIRED

    def test_status_is_checked_before_date(self, services, admit):
        """A used ticket presented late reports already used, not wrong day."""
        number = admit("r-1").ticket.ticket_number
        services.issuer.redeem(number, "staff-1", today=SERVICE_DAY)

        result = services.issuer.redeem(number, "staff-1", today=SERVICE_DAY + timedelta(days=3))

        assert result.code is ErrorCode.TICKET_ALREADY_USED

    def test_concurrent_redeem_succeeds_once(self, services, admit):
        number = admit("r-1").ticket.ticket_number
        barrier = threading.Barrier(10)
        results = []
        lock = threading.Lock()

        def worker(index):
            barrier.wait()
            result = services.issuer.redeem(number, f"staff-{index}", today=SERVICE_DAY)
            with lock:
                results.append(result)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sum(1 for result in results if result.ok) == 1
        assert all(result.code is ErrorCode.TICKET_ALREADY_USED for result in results if not result.ok)


class TestRedeemAgainstReservation:
    """A ticket is only worth something while its reservation holds capacity."""

    def test_ticket_of_released_reservation_is_voided(self, make_services):
        reservations = InMemoryReservationStore()
        services = make_services(reservations=reservations)
        admitted = services.admission.admit("r-1", "food", SERVICE_DAY, today=SERVICE_DAY)
        reservations.transition(
            admitted.reservation.id, ReservationStatus.RESERVED, ReservationStatus.RELEASED
        )

        result = services.issuer.redeem(admitted.ticket.ticket_number, "staff-1", today=SERVICE_DAY)

        assert result.code is ErrorCode.TICKET_CANCELLED
        ticket = services.issuer.get_ticket(admitted.ticket.ticket_number)
        assert ticket.status is TicketStatus.CANCELLED
        assert ticket.redeemed_at is None

    def test_undo_redemption_restores_ticket_and_reservation(self, services, admit):
        admitted = admit("r-1")
        redeemed = services.issuer.redeem(
            admitted.ticket.ticket_number, "staff-1", today=SERVICE_DAY, now=at(SERVICE_DAY, 9)
        )

        assert services.issuer.undo_redemption(redeemed.ticket)

        ticket = services.issuer.get_ticket(admitted.ticket.ticket_number)
        assert ticket.status is TicketStatus.ACTIVE
        assert ticket.redeemed_by is None
        reservation = services.allocator.get_reservation(admitted.reservation.id)
        assert reservation.status is ReservationStatus.RESERVED

    def test_undo_ignores_a_later_redemption(self, services, admit):
        admitted = admit("r-1")
        first = services.issuer.redeem(
            admitted.ticket.ticket_number, "staff-1", today=SERVICE_DAY, now=at(SERVICE_DAY, 9)
        )
        services.issuer.undo_redemption(first.ticket)
        services.issuer.redeem(
            admitted.ticket.ticket_number, "staff-2", today=SERVICE_DAY, now=at(SERVICE_DAY, 10)
        )

        assert not services.issuer.undo_redemption(first.ticket)
        assert services.issuer.get_ticket(admitted.ticket.ticket_number).redeemed_by == "staff-2"
