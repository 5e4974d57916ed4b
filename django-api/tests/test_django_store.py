"""Tests for the Django ORM stores.

These test the guarded updates and constraints the services rely on.
Run with: pytest tests/test_django_store.py -v
"""

import pytest
from django.db import IntegrityError, transaction

from tests.factories import SERVICE_DAY, at
from visits import models
from visits.domain import Capacity, QueueStatus, ReservationStatus, Ticket, TicketNumber, TicketStatus
from visits.domain.errors import (
    DuplicateQueueEntryError,
    DuplicateReservationError,
    ErrorCode,
    StorageConflictError,
)
from visits.domain.results import ReserveOutcome
from visits.services import build_services
from visits.stores.django_store import (
    DjangoCapacityStore,
    DjangoCategoryStore,
    DjangoQueueStore,
    DjangoReservationStore,
    DjangoTicketStore,
)


@pytest.mark.django_db
class TestDjangoCapacityStore:
    """Tests for the guarded capacity counter."""

    def test_get_or_create_day_is_stable(self):
        store = DjangoCapacityStore()
        store.get_or_create_day(SERVICE_DAY, "food", Capacity(2), True)

        again = store.get_or_create_day(SERVICE_DAY, "food", Capacity(9), True)

        assert again.max_capacity == Capacity(2)
        assert models.CapacityDay.objects.count() == 1

    def test_try_reserve_stops_at_max(self):
        store = DjangoCapacityStore()
        store.get_or_create_day(SERVICE_DAY, "food", Capacity(1), True)

        assert store.try_reserve(SERVICE_DAY, "food") is ReserveOutcome.RESERVED
        assert store.try_reserve(SERVICE_DAY, "food") is ReserveOutcome.FULL
        assert models.CapacityDay.objects.get().current_count == 1

    def test_try_reserve_on_closed_day(self):
        store = DjangoCapacityStore()
        store.get_or_create_day(SERVICE_DAY, "food", Capacity(0), False)
        assert store.try_reserve(SERVICE_DAY, "food") is ReserveOutcome.CLOSED

    def test_try_reserve_on_missing_day(self):
        assert DjangoCapacityStore().try_reserve(SERVICE_DAY, "food") is ReserveOutcome.CLOSED

    def test_release_floors_at_zero(self):
        store = DjangoCapacityStore()
        store.get_or_create_day(SERVICE_DAY, "food", Capacity(1), True)

        store.release(SERVICE_DAY, "food")

        assert models.CapacityDay.objects.get().current_count == 0

    def test_update_day_keeps_max_above_count(self):
        store = DjangoCapacityStore()
        store.get_or_create_day(SERVICE_DAY, "food", Capacity(3), True)
        store.try_reserve(SERVICE_DAY, "food")
        store.try_reserve(SERVICE_DAY, "food")

        updated = store.update_day(SERVICE_DAY, "food", Capacity(1), None, "short staffed")

        assert updated.max_capacity == Capacity(2)
        assert updated.notes == "short staffed"
        assert updated.temporary_adjustment

    def test_negative_count_is_rejected_by_database(self):
        store = DjangoCapacityStore()
        store.get_or_create_day(SERVICE_DAY, "food", Capacity(1), True)

        with pytest.raises(IntegrityError), transaction.atomic():
            models.CapacityDay.objects.update(current_count=-1)


@pytest.mark.django_db
class TestDjangoReservationStore:
    def test_second_open_reservation_violates_constraint(self):
        store = DjangoReservationStore()
        store.create("r-1", "food", SERVICE_DAY, None)

        with pytest.raises(DuplicateReservationError):
            store.create("r-1", "food", SERVICE_DAY, None)

    def test_released_reservation_frees_the_key(self):
        store = DjangoReservationStore()
        first = store.create("r-1", "food", SERVICE_DAY, None)
        assert store.transition(first.id, ReservationStatus.RESERVED, ReservationStatus.RELEASED)

        second = store.create("r-1", "food", SERVICE_DAY, None)

        assert second.id != first.id
        assert store.find_open("r-1", "food", SERVICE_DAY).id == second.id

    def test_transition_is_conditional(self):
        store = DjangoReservationStore()
        reservation = store.create("r-1", "food", SERVICE_DAY, None)

        assert store.transition(reservation.id, ReservationStatus.RESERVED, ReservationStatus.CONSUMED)
        assert not store.transition(reservation.id, ReservationStatus.RESERVED, ReservationStatus.RELEASED)
        assert store.consumed_history("r-1", "food")[0].id == reservation.id


def make_ticket(reservation, number="FOOD-2026-000001") -> Ticket:
    return Ticket(
        ticket_number=TicketNumber(number),
        reservation_id=reservation.id,
        requester_id=reservation.requester_id,
        category=reservation.category,
        valid_date=reservation.date,
        time_window=None,
        issued_at=at(SERVICE_DAY, 8),
        status=TicketStatus.ACTIVE,
    )


@pytest.mark.django_db
class TestDjangoTicketStore:
    def test_mark_used_succeeds_once(self):
        reservation = DjangoReservationStore().create("r-1", "food", SERVICE_DAY, None)
        store = DjangoTicketStore()
        ticket = store.create(make_ticket(reservation))

        assert store.mark_used(ticket.ticket_number, "staff-1", at(SERVICE_DAY, 9))
        assert not store.mark_used(ticket.ticket_number, "staff-2", at(SERVICE_DAY, 9))
        assert store.get(ticket.ticket_number).redeemed_by == "staff-1"

    def test_duplicate_number_is_a_conflict(self):
        reservations = DjangoReservationStore()
        first = reservations.create("r-1", "food", SERVICE_DAY, None)
        second = reservations.create("r-2", "food", SERVICE_DAY, None)
        store = DjangoTicketStore()
        store.create(make_ticket(first))

        with pytest.raises(StorageConflictError):
            store.create(make_ticket(second))

    def test_count_for_prefix(self):
        reservations = DjangoReservationStore()
        store = DjangoTicketStore()
        store.create(make_ticket(reservations.create("r-1", "food", SERVICE_DAY, None)))
        store.create(make_ticket(reservations.create("r-2", "food", SERVICE_DAY, None), "FOOD-2026-000002"))

        assert store.count_for_prefix("FOOD", 2026) == 2
        assert store.count_for_prefix("FOOD", 2025) == 0
        assert store.count_for_prefix("GEN", 2026) == 0


@pytest.mark.django_db
class TestDjangoQueueStore:
    def _ticket(self, requester_id: str, number: str) -> Ticket:
        reservation = DjangoReservationStore().create(requester_id, "food", SERVICE_DAY, None)
        return DjangoTicketStore().create(make_ticket(reservation, number))

    def test_one_open_entry_per_ticket(self):
        ticket = self._ticket("r-1", "FOOD-2026-000001")
        store = DjangoQueueStore()
        store.create(ticket.ticket_number, "food", SERVICE_DAY, at(SERVICE_DAY, 9), False)

        with pytest.raises(DuplicateQueueEntryError):
            store.create(ticket.ticket_number, "food", SERVICE_DAY, at(SERVICE_DAY, 9), False)

    def test_ordering_and_priority(self):
        store = DjangoQueueStore()
        first = store.create(
            self._ticket("r-1", "FOOD-2026-000001").ticket_number, "food", SERVICE_DAY, at(SERVICE_DAY, 9), False
        )
        second = store.create(
            self._ticket("r-2", "FOOD-2026-000002").ticket_number, "food", SERVICE_DAY, at(SERVICE_DAY, 9), True
        )

        assert store.count_waiting_before(first) == 0
        assert store.count_waiting_before(second) == 1
        assert store.next_waiting("food", SERVICE_DAY).id == second.id
        assert [entry.id for entry in store.list_entries("food", SERVICE_DAY)] == [first.id, second.id]

    def test_transition_only_from_sources(self):
        store = DjangoQueueStore()
        entry = store.create(
            self._ticket("r-1", "FOOD-2026-000001").ticket_number, "food", SERVICE_DAY, at(SERVICE_DAY, 9), False
        )

        called = store.transition(entry.id, (QueueStatus.WAITING,), QueueStatus.CALLED, at(SERVICE_DAY, 9, 5))
        again = store.transition(entry.id, (QueueStatus.WAITING,), QueueStatus.CALLED, at(SERVICE_DAY, 9, 6))

        assert called.status is QueueStatus.CALLED
        assert called.called_at == at(SERVICE_DAY, 9, 5)
        assert again is None


class BrokenDjangoQueueStore(DjangoQueueStore):
    def create(self, ticket_number, category, service_date, joined_at, priority):
        raise RuntimeError("disk full")


@pytest.fixture
def db_services(settings):
    settings.VISITS = {
        "OPERATING_WEEKDAYS": tuple(range(7)),
        "CATEGORIES": {
            "food": {"default_capacity": 3, "cooldown_days": 7, "ticket_prefix": "FOOD"},
        },
    }

    def factory(queue=None):
        return build_services(
            DjangoCategoryStore(),
            DjangoCapacityStore(),
            DjangoReservationStore(),
            DjangoTicketStore(),
            queue or DjangoQueueStore(),
        )

    return factory


@pytest.mark.django_db
class TestServicesOnDatabase:
    """The services over the ORM stores keep the counter and the tickets consistent."""

    def test_exhaustion_and_release_are_symmetric(self, db_services):
        ledger = db_services().ledger

        outcomes = [ledger.try_reserve(SERVICE_DAY, "food") for _ in range(4)]
        for _ in range(3):
            ledger.release(SERVICE_DAY, "food")
        ledger.release(SERVICE_DAY, "food")

        assert outcomes == [ReserveOutcome.RESERVED] * 3 + [ReserveOutcome.FULL]
        assert ledger.get_availability(SERVICE_DAY, "food").current_count == 0
        assert ledger.try_reserve(SERVICE_DAY, "food") is ReserveOutcome.RESERVED

    def test_counter_matches_reservations_holding_capacity(self, db_services):
        services = db_services()
        admit = services.admission.admit
        admitted = [admit(f"r-{index}", "food", SERVICE_DAY, today=SERVICE_DAY) for index in range(3)]
        services.admission.withdraw(admitted[0].reservation.id)
        services.queue.check_in(admitted[1].ticket.ticket_number, "staff-1", today=SERVICE_DAY)
        admit("r-3", "food", SERVICE_DAY, today=SERVICE_DAY)

        holding = models.SlotReservation.objects.filter(status__in=models.HOLDING_RESERVATION_STATUSES).count()
        assert models.CapacityDay.objects.get().current_count == holding == 3

    def test_cancelled_reservation_ticket_cannot_check_in(self, db_services):
        services = db_services()
        first = services.admission.admit("visitor-x", "food", SERVICE_DAY, today=SERVICE_DAY)

        services.allocator.cancel_reservation(first.reservation.id)

        result = services.queue.check_in(first.ticket.ticket_number, "staff-1", today=SERVICE_DAY)
        assert result.code is ErrorCode.TICKET_CANCELLED
        assert models.Ticket.objects.get().status == TicketStatus.CANCELLED.value
        assert not models.QueueEntry.objects.exists()

    def test_failed_queue_write_rolls_back_redemption(self, db_services):
        services = db_services(queue=BrokenDjangoQueueStore())
        admitted = services.admission.admit("r-1", "food", SERVICE_DAY, today=SERVICE_DAY)

        with pytest.raises(RuntimeError):
            services.queue.check_in(admitted.ticket.ticket_number, "staff-1", today=SERVICE_DAY)

        ticket = models.Ticket.objects.get()
        assert ticket.status == TicketStatus.ACTIVE.value
        assert ticket.redeemed_at is None
        assert models.SlotReservation.objects.get().status == ReservationStatus.RESERVED.value
