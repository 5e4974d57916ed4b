"""Tests for the live queue.

Run with: pytest tests/test_queue_manager.py -v
"""

from datetime import timedelta

import pytest

from tests.factories import SERVICE_DAY, at, category
from visits.domain import QueueStatus, ReservationStatus, TicketStatus
from visits.domain.errors import ErrorCode, InvalidPayloadError, UnknownCategoryError
from visits.stores.memory_store import InMemoryQueueStore

NINE = at(SERVICE_DAY, 9)


class BrokenQueueStore(InMemoryQueueStore):
    def create(self, ticket_number, category, service_date, joined_at, priority):
        raise RuntimeError("disk full")


@pytest.fixture
def services(make_services):
    return make_services(category("food", default_capacity=20, max_queue_alert=2))


def minutes(value: int) -> timedelta:
    return timedelta(minutes=value)


class TestCheckIn:
    """Tests for QueueManager.check_in."""

    def test_first_arrival_is_position_one(self, check_in):
        result = check_in("r-1", NINE)
        assert result.position == 1
        assert result.estimated_wait == timedelta(0)
        assert result.entry.status is QueueStatus.WAITING

    def test_check_in_redeems_ticket(self, services, admit):
        admitted = admit("r-1")

        services.queue.check_in(admitted.ticket.ticket_number, "staff-1", today=SERVICE_DAY, now=NINE)

        ticket = services.issuer.get_ticket(admitted.ticket.ticket_number)
        assert ticket.status.value == "used"

    def test_second_check_in_is_rejected(self, services, admit):
        number = admit("r-1").ticket.ticket_number
        services.queue.check_in(number, "staff-1", today=SERVICE_DAY, now=NINE)

        result = services.queue.check_in(number, "staff-1", today=SERVICE_DAY, now=NINE)

        assert result.code is ErrorCode.ALREADY_IN_QUEUE

    def test_rejoin_after_leaving_needs_a_new_ticket(self, services, check_in):
        entry = check_in("r-1", NINE).entry
        services.queue.cancel(entry.id, now=NINE)

        result = services.queue.check_in(entry.ticket_number, "staff-1", today=SERVICE_DAY, now=NINE)

        assert result.code is ErrorCode.TICKET_ALREADY_USED

    def test_wrong_day_ticket_does_not_join(self, services, admit):
        number = admit("r-1").ticket.ticket_number

        result = services.queue.check_in(number, "staff-1", today=SERVICE_DAY + timedelta(days=1), now=NINE)

        assert result.code is ErrorCode.TICKET_WRONG_DAY
        assert services.queue.snapshot("food", today=SERVICE_DAY, now=NINE).waiting == ()

    def test_check_in_from_payload(self, services, admit):
        admitted = admit("r-1")

        result = services.queue.check_in_payload(admitted.payload, "staff-1", today=SERVICE_DAY)

        assert result.ok
        assert result.entry.ticket_number == admitted.ticket.ticket_number

    def test_forged_payload_raises(self, services):
        with pytest.raises(InvalidPayloadError):
            services.queue.check_in_payload("VISIT-TICKET:FOOD-2026-000001:x", "staff-1", today=SERVICE_DAY)

    def test_failed_queue_write_keeps_ticket_redeemable(self, make_services):
        services = make_services(category("food"), queue=BrokenQueueStore())
        admitted = services.admission.admit("r-1", "food", SERVICE_DAY, today=SERVICE_DAY)

        with pytest.raises(RuntimeError):
            services.queue.check_in(admitted.ticket.ticket_number, "staff-1", today=SERVICE_DAY, now=NINE)

        ticket = services.issuer.get_ticket(admitted.ticket.ticket_number)
        assert ticket.status is TicketStatus.ACTIVE
        assert ticket.redeemed_at is None
        reservation = services.allocator.get_reservation(admitted.reservation.id)
        assert reservation.status is ReservationStatus.RESERVED
        assert services.issuer.redeem(admitted.ticket.ticket_number, "staff-1", today=SERVICE_DAY).ok


class TestPosition:
    """Position is derived from arrival order among waiting entries."""

    def test_positions_follow_arrival(self, services, check_in):
        entries = [check_in(f"r-{i}", NINE + minutes(i)).entry for i in range(3)]
        assert [services.queue.position(entry.id) for entry in entries] == [1, 2, 3]

    def test_equal_timestamps_break_ties_by_insertion(self, services, check_in):
        first = check_in("r-1", NINE).entry
        second = check_in("r-2", NINE).entry
        assert services.queue.position(first.id) == 1
        assert services.queue.position(second.id) == 2

    def test_leaving_moves_later_entries_up_only(self, services, check_in):
        a = check_in("r-1", NINE).entry
        b = check_in("r-2", NINE + minutes(1)).entry
        c = check_in("r-3", NINE + minutes(2)).entry

        services.queue.cancel(b.id, now=NINE + minutes(3))

        assert services.queue.position(a.id) == 1
        assert services.queue.position(b.id) == 0
        assert services.queue.position(c.id) == 2

    def test_called_entry_has_no_position(self, services, check_in):
        entry = check_in("r-1", NINE).entry
        services.queue.call_next("food", today=SERVICE_DAY, now=NINE)
        assert services.queue.position(entry.id) == 0
        assert services.queue.estimated_wait(entry.id) == timedelta(0)

    def test_priority_does_not_change_position(self, services, check_in):
        check_in("r-1", NINE)
        urgent = check_in("r-2", NINE + minutes(1), priority=True)
        assert urgent.position == 2


class TestEstimatedWait:
    def test_default_service_time_without_history(self, services, check_in):
        check_in("r-1", NINE)
        check_in("r-2", NINE)
        third = check_in("r-3", NINE)
        assert third.estimated_wait == minutes(20)

    def test_multiple_desks_share_the_line(self, make_services):
        services = make_services(category("food", default_capacity=20, service_desks=2))
        numbers = [
            services.admission.admit(f"r-{i}", "food", SERVICE_DAY, today=SERVICE_DAY).ticket.ticket_number
            for i in range(3)
        ]
        results = [
            services.queue.check_in(number, "staff-1", today=SERVICE_DAY, now=NINE) for number in numbers
        ]
        assert results[2].estimated_wait == minutes(10)

    def test_rolling_average_of_completed_services(self, services, check_in):
        first = check_in("r-1", NINE).entry
        second = check_in("r-2", NINE).entry
        queue = services.queue
        queue.call_next("food", today=SERVICE_DAY, now=NINE)
        queue.mark_served(first.id, now=NINE + minutes(1))
        queue.mark_completed(first.id, now=NINE + minutes(4))
        waiting = check_in("r-3", NINE + minutes(5)).entry

        assert queue.average_service_time("food") == minutes(4)
        assert queue.position(second.id) == 1
        assert queue.estimated_wait(waiting.id) == minutes(4)


class TestCallNext:
    """Tests for QueueManager.call_next."""

    def test_empty_queue_returns_none(self, services):
        assert services.queue.call_next("food", today=SERVICE_DAY, now=NINE) is None

    def test_unknown_category_raises(self, services):
        with pytest.raises(UnknownCategoryError):
            services.queue.call_next("pharmacy", today=SERVICE_DAY, now=NINE)

    def test_calls_in_arrival_order(self, services, check_in):
        first = check_in("r-1", NINE).entry
        second = check_in("r-2", NINE + minutes(1)).entry

        called = services.queue.call_next("food", today=SERVICE_DAY, now=NINE + minutes(2))

        assert called.id == first.id
        assert called.status is QueueStatus.CALLED
        assert called.called_at == NINE + minutes(2)
        assert services.queue.position(second.id) == 1

    def test_priority_entries_are_called_first(self, services, check_in):
        check_in("r-1", NINE)
        urgent = check_in("r-2", NINE + minutes(5), priority=True).entry

        called = services.queue.call_next("food", today=SERVICE_DAY, now=NINE + minutes(6))

        assert called.id == urgent.id

    def test_each_entry_is_called_once(self, services, check_in):
        check_in("r-1", NINE)
        check_in("r-2", NINE)

        calls = [services.queue.call_next("food", today=SERVICE_DAY, now=NINE) for _ in range(3)]

        assert calls[2] is None
        assert calls[0].id != calls[1].id


class TestTransitions:
    """Queue entries only move forward through the status table."""

    def test_full_lifecycle(self, services, check_in):
        entry = check_in("r-1", NINE).entry
        queue = services.queue

        queue.call_next("food", today=SERVICE_DAY, now=NINE + minutes(1))
        served = queue.mark_served(entry.id, now=NINE + minutes(2))
        completed = queue.mark_completed(entry.id, now=NINE + minutes(9))

        assert served.entry.status is QueueStatus.SERVED
        assert completed.entry.status is QueueStatus.COMPLETED
        assert completed.entry.completed_at == NINE + minutes(9)

    def test_cannot_serve_waiting_entry(self, services, check_in):
        entry = check_in("r-1", NINE).entry

        result = services.queue.mark_served(entry.id, now=NINE)

        assert result.code is ErrorCode.INVALID_STATE_TRANSITION
        assert services.queue.get_entry(entry.id).status is QueueStatus.WAITING

    def test_cannot_complete_called_entry(self, services, check_in):
        entry = check_in("r-1", NINE).entry
        services.queue.call_next("food", today=SERVICE_DAY, now=NINE)

        result = services.queue.mark_completed(entry.id, now=NINE)

        assert result.code is ErrorCode.INVALID_STATE_TRANSITION

    def test_cannot_cancel_completed_entry(self, services, check_in):
        entry = check_in("r-1", NINE).entry
        queue = services.queue
        queue.call_next("food", today=SERVICE_DAY, now=NINE)
        queue.mark_served(entry.id, now=NINE)
        queue.mark_completed(entry.id, now=NINE)

        result = queue.cancel(entry.id, reason="left", now=NINE)

        assert result.code is ErrorCode.INVALID_STATE_TRANSITION

    def test_cancel_called_entry_with_reason(self, services, check_in):
        entry = check_in("r-1", NINE).entry
        services.queue.call_next("food", today=SERVICE_DAY, now=NINE)

        result = services.queue.cancel(entry.id, reason="left early", now=NINE + minutes(1))

        assert result.entry.status is QueueStatus.CANCELLED
        assert result.entry.cancel_reason == "left early"
        assert result.entry.cancelled_at == NINE + minutes(1)

    def test_no_show(self, services, check_in):
        entry = check_in("r-1", NINE).entry
        services.queue.call_next("food", today=SERVICE_DAY, now=NINE)

        result = services.queue.cancel(entry.id, no_show=True, now=NINE + minutes(5))

        assert result.entry.status is QueueStatus.NO_SHOW
        assert result.entry.cancel_reason == "no_show"


class TestSnapshot:
    """Tests for the staff dashboard snapshot."""

    def test_lists_waiting_and_called(self, services, check_in):
        first = check_in("r-1", NINE).entry
        check_in("r-2", NINE + minutes(1))
        check_in("r-3", NINE + minutes(2))
        services.queue.call_next("food", today=SERVICE_DAY, now=NINE + minutes(3))

        snapshot = services.queue.snapshot("food", today=SERVICE_DAY, now=NINE + minutes(3))

        assert [waiting.position for waiting in snapshot.waiting] == [1, 2]
        assert [waiting.estimated_wait for waiting in snapshot.waiting] == [timedelta(0), minutes(10)]
        assert [entry.id for entry in snapshot.called] == [first.id]
        assert snapshot.status_counts == {"waiting": 2, "called": 1}
        assert snapshot.average_service_time == minutes(10)

    def test_no_alerts_for_short_queue(self, services, check_in):
        check_in("r-1", NINE)
        snapshot = services.queue.snapshot("food", today=SERVICE_DAY, now=NINE + minutes(5))
        assert snapshot.alerts == ()

    def test_high_volume_alert(self, services, check_in):
        for i in range(3):
            check_in(f"r-{i}", NINE)

        snapshot = services.queue.snapshot("food", today=SERVICE_DAY, now=NINE + minutes(1))

        assert [alert.level for alert in snapshot.alerts] == ["warning"]

    def test_long_wait_alert(self, services, check_in):
        check_in("r-1", NINE)

        snapshot = services.queue.snapshot("food", today=SERVICE_DAY, now=NINE + minutes(31))

        assert [alert.level for alert in snapshot.alerts] == ["error"]
        assert "1 visitors" in snapshot.alerts[0].message
