"""Domain events emitted for external subscribers (notifications, audit).

Receivers get the affected domain object as a keyword argument. Delivery is
synchronous and in-process; anything slow belongs behind a task queue in the
receiver, not here.
"""

from django.dispatch import Signal

# reservation=SlotReservation
slot_granted = Signal()
# reservation=SlotReservation
slot_released = Signal()
# ticket=Ticket
ticket_issued = Signal()
# entry=QueueEntry
queue_entry_called = Signal()
# entry=QueueEntry
queue_entry_completed = Signal()
# entry=QueueEntry, reason=str
queue_entry_cancelled = Signal()
