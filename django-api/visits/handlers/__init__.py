from visits.handlers.views import (
    AvailabilityView,
    CallNextView,
    QueueEntryDetailView,
    QueueEntryTransitionView,
    QueueSnapshotView,
    ReservationCancelView,
    ReservationListView,
    ScanCheckInView,
    TicketCheckInView,
    TicketDetailView,
)

__all__ = [
    "AvailabilityView",
    "CallNextView",
    "QueueEntryDetailView",
    "QueueEntryTransitionView",
    "QueueSnapshotView",
    "ReservationCancelView",
    "ReservationListView",
    "ScanCheckInView",
    "TicketCheckInView",
    "TicketDetailView",
]
