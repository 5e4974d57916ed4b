from django.urls import path

from visits.handlers import (
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

urlpatterns = [
    path("availability", AvailabilityView.as_view(), name="availability"),
    path("reservations", ReservationListView.as_view(), name="reservation-list"),
    path(
        "reservations/<str:reservation_id>/cancel",
        ReservationCancelView.as_view(),
        name="reservation-cancel",
    ),
    path("tickets/<str:ticket_number>", TicketDetailView.as_view(), name="ticket-detail"),
    path(
        "tickets/<str:ticket_number>/check-in",
        TicketCheckInView.as_view(),
        name="ticket-check-in",
    ),
    path("check-in/scan", ScanCheckInView.as_view(), name="scan-check-in"),
    path("queue/entries/<str:entry_id>", QueueEntryDetailView.as_view(), name="queue-entry-detail"),
    path(
        "queue/entries/<str:entry_id>/served",
        QueueEntryTransitionView.as_view(action="served"),
        name="queue-entry-served",
    ),
    path(
        "queue/entries/<str:entry_id>/completed",
        QueueEntryTransitionView.as_view(action="completed"),
        name="queue-entry-completed",
    ),
    path(
        "queue/entries/<str:entry_id>/cancel",
        QueueEntryTransitionView.as_view(action="cancel"),
        name="queue-entry-cancel",
    ),
    path("queue/<str:category>", QueueSnapshotView.as_view(), name="queue-snapshot"),
    path("queue/<str:category>/call-next", CallNextView.as_view(), name="queue-call-next"),
]
