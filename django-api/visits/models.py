"""Django ORM models (persistence layer).

These models handle database concerns. Domain logic lives in domain/models.py.
"""

import uuid

from django.db import models
from django.db.models import Q

from visits.domain.statuses import QueueStatus, ReservationStatus, TicketStatus

OPEN_QUEUE_STATUSES = [status.value for status in QueueStatus.open_statuses()]
HOLDING_RESERVATION_STATUSES = [status.value for status in ReservationStatus.holding_capacity()]


class CategorySettings(models.Model):
    """Per-category overrides of the VISITS["CATEGORIES"] defaults."""

    category = models.CharField(max_length=50, unique=True)
    default_capacity = models.PositiveIntegerField()
    cooldown_days = models.PositiveIntegerField(default=7)
    capacity_exempt = models.BooleanField(default=False)
    ticket_prefix = models.CharField(max_length=8)
    average_service_minutes = models.PositiveIntegerField(default=8)
    service_desks = models.PositiveIntegerField(default=1)
    alert_threshold_minutes = models.PositiveIntegerField(default=30)
    max_queue_alert = models.PositiveIntegerField(default=15)
    is_active = models.BooleanField(default=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "category settings"
        ordering = ["category"]

    def __str__(self) -> str:
        return self.category


class CapacityDay(models.Model):
    """Persistence model for the daily capacity counter of a category."""

    date = models.DateField()
    category = models.CharField(max_length=50)
    max_capacity = models.PositiveIntegerField()
    current_count = models.PositiveIntegerField(default=0)
    is_operating_day = models.BooleanField(default=True)
    notes = models.TextField(blank=True, default="")
    temporary_adjustment = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["date", "category"]
        constraints = [
            models.UniqueConstraint(fields=["date", "category"], name="uniq_capacity_day"),
            models.CheckConstraint(
                condition=Q(current_count__gte=0),
                name="capacity_day_count_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.date} {self.category} {self.current_count}/{self.max_capacity}"


class SlotReservation(models.Model):
    """Persistence model for an admission decision."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    requester_id = models.CharField(max_length=64)
    category = models.CharField(max_length=50)
    date = models.DateField()
    time_window = models.CharField(max_length=11, blank=True, default="")
    status = models.CharField(
        max_length=10,
        choices=[(status.value, status.name.title()) for status in ReservationStatus],
        default=ReservationStatus.RESERVED.value,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-date", "-created_at"]
        indexes = [
            models.Index(fields=["requester_id", "category", "status"], name="visits_slot_request_5f0a1c_idx"),
            models.Index(fields=["status", "date"], name="visits_slot_status_8e2b7d_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["requester_id", "category", "date"],
                condition=Q(status__in=HOLDING_RESERVATION_STATUSES),
                name="uniq_open_reservation",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.requester_id} {self.category} {self.date} ({self.status})"


class Ticket(models.Model):
    """Persistence model for the redeemable visit credential."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    ticket_number = models.CharField(max_length=32, unique=True)
    reservation = models.OneToOneField(
        SlotReservation, on_delete=models.PROTECT, related_name="ticket"
    )
    requester_id = models.CharField(max_length=64)
    category = models.CharField(max_length=50)
    valid_date = models.DateField()
    time_window = models.CharField(max_length=11, blank=True, default="")
    status = models.CharField(
        max_length=10,
        choices=[
            (status.value, status.name.title())
            for status in TicketStatus
            if status != TicketStatus.EXPIRED
        ],
        default=TicketStatus.ACTIVE.value,
    )
    issued_at = models.DateTimeField()
    redeemed_at = models.DateTimeField(null=True, blank=True)
    redeemed_by = models.CharField(max_length=64, blank=True, null=True)

    class Meta:
        ordering = ["-issued_at"]
        indexes = [
            models.Index(fields=["valid_date", "status"], name="visits_tick_valid_d_3c9e4a_idx"),
        ]

    def __str__(self) -> str:
        return self.ticket_number


class QueueEntry(models.Model):
    """Persistence model for a live queue entry.

    The auto-increment id is the insertion sequence that breaks ties between
    equal joined_at timestamps. Position is derived, never stored.
    """

    id = models.BigAutoField(primary_key=True)
    ticket = models.ForeignKey(Ticket, on_delete=models.PROTECT, related_name="queue_entries")
    category = models.CharField(max_length=50)
    service_date = models.DateField()
    priority = models.BooleanField(default=False)
    status = models.CharField(
        max_length=10,
        choices=[(status.value, status.name.title()) for status in QueueStatus],
        default=QueueStatus.WAITING.value,
    )
    joined_at = models.DateTimeField()
    called_at = models.DateTimeField(null=True, blank=True)
    served_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancel_reason = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        ordering = ["joined_at", "id"]
        verbose_name_plural = "queue entries"
        indexes = [
            models.Index(
                fields=["category", "service_date", "status", "joined_at"],
                name="visits_queu_categor_7d41b2_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["ticket"],
                condition=Q(status__in=OPEN_QUEUE_STATUSES),
                name="uniq_open_queue_entry",
            ),
        ]

    def __str__(self) -> str:
        return f"#{self.id} {self.ticket_id} ({self.status})"
