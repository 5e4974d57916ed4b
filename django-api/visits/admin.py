from django.contrib import admin

from visits.models import CapacityDay, CategorySettings, QueueEntry, SlotReservation, Ticket


class TicketInline(admin.StackedInline):
    model = Ticket
    extra = 0
    can_delete = False
    readonly_fields = ["ticket_number", "status", "valid_date", "redeemed_at", "redeemed_by"]


@admin.register(CategorySettings)
class CategorySettingsAdmin(admin.ModelAdmin):
    list_display = [
        "category",
        "default_capacity",
        "cooldown_days",
        "capacity_exempt",
        "average_service_minutes",
        "is_active",
    ]


@admin.register(CapacityDay)
class CapacityDayAdmin(admin.ModelAdmin):
    list_display = ["date", "category", "current_count", "max_capacity", "is_operating_day"]
    list_filter = ["category", "is_operating_day"]
    date_hierarchy = "date"
    # Counts only move through the capacity ledger.
    readonly_fields = ["current_count"]


@admin.register(SlotReservation)
class SlotReservationAdmin(admin.ModelAdmin):
    list_display = ["requester_id", "category", "date", "time_window", "status", "created_at"]
    list_filter = ["category", "status"]
    search_fields = ["requester_id"]
    readonly_fields = ["status"]
    inlines = [TicketInline]


@admin.register(Ticket)
class TicketAdmin(admin.ModelAdmin):
    list_display = ["ticket_number", "requester_id", "category", "valid_date", "status"]
    list_filter = ["category", "status"]
    search_fields = ["ticket_number", "requester_id"]
    readonly_fields = ["status", "redeemed_at", "redeemed_by"]


@admin.register(QueueEntry)
class QueueEntryAdmin(admin.ModelAdmin):
    list_display = ["id", "ticket", "category", "service_date", "priority", "status", "joined_at"]
    list_filter = ["category", "status", "service_date"]
    readonly_fields = ["status", "joined_at", "called_at", "served_at", "completed_at", "cancelled_at"]
