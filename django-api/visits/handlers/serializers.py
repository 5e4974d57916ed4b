"""Serializers for request validation and domain model responses."""

from rest_framework import serializers

from visits.domain import TimeWindow


class OptionalTimeWindowField(serializers.Field):
    """``HH:MM-HH:MM`` string <-> TimeWindow, empty means no window."""

    def to_representation(self, value):
        return str(value) if value else None

    def to_internal_value(self, data):
        if not data:
            return None
        try:
            return TimeWindow.from_string(str(data))
        except ValueError as exc:
            raise serializers.ValidationError(str(exc)) from exc


# Requests


class SlotRequestSerializer(serializers.Serializer):
    requester_id = serializers.CharField(max_length=64)
    category = serializers.CharField(max_length=50)
    date = serializers.DateField()
    time_window = OptionalTimeWindowField(required=False, allow_null=True, default=None)


class AvailabilityQuerySerializer(serializers.Serializer):
    category = serializers.CharField(max_length=50)
    date = serializers.DateField()


class CheckInSerializer(serializers.Serializer):
    redeemer_id = serializers.CharField(max_length=64)
    priority = serializers.BooleanField(default=False)


class ScanCheckInSerializer(CheckInSerializer):
    payload = serializers.CharField(max_length=512)


class CancelEntrySerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    no_show = serializers.BooleanField(default=False)


# Responses


class AvailabilitySerializer(serializers.Serializer):
    date = serializers.DateField()
    category = serializers.CharField()
    max_capacity = serializers.IntegerField()
    current_count = serializers.IntegerField()
    remaining = serializers.IntegerField()
    is_operating_day = serializers.BooleanField()


class ReservationSerializer(serializers.Serializer):
    id = serializers.CharField(source="id.value")
    requester_id = serializers.CharField()
    category = serializers.CharField()
    date = serializers.DateField()
    time_window = OptionalTimeWindowField()
    status = serializers.CharField()
    created_at = serializers.DateTimeField()


class TicketSerializer(serializers.Serializer):
    ticket_number = serializers.CharField(source="ticket_number.value")
    reservation_id = serializers.CharField(source="reservation_id.value")
    requester_id = serializers.CharField()
    category = serializers.CharField()
    valid_date = serializers.DateField()
    time_window = OptionalTimeWindowField()
    status = serializers.SerializerMethodField()
    issued_at = serializers.DateTimeField()
    redeemed_at = serializers.DateTimeField(allow_null=True)
    redeemed_by = serializers.CharField(allow_null=True)

    def get_status(self, ticket) -> str:
        today = self.context.get("today")
        return ticket.status_on(today).value if today else ticket.status.value


class QueueEntrySerializer(serializers.Serializer):
    id = serializers.IntegerField(source="id.value")
    ticket_number = serializers.CharField(source="ticket_number.value")
    category = serializers.CharField()
    service_date = serializers.DateField()
    status = serializers.CharField()
    priority = serializers.BooleanField()
    joined_at = serializers.DateTimeField()
    called_at = serializers.DateTimeField(allow_null=True)
    served_at = serializers.DateTimeField(allow_null=True)
    completed_at = serializers.DateTimeField(allow_null=True)
    cancelled_at = serializers.DateTimeField(allow_null=True)
    cancel_reason = serializers.CharField()


def minutes(value) -> int:
    return round(value.total_seconds() / 60)


class WaitingEntrySerializer(serializers.Serializer):
    entry = QueueEntrySerializer()
    position = serializers.IntegerField()
    estimated_wait_minutes = serializers.SerializerMethodField()

    def get_estimated_wait_minutes(self, waiting) -> int:
        return minutes(waiting.estimated_wait)


class QueueAlertSerializer(serializers.Serializer):
    level = serializers.CharField()
    message = serializers.CharField()


class QueueSnapshotSerializer(serializers.Serializer):
    category = serializers.CharField()
    service_date = serializers.DateField()
    waiting = WaitingEntrySerializer(many=True)
    called = QueueEntrySerializer(many=True)
    status_counts = serializers.DictField(child=serializers.IntegerField())
    average_service_minutes = serializers.SerializerMethodField()
    alerts = QueueAlertSerializer(many=True)

    def get_average_service_minutes(self, snapshot) -> int:
        return minutes(snapshot.average_service_time)
