"""HTTP handlers (views) - handle HTTP concerns only.

Handlers:
- Parse requests and validate input format
- Call services for business logic
- Map domain errors and rejections to HTTP responses
- Never contain business logic
- Never expose internal error details
"""

from django.utils import timezone
from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from visits.domain import QueueEntryId, ReservationId, TicketNumber
from visits.domain.errors import DomainError, ErrorCode, InvalidIdentifierError
from visits.domain.results import Admitted, Rejection, SlotDenied
from visits.handlers.serializers import (
    AvailabilityQuerySerializer,
    AvailabilitySerializer,
    CancelEntrySerializer,
    CheckInSerializer,
    QueueEntrySerializer,
    QueueSnapshotSerializer,
    ReservationSerializer,
    ScanCheckInSerializer,
    SlotRequestSerializer,
    TicketSerializer,
    minutes,
)
from visits.services import django_services

ERROR_STATUS = {
    ErrorCode.INELIGIBLE: status.HTTP_409_CONFLICT,
    ErrorCode.NO_CAPACITY: status.HTTP_409_CONFLICT,
    ErrorCode.DUPLICATE_RESERVATION: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_DATE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.TICKET_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.TICKET_ALREADY_USED: status.HTTP_409_CONFLICT,
    ErrorCode.TICKET_CANCELLED: status.HTTP_409_CONFLICT,
    ErrorCode.TICKET_WRONG_DAY: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_IN_QUEUE: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_STATE_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.RESERVATION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.QUEUE_ENTRY_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.UNKNOWN_CATEGORY: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_ID: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_PAYLOAD: status.HTTP_400_BAD_REQUEST,
    ErrorCode.STORAGE_CONFLICT: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def error_response(code: ErrorCode, message: str, **extra) -> Response:
    body = {"error": {"code": code.value, "message": message, **extra}}
    return Response(body, status=ERROR_STATUS[code])


def rejection_response(rejection: Rejection) -> Response:
    extra = {}
    if isinstance(rejection, SlotDenied):
        if rejection.next_available_date:
            extra["next_available_date"] = rejection.next_available_date.isoformat()
        if rejection.alternate_dates:
            extra["alternate_dates"] = [day.isoformat() for day in rejection.alternate_dates]
    return error_response(rejection.code, rejection.message, **extra)


def parse_id(parser, value: str, kind: str):
    try:
        return parser(value)
    except ValueError:
        raise InvalidIdentifierError(kind) from None


class VisitsAPIView(APIView):
    """Base view turning DomainError into the error response shape."""

    def handle_exception(self, exc):
        if isinstance(exc, DomainError):
            return error_response(exc.code, exc.message)
        return super().handle_exception(exc)

    @property
    def services(self):
        return django_services()


class AvailabilityView(VisitsAPIView):
    """Handler for GET /api/availability?date=&category="""

    def get(self, request: Request) -> Response:
        query = AvailabilityQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        day, category = query.validated_data["date"], query.validated_data["category"]

        ledger = self.services.ledger
        availability = ledger.get_availability(day, category)
        body = AvailabilitySerializer(availability).data
        if availability.remaining == 0:
            body["alternate_dates"] = [d.isoformat() for d in ledger.alternate_dates(category, day)]
        return Response(body)


class ReservationListView(VisitsAPIView):
    """Handler for POST /api/reservations"""

    def post(self, request: Request) -> Response:
        serializer = SlotRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = self.services.admission.admit(
            data["requester_id"], data["category"], data["date"], data["time_window"]
        )
        if not isinstance(result, Admitted):
            return rejection_response(result)

        context = {"today": timezone.localdate()}
        return Response(
            {
                "reservation": ReservationSerializer(result.reservation).data,
                "ticket": TicketSerializer(result.ticket, context=context).data,
                "payload": result.payload,
            },
            status=status.HTTP_201_CREATED,
        )


class ReservationCancelView(VisitsAPIView):
    """Handler for POST /api/reservations/{reservation_id}/cancel"""

    def post(self, request: Request, reservation_id: str) -> Response:
        parsed = parse_id(ReservationId.from_string, reservation_id, "reservation id")
        result = self.services.admission.withdraw(parsed)
        if not result.ok:
            return rejection_response(result)
        return Response(ReservationSerializer(result.reservation).data)


class TicketDetailView(VisitsAPIView):
    """Handler for GET /api/tickets/{ticket_number}"""

    def get(self, request: Request, ticket_number: str) -> Response:
        number = parse_id(TicketNumber.from_string, ticket_number, "ticket number")
        issuer = self.services.issuer
        ticket = issuer.get_ticket(number)
        body = TicketSerializer(ticket, context={"today": timezone.localdate()}).data
        body["payload"] = issuer.payload_for(ticket)
        return Response(body)


def check_in_response(result) -> Response:
    if not result.ok:
        return rejection_response(result)
    return Response(
        {
            "entry": QueueEntrySerializer(result.entry).data,
            "position": result.position,
            "estimated_wait_minutes": minutes(result.estimated_wait),
        },
        status=status.HTTP_201_CREATED,
    )


class TicketCheckInView(VisitsAPIView):
    """Handler for POST /api/tickets/{ticket_number}/check-in"""

    def post(self, request: Request, ticket_number: str) -> Response:
        number = parse_id(TicketNumber.from_string, ticket_number, "ticket number")
        serializer = CheckInSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = self.services.queue.check_in(
            number,
            serializer.validated_data["redeemer_id"],
            priority=serializer.validated_data["priority"],
        )
        return check_in_response(result)


class ScanCheckInView(VisitsAPIView):
    """Handler for POST /api/check-in/scan"""

    def post(self, request: Request) -> Response:
        serializer = ScanCheckInSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = self.services.queue.check_in_payload(
            data["payload"], data["redeemer_id"], priority=data["priority"]
        )
        return check_in_response(result)


class QueueSnapshotView(VisitsAPIView):
    """Handler for GET /api/queue/{category}"""

    def get(self, request: Request, category: str) -> Response:
        snapshot = self.services.queue.snapshot(category)
        return Response(QueueSnapshotSerializer(snapshot).data)


class CallNextView(VisitsAPIView):
    """Handler for POST /api/queue/{category}/call-next"""

    def post(self, request: Request, category: str) -> Response:
        entry = self.services.queue.call_next(category)
        if entry is None:
            return Response(status=status.HTTP_204_NO_CONTENT)
        return Response(QueueEntrySerializer(entry).data)


class QueueEntryDetailView(VisitsAPIView):
    """Handler for GET /api/queue/entries/{entry_id}"""

    def get(self, request: Request, entry_id: str) -> Response:
        parsed = parse_id(QueueEntryId.from_string, entry_id, "queue entry id")
        queue = self.services.queue
        entry = queue.get_entry(parsed)
        return Response(
            {
                "entry": QueueEntrySerializer(entry).data,
                "position": queue.position(parsed),
                "estimated_wait_minutes": minutes(queue.estimated_wait(parsed)),
            }
        )


class QueueEntryTransitionView(VisitsAPIView):
    """Handler for POST /api/queue/entries/{entry_id}/{served|completed|cancel}"""

    action = ""

    def post(self, request: Request, entry_id: str) -> Response:
        parsed = parse_id(QueueEntryId.from_string, entry_id, "queue entry id")
        queue = self.services.queue
        if self.action == "served":
            result = queue.mark_served(parsed)
        elif self.action == "completed":
            result = queue.mark_completed(parsed)
        else:
            serializer = CancelEntrySerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            result = queue.cancel(
                parsed,
                reason=serializer.validated_data["reason"],
                no_show=serializer.validated_data["no_show"],
            )
        if not result.ok:
            return rejection_response(result)
        return Response(QueueEntrySerializer(result.entry).data)
