"""Domain error codes for the visits module."""

from dataclasses import dataclass
from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    INELIGIBLE = "INELIGIBLE"
    NO_CAPACITY = "NO_CAPACITY"
    DUPLICATE_RESERVATION = "DUPLICATE_RESERVATION"
    INVALID_DATE = "INVALID_DATE"
    TICKET_NOT_FOUND = "TICKET_NOT_FOUND"
    TICKET_ALREADY_USED = "TICKET_ALREADY_USED"
    TICKET_CANCELLED = "TICKET_CANCELLED"
    TICKET_WRONG_DAY = "TICKET_WRONG_DAY"
    ALREADY_IN_QUEUE = "ALREADY_IN_QUEUE"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
    RESERVATION_NOT_FOUND = "RESERVATION_NOT_FOUND"
    QUEUE_ENTRY_NOT_FOUND = "QUEUE_ENTRY_NOT_FOUND"
    UNKNOWN_CATEGORY = "UNKNOWN_CATEGORY"
    INVALID_ID = "INVALID_ID"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    STORAGE_CONFLICT = "STORAGE_CONFLICT"


@dataclass(frozen=True)
class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class InvalidIdentifierError(DomainError):
    """Raised when an identifier in a request cannot be parsed."""

    def __init__(self, kind: str) -> None:
        super().__init__(
            code=ErrorCode.INVALID_ID,
            message=f"Invalid {kind} format",
        )


class UnknownCategoryError(DomainError):
    """Raised when a category has no configuration."""

    def __init__(self, category: str) -> None:
        super().__init__(
            code=ErrorCode.UNKNOWN_CATEGORY,
            message="Unknown service category",
        )
        object.__setattr__(self, "category", category)


class ReservationNotFoundError(DomainError):
    def __init__(self, reservation_id: str) -> None:
        super().__init__(
            code=ErrorCode.RESERVATION_NOT_FOUND,
            message="Reservation not found",
        )
        object.__setattr__(self, "reservation_id", reservation_id)


class TicketNotFoundError(DomainError):
    def __init__(self, ticket_number: str) -> None:
        super().__init__(
            code=ErrorCode.TICKET_NOT_FOUND,
            message="Ticket not found",
        )
        object.__setattr__(self, "ticket_number", ticket_number)


class QueueEntryNotFoundError(DomainError):
    def __init__(self, entry_id: str) -> None:
        super().__init__(
            code=ErrorCode.QUEUE_ENTRY_NOT_FOUND,
            message="Queue entry not found",
        )
        object.__setattr__(self, "entry_id", entry_id)


class InvalidPayloadError(DomainError):
    """Raised when a scanned redemption payload fails signature checks."""

    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.INVALID_PAYLOAD,
            message="Ticket code could not be verified",
        )


class ReservationNotActiveError(DomainError):
    """Raised when a ticket is requested for a released or consumed reservation."""

    def __init__(self, status: str) -> None:
        super().__init__(
            code=ErrorCode.INVALID_STATE_TRANSITION,
            message=f"Reservation is {status}",
        )


class DuplicateReservationError(DomainError):
    """Raised by stores when an open reservation already holds the key."""

    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.DUPLICATE_RESERVATION,
            message="An active reservation already exists for this date and category",
        )


class StorageConflictError(DomainError):
    """Raised by stores on a transient concurrent-update failure."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            code=ErrorCode.STORAGE_CONFLICT,
            message="Storage is busy, try again",
        )
        object.__setattr__(self, "operation", operation)


class DuplicateQueueEntryError(DomainError):
    """Raised by stores when the ticket already has an open queue entry."""

    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.ALREADY_IN_QUEUE,
            message="Ticket is already in the queue",
        )
