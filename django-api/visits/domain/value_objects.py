"""Domain primitives that enforce validity at creation time."""

import re
from dataclasses import dataclass
from datetime import time
from typing import Self
from uuid import UUID

_TICKET_NUMBER_RE = re.compile(r"^[A-Z]{2,8}-\d{4}-\d{6,}$")
_TIME_WINDOW_RE = re.compile(r"^(\d{2}):(\d{2})-(\d{2}):(\d{2})$")


@dataclass(frozen=True)
class ReservationId:
    """Unique identifier for a SlotReservation."""

    value: UUID

    @classmethod
    def from_string(cls, value: str) -> Self:
        return cls(value=UUID(value))

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class QueueEntryId:
    """Insertion sequence of a QueueEntry; also its ordering tie-breaker."""

    value: int

    def __post_init__(self) -> None:
        if self.value < 1:
            raise ValueError("Queue entry id must be positive")

    @classmethod
    def from_string(cls, value: str) -> Self:
        return cls(value=int(value))

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class TicketNumber:
    """Human-readable ticket number, e.g. ``FOOD-2026-000042``."""

    value: str

    def __post_init__(self) -> None:
        if not _TICKET_NUMBER_RE.match(self.value):
            raise ValueError("Invalid ticket number format")

    @classmethod
    def build(cls, prefix: str, year: int, sequence: int) -> Self:
        return cls(value=f"{prefix}-{year:04d}-{sequence:06d}")

    @classmethod
    def from_string(cls, value: str) -> Self:
        return cls(value=value.strip().upper())

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Capacity:
    """Non-negative integer representing capacity."""

    value: int

    def __post_init__(self) -> None:
        if self.value < 0:
            raise ValueError("Capacity cannot be negative")


@dataclass(frozen=True)
class TimeWindow:
    """Requested arrival window within a service day, ``HH:MM-HH:MM``."""

    start: time
    end: time

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise ValueError("Time window must end after it starts")

    @classmethod
    def from_string(cls, value: str) -> Self:
        match = _TIME_WINDOW_RE.match(value.strip())
        if not match:
            raise ValueError("Time window must look like HH:MM-HH:MM")
        h1, m1, h2, m2 = (int(part) for part in match.groups())
        return cls(start=time(h1, m1), end=time(h2, m2))

    def __str__(self) -> str:
        return f"{self.start:%H:%M}-{self.end:%H:%M}"
