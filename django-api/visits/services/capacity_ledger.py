"""Capacity ledger - per (date, category) counters.

The ledger is the only serialization point for admissions: all of
"never oversell a day" rests on ``try_reserve`` being atomic per key, which
the store guarantees. The ledger adds lazy initialization from category
defaults and bounded retries of the single atomic call on storage conflicts.
"""

import logging
from datetime import date, timedelta

from visits.domain import Capacity, CapacityDay
from visits.domain.results import Availability, ReserveOutcome
from visits.services.retry import call_with_retry
from visits.stores.interfaces import CapacityStore, CategoryStore

logger = logging.getLogger(__name__)


class CapacityLedger:
    """Service for daily capacity counters."""

    def __init__(
        self,
        store: CapacityStore,
        categories: CategoryStore,
        retry_attempts: int = 3,
        alternate_horizon_days: int = 14,
        max_alternate_dates: int = 3,
    ) -> None:
        self._store = store
        self._categories = categories
        self._retry_attempts = max(retry_attempts, 1)
        self._alternate_horizon_days = alternate_horizon_days
        self._max_alternate_dates = max_alternate_dates

    def atomic(self):
        return self._store.atomic()

    def _ensure_day(self, day: date, category: str) -> CapacityDay:
        settings = self._categories.get(category)
        is_operating_day = settings.is_active and day.weekday() in self._categories.operating_weekdays()
        max_capacity = settings.default_capacity if is_operating_day else Capacity(0)
        return self._store.get_or_create_day(day, category, max_capacity, is_operating_day)

    def _retrying(self, operation: str, call):
        return call_with_retry(operation, call, self._retry_attempts)

    def get_availability(self, day: date, category: str) -> Availability:
        """Return (max, current, is_operating_day) for a day, creating it if absent."""
        capacity_day = self._ensure_day(day, category)
        return Availability(
            date=capacity_day.date,
            category=capacity_day.category,
            max_capacity=capacity_day.max_capacity.value,
            current_count=capacity_day.current_count,
            is_operating_day=capacity_day.is_operating_day,
        )

    def try_reserve(self, day: date, category: str) -> ReserveOutcome:
        """Take one unit of capacity, or report the day full or closed."""
        self._ensure_day(day, category)
        outcome = self._retrying("try_reserve", lambda: self._store.try_reserve(day, category))
        logger.debug("try_reserve %s/%s -> %s", day, category, outcome)
        return outcome

    def track(self, day: date, category: str) -> None:
        """Count an admission for a capacity-exempt category."""
        self._ensure_day(day, category)
        self._retrying("track", lambda: self._store.track(day, category))

    def release(self, day: date, category: str) -> None:
        """Give back one unit of capacity, never going below zero."""
        self._retrying("release", lambda: self._store.release(day, category))
        logger.debug("Released capacity %s/%s", day, category)

    def alternate_dates(self, category: str, after: date) -> tuple[date, ...]:
        """Suggest the next operating dates after ``after`` that still have room."""
        found: list[date] = []
        for offset in range(1, self._alternate_horizon_days + 1):
            candidate = after + timedelta(days=offset)
            if self.get_availability(candidate, category).remaining > 0:
                found.append(candidate)
                if len(found) >= self._max_alternate_dates:
                    break
        return tuple(found)

    def adjust_day(
        self,
        day: date,
        category: str,
        max_capacity: int | None = None,
        is_operating_day: bool | None = None,
        notes: str | None = None,
    ) -> Availability:
        """Override a single day; max capacity is never set below the current count."""
        self._ensure_day(day, category)
        updated = self._store.update_day(
            day,
            category,
            Capacity(max_capacity) if max_capacity is not None else None,
            is_operating_day,
            notes,
        )
        logger.info(
            "Adjusted capacity day %s/%s max=%s operating=%s",
            day,
            category,
            updated.max_capacity.value,
            updated.is_operating_day,
        )
        return self.get_availability(day, category)
