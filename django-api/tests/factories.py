"""Builders shared by the test modules."""

from datetime import UTC, date, datetime, time

from visits import conf
from visits.domain import CategorySettings

# A Tuesday: an operating day under the default schedule.
SERVICE_DAY = date(2026, 10, 20)
EVERY_DAY = frozenset(range(7))


def at(day: date, hour: int, minute: int = 0, second: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute, second), tzinfo=UTC)


def category(name: str = "food", **overrides) -> CategorySettings:
    values = {
        "default_capacity": 2,
        "cooldown_days": 7,
        "ticket_prefix": name[:4].upper(),
        "average_service_minutes": 10,
    }
    values.update(overrides)
    return conf.category_from_mapping(name, values)


def emergency(**overrides) -> CategorySettings:
    values = {
        "default_capacity": 1,
        "cooldown_days": 0,
        "ticket_prefix": "EMG",
        "capacity_exempt": True,
    }
    values.update(overrides)
    return category("emergency", **values)
