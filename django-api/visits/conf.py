"""Access to the VISITS settings dict with defaults applied."""

from typing import Any

from django.conf import settings

from visits.domain import Capacity, CategorySettings

DEFAULTS: dict[str, Any] = {
    # Tuesday, Wednesday, Thursday
    "OPERATING_WEEKDAYS": (1, 2, 3),
    "ROLLING_WINDOW": 20,
    "RETRY_ATTEMPTS": 3,
    "ALTERNATE_DATE_HORIZON_DAYS": 14,
    "MAX_ALTERNATE_DATES": 3,
    "TICKET_NUMBER_ATTEMPTS": 5,
    "CATEGORY_CACHE_TIMEOUT": 60,
    "CATEGORIES": {
        "food": {
            "default_capacity": 50,
            "cooldown_days": 7,
            "ticket_prefix": "FOOD",
            "average_service_minutes": 8,
        },
        "general": {
            "default_capacity": 20,
            "cooldown_days": 30,
            "ticket_prefix": "GEN",
            "average_service_minutes": 15,
        },
        "emergency": {
            "default_capacity": 10,
            "cooldown_days": 0,
            "ticket_prefix": "EMG",
            "average_service_minutes": 20,
            "capacity_exempt": True,
        },
    },
}


def get(name: str) -> Any:
    return getattr(settings, "VISITS", {}).get(name, DEFAULTS[name])


def category_from_mapping(category: str, values: dict[str, Any]) -> CategorySettings:
    """Build CategorySettings from a settings mapping or a model's field values."""
    return CategorySettings(
        category=category,
        default_capacity=Capacity(int(values["default_capacity"])),
        cooldown_days=int(values.get("cooldown_days", 0)),
        ticket_prefix=values["ticket_prefix"].upper(),
        average_service_minutes=int(values.get("average_service_minutes", 8)),
        capacity_exempt=bool(values.get("capacity_exempt", False)),
        service_desks=int(values.get("service_desks", 1)),
        alert_threshold_minutes=int(values.get("alert_threshold_minutes", 30)),
        max_queue_alert=int(values.get("max_queue_alert", 15)),
        is_active=bool(values.get("is_active", True)),
    )


def default_categories() -> dict[str, CategorySettings]:
    return {name: category_from_mapping(name, values) for name, values in get("CATEGORIES").items()}
