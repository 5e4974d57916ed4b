"""Pytest configuration and shared fixtures."""

from datetime import date, datetime

import pytest
from rest_framework.test import APIClient

from tests.factories import EVERY_DAY, SERVICE_DAY, category, emergency
from visits.domain import CategorySettings
from visits.services import build_services
from visits.stores.memory_store import (
    InMemoryCapacityStore,
    InMemoryCategoryStore,
    InMemoryQueueStore,
    InMemoryReservationStore,
    InMemoryTicketStore,
)


@pytest.fixture
def api_client() -> APIClient:
    return APIClient()


@pytest.fixture(autouse=True)
def clear_cache():
    from django.core.cache import cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def make_services():
    """Build services over fresh in-memory stores; stores can be swapped."""

    def factory(*categories: CategorySettings, weekdays=EVERY_DAY, **stores):
        configured = categories or (category("food"), emergency())
        return build_services(
            stores.get("categories")
            or InMemoryCategoryStore({item.category: item for item in configured}, weekdays),
            stores.get("capacity") or InMemoryCapacityStore(),
            stores.get("reservations") or InMemoryReservationStore(),
            stores.get("tickets") or InMemoryTicketStore(),
            stores.get("queue") or InMemoryQueueStore(),
        )

    return factory


@pytest.fixture
def services(make_services):
    return make_services()


@pytest.fixture
def admit(services):
    """Admit a requester for the food category on SERVICE_DAY and return the Admitted result."""

    def _admit(requester_id: str, category_name: str = "food", day: date = SERVICE_DAY, today: date = SERVICE_DAY):
        result = services.admission.admit(requester_id, category_name, day, today=today)
        assert result.ok, result
        return result

    return _admit


@pytest.fixture
def check_in(services, admit):
    """Admit and check in on SERVICE_DAY; returns the CheckedIn result."""

    def _check_in(requester_id: str, joined_at: datetime, priority: bool = False, category_name: str = "food"):
        admitted = admit(requester_id, category_name)
        result = services.queue.check_in(
            admitted.ticket.ticket_number,
            "staff-1",
            today=SERVICE_DAY,
            priority=priority,
            now=joined_at,
        )
        assert result.ok, result
        return result

    return _check_in
