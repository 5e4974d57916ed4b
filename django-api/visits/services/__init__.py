"""Service wiring.

Services depend only on store interfaces; this module binds them to a
concrete set of stores.
"""

from dataclasses import dataclass
from functools import lru_cache

from visits import conf
from visits.services.admission import AdmissionService
from visits.services.capacity_ledger import CapacityLedger
from visits.services.credential_issuer import CredentialIssuer
from visits.services.eligibility import EligibilityEvaluator
from visits.services.queue_manager import QueueManager
from visits.services.slot_allocator import SlotAllocator
from visits.stores.interfaces import (
    CapacityStore,
    CategoryStore,
    QueueStore,
    ReservationStore,
    TicketStore,
)


@dataclass(frozen=True)
class VisitServices:
    categories: CategoryStore
    ledger: CapacityLedger
    evaluator: EligibilityEvaluator
    allocator: SlotAllocator
    issuer: CredentialIssuer
    queue: QueueManager
    admission: AdmissionService


def build_services(
    categories: CategoryStore,
    capacity: CapacityStore,
    reservations: ReservationStore,
    tickets: TicketStore,
    queue: QueueStore,
) -> VisitServices:
    ledger = CapacityLedger(
        capacity,
        categories,
        retry_attempts=conf.get("RETRY_ATTEMPTS"),
        alternate_horizon_days=conf.get("ALTERNATE_DATE_HORIZON_DAYS"),
        max_alternate_dates=conf.get("MAX_ALTERNATE_DATES"),
    )
    evaluator = EligibilityEvaluator(categories, reservations)
    allocator = SlotAllocator(ledger, evaluator, reservations, tickets, categories)
    issuer = CredentialIssuer(
        tickets,
        allocator,
        categories,
        number_attempts=conf.get("TICKET_NUMBER_ATTEMPTS"),
        retry_attempts=conf.get("RETRY_ATTEMPTS"),
    )
    queue_manager = QueueManager(queue, issuer, categories, rolling_window=conf.get("ROLLING_WINDOW"))
    return VisitServices(
        categories=categories,
        ledger=ledger,
        evaluator=evaluator,
        allocator=allocator,
        issuer=issuer,
        queue=queue_manager,
        admission=AdmissionService(allocator, issuer),
    )


@lru_cache(maxsize=1)
def django_services() -> VisitServices:
    """Services bound to the Django ORM stores."""
    from visits.stores.django_store import (
        DjangoCapacityStore,
        DjangoCategoryStore,
        DjangoQueueStore,
        DjangoReservationStore,
        DjangoTicketStore,
    )

    return build_services(
        DjangoCategoryStore(),
        DjangoCapacityStore(),
        DjangoReservationStore(),
        DjangoTicketStore(),
        DjangoQueueStore(),
    )


def memory_services() -> VisitServices:
    """Services bound to fresh in-process stores configured from settings."""
    from visits.stores.memory_store import (
        InMemoryCapacityStore,
        InMemoryCategoryStore,
        InMemoryQueueStore,
        InMemoryReservationStore,
        InMemoryTicketStore,
    )

    return build_services(
        InMemoryCategoryStore(conf.default_categories(), frozenset(conf.get("OPERATING_WEEKDAYS"))),
        InMemoryCapacityStore(),
        InMemoryReservationStore(),
        InMemoryTicketStore(),
        InMemoryQueueStore(),
    )
