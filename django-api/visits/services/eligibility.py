"""Frequency eligibility: cooldown between consumed visits in a category."""

from collections.abc import Iterable
from datetime import date

from visits.domain import EligibilityRule, SlotReservation
from visits.domain.results import Eligibility
from visits.stores.interfaces import CategoryStore, ReservationStore


def evaluate(rule: EligibilityRule, history: Iterable[SlotReservation], today: date) -> Eligibility:
    """Decide eligibility from the requester's consumed reservations.

    ``history`` must only hold consumed reservations of the category under
    evaluation; order does not matter. With no history there is no cooldown
    to wait out, so a first-time requester is always eligible.
    """
    last_visit = max((reservation.date for reservation in history), default=None)
    if last_visit is None:
        return Eligibility.allowed()

    cooldown_end = last_visit + rule.cooldown
    if today >= cooldown_end:
        return Eligibility.allowed()
    return Eligibility.blocked_until(cooldown_end)


class EligibilityEvaluator:
    """Reads history and category rules, then applies ``evaluate``."""

    def __init__(self, categories: CategoryStore, reservations: ReservationStore) -> None:
        self._categories = categories
        self._reservations = reservations

    def check(self, requester_id: str, category: str, today: date) -> Eligibility:
        rule = self._categories.get(category).rule
        history = self._reservations.consumed_history(requester_id, category)
        return evaluate(rule, history, today)
