"""Bounded retry of a single atomic store call on transient conflicts."""

import logging
from collections.abc import Callable
from typing import TypeVar

from visits.domain.errors import StorageConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_retry(operation: str, call: Callable[[], T], attempts: int) -> T:
    """Run ``call``, retrying only on StorageConflictError.

    Only wrap a single conditional update: retrying a multi-step flow here
    would repeat steps that already took effect.
    """
    attempts = max(attempts, 1)
    for attempt in range(1, attempts + 1):
        try:
            return call()
        except StorageConflictError:
            if attempt == attempts:
                logger.error("Storage conflict on %s persisted after %s attempts", operation, attempts)
                raise
            logger.warning("Storage conflict on %s, retrying (%s/%s)", operation, attempt, attempts)
    raise AssertionError("unreachable")
