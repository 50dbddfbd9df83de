# arrivals/services/sweeper.py
import logging
from typing import Iterable, List

from arrivals.models import Flight, TERMINAL_STATUSES
from arrivals.services.subscriptions import SubscriptionIndex

log = logging.getLogger(__name__)


def is_retirement_eligible(flight: Flight, now_ms: int, grace_ms: int) -> bool:
    """
    LANDED / CANCELED, or eta older than the grace window.
    A flight with unknown eta is only eligible through its status.
    """
    if flight.status in TERMINAL_STATUSES:
        return True
    return flight.eta is not None and flight.eta < now_ms - grace_ms


class RetirementSweeper:
    """Drops subscriptions of finished flights. Flight rows are kept."""

    def __init__(self, subscriptions: SubscriptionIndex, grace_ms: int):
        self.subscriptions = subscriptions
        self.grace_ms = grace_ms

    def eligible_ids(self, flights: Iterable[Flight], now_ms: int) -> List[str]:
        return [f.id for f in flights if is_retirement_eligible(f, now_ms, self.grace_ms)]

    def sweep(self, flights: Iterable[Flight], now_ms: int) -> int:
        ids = self.eligible_ids(flights, now_ms)
        if not ids:
            log.info("Cleanup: no completed flights found")
            return 0
        deleted = self.subscriptions.delete_for_flights(ids)
        log.info("🧹 Cleanup: deleted %d subscription(s) for %d completed flight(s)", deleted, len(ids))
        return deleted
