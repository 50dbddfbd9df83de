# arrivals/services/alerts.py
import logging
from typing import Dict, List, Optional

from arrivals.models import ChangedFlight, Flight
from arrivals.services.notifier import Notifier
from arrivals.services.subscriptions import SubscriptionIndex
from arrivals.timeutils import to_z

log = logging.getLogger(__name__)


def format_alert(flight: Flight, changes: List[str]) -> str:
    return (
        f"🚨 *Flight Update: {flight.flight_number}*\n\n"
        + "\n".join(changes)
        + f"\n\nCity: {flight.city or 'Unknown'}\nAirline: {flight.airline or 'Unknown'}"
    )


def send_flight_alerts(
    changes_by_flight: Dict[str, ChangedFlight],
    subscriptions: SubscriptionIndex,
    notifier: Notifier,
    at_ms: Optional[int] = None,
) -> int:
    """
    Fan each flight's changes out to the subscribers of that flight id only.
    Delivery is best effort: one failed recipient never stops the rest.
    Returns the number of messages delivered.
    """
    delivered = 0
    for flight_id, change in changes_by_flight.items():
        subscribers = subscriptions.list_subscribers_for_flight(flight_id)
        if not subscribers:
            continue

        log.info("🔔 %s changed: %s", change.flight.flight_number, ", ".join(change.changes))
        message = format_alert(change.flight, change.changes)
        for subscriber_id in sorted(subscribers):
            try:
                if notifier.notify(subscriber_id, message):
                    delivered += 1
            except Exception:
                log.exception(
                    "❌ Alert failed: chat=%s flight=%s len=%d at=%s",
                    subscriber_id, flight_id, len(message), to_z(at_ms),
                )
        log.info("Sent alerts to %d user(s) for %s", len(subscribers), change.flight.flight_number)
    return delivered
