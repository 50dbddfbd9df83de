# arrivals/services/subscriptions.py
import logging
from typing import Iterable, List, Optional, Set

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from arrivals.core.repository import FlightRepository
from arrivals.db import SessionLocal, Subscription, get_session
from arrivals.models import Flight

log = logging.getLogger(__name__)


def _by_eta(flight: Flight):
    # unknown eta sorts last
    return (flight.eta is None, flight.eta or 0, flight.flight_number)


class SubscriptionIndex:
    """Who tracks which flight. Rows are keyed by (subscriber_id, flight_id)."""

    def __init__(self, flights: FlightRepository, session_factory: Optional[sessionmaker] = None):
        self.flights = flights
        self._factory = session_factory or SessionLocal

    def subscribe(self, subscriber_id: str, flight_id: str, now_ms: int) -> bool:
        """Returns True if a row was created, False if it already existed."""
        subscriber_id = str(subscriber_id)
        try:
            with get_session(self._factory) as session:
                if session.get(Subscription, (subscriber_id, flight_id)) is not None:
                    return False
                session.add(Subscription(subscriber_id=subscriber_id, flight_id=flight_id, created_at=now_ms))
        except IntegrityError:
            # concurrent subscribe won the insert
            return False
        log.info("➕ %s now tracking %s", subscriber_id, flight_id)
        return True

    def unsubscribe(self, subscriber_id: str, flight_id: str) -> bool:
        with get_session(self._factory) as session:
            n = (
                session.query(Subscription)
                .filter_by(subscriber_id=str(subscriber_id), flight_id=flight_id)
                .delete(synchronize_session=False)
            )
        return n > 0

    def unsubscribe_all(self, subscriber_id: str) -> int:
        with get_session(self._factory) as session:
            n = (
                session.query(Subscription)
                .filter_by(subscriber_id=str(subscriber_id))
                .delete(synchronize_session=False)
            )
        log.info("🧹 Cleared %d subscription(s) for %s", n, subscriber_id)
        return n

    def tracked_ids(self, subscriber_id: str) -> Set[str]:
        with get_session(self._factory) as session:
            rows = (
                session.query(Subscription.flight_id)
                .filter(
                    Subscription.subscriber_id == str(subscriber_id),
                    Subscription.auto_cleanup_at.is_(None),
                )
                .all()
            )
        return {fid for (fid,) in rows}

    def list_for_subscriber(self, subscriber_id: str) -> List[Flight]:
        ids = self.tracked_ids(subscriber_id)
        snapshot = self.flights.snapshot()
        return sorted((snapshot[i] for i in ids if i in snapshot), key=_by_eta)

    def list_subscribers_for_flight(self, flight_id: str) -> Set[str]:
        with get_session(self._factory) as session:
            rows = (
                session.query(Subscription.subscriber_id)
                .filter(Subscription.flight_id == flight_id, Subscription.auto_cleanup_at.is_(None))
                .all()
            )
        subscribers = [sid for (sid,) in rows]
        unique = set(subscribers)
        if len(unique) != len(subscribers):
            log.error(
                "⚠️ Duplicate subscription rows for flight %s: %d rows, %d subscribers",
                flight_id, len(subscribers), len(unique),
            )
        return unique

    def list_untracked(self, subscriber_id: str) -> List[Flight]:
        """Flights the subscriber could still start tracking, soonest first."""
        tracked = self.tracked_ids(subscriber_id)
        candidates = (
            f for f in self.flights.get_all()
            if f.id not in tracked and not f.is_terminal
        )
        return sorted(candidates, key=_by_eta)

    def delete_for_flights(self, flight_ids: Iterable[str]) -> int:
        ids = sorted(set(flight_ids))
        if not ids:
            return 0
        with get_session(self._factory) as session:
            return (
                session.query(Subscription)
                .filter(Subscription.flight_id.in_(ids))
                .delete(synchronize_session=False)
            )

    def count(self) -> int:
        with get_session(self._factory) as session:
            return session.query(Subscription).count()
