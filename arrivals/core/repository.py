# arrivals/core/repository.py
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import sessionmaker

from arrivals.db import SessionLocal, FlightRecord, get_session
from arrivals.models import Flight, normalize_flight_number

log = logging.getLogger(__name__)


class FlightRepository:
    """
    Snapshot store: the current set of known flights.

    Reads go through an in-process cache that lives for one reconciliation
    pass; call `invalidate()` when a new pass starts. Writes invalidate it too.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._factory = session_factory or SessionLocal
        self._cache: Optional[Dict[str, Flight]] = None

    def invalidate(self) -> None:
        self._cache = None

    def _load(self) -> Dict[str, Flight]:
        if self._cache is None:
            with get_session(self._factory) as session:
                rows = session.query(FlightRecord).order_by(FlightRecord.sta.asc()).all()
                self._cache = {r.id: r.to_model() for r in rows}
            log.debug("Loaded %d flights from store", len(self._cache))
        return self._cache

    def snapshot(self) -> Dict[str, Flight]:
        return dict(self._load())

    def get_all(self) -> List[Flight]:
        return list(self._load().values())

    def get_by_id(self, flight_id: str) -> Optional[Flight]:
        return self._load().get(flight_id)

    def get_by_number(self, flight_number: str, now_ms: int) -> Optional[Flight]:
        """
        Soonest occurrence still to arrive (eta in the future); if there is none,
        the soonest occurrence by eta regardless of time.
        """
        number = normalize_flight_number(flight_number)
        with get_session(self._factory) as session:
            base = session.query(FlightRecord).filter(FlightRecord.flight_number == number)
            row = (
                base.filter(FlightRecord.eta > now_ms)
                .order_by(FlightRecord.eta.asc())
                .first()
            )
            if row is None:
                row = base.order_by(FlightRecord.eta.asc().nulls_last(), FlightRecord.sta.asc()).first()
            return row.to_model() if row else None

    def upsert(self, flights: Iterable[Flight], now_ms: int) -> Tuple[int, int]:
        """
        Insert-or-update keyed on (flight_number, sta), all in one transaction.
        On conflict status/eta/city/airline/updated_at are replaced and
        created_at is kept. Returns (inserted, updated).
        """
        inserted = updated = 0
        try:
            with get_session(self._factory) as session:
                for f in flights:
                    row = (
                        session.query(FlightRecord)
                        .filter_by(flight_number=f.flight_number, sta=f.sta)
                        .first()
                    )
                    if row is None:
                        session.add(FlightRecord(
                            id=f.id,
                            flight_number=f.flight_number,
                            status=f.status,
                            sta=f.sta,
                            eta=f.eta,
                            city=f.city,
                            airline=f.airline,
                            created_at=f.created_at or now_ms,
                            updated_at=now_ms,
                        ))
                        inserted += 1
                    else:
                        row.status = f.status
                        row.eta = f.eta
                        row.city = f.city
                        row.airline = f.airline
                        row.updated_at = now_ms
                        updated += 1
        finally:
            self.invalidate()

        log.info("📝 Snapshot stored: %d new, %d updated", inserted, updated)
        return inserted, updated
