# arrivals/services/status.py
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from arrivals.db import SessionLocal, StatusMetricsRow, SINGLETON_ID, get_session
from arrivals.models import LastError, StatusMetrics

log = logging.getLogger(__name__)


class StatusStore:
    """
    Single-row metrics table. Writes are last-write-wins except the fetch
    counter, which is incremented in SQL so concurrent writers never lose a count.
    The last error is overwritten by each failure and never cleared by a success.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._factory = session_factory or SessionLocal

    def ensure(self) -> None:
        try:
            with get_session(self._factory) as session:
                if session.get(StatusMetricsRow, SINGLETON_ID) is None:
                    session.add(StatusMetricsRow(id=SINGLETON_ID, fetch_count=0))
        except IntegrityError:
            # another writer created it first
            log.debug("status_metrics row already present")

    def _update(self, session: Session, values: dict) -> None:
        n = (
            session.query(StatusMetricsRow)
            .filter(StatusMetricsRow.id == SINGLETON_ID)
            .update(values, synchronize_session=False)
        )
        if n == 0:
            raise RuntimeError("status_metrics row missing; call ensure() first")

    def record_success(self, flight_count: int, now_ms: int) -> None:
        with get_session(self._factory) as session:
            self._update(session, {
                StatusMetricsRow.fetch_count: StatusMetricsRow.fetch_count + 1,
                StatusMetricsRow.last_updated: now_ms,
                StatusMetricsRow.last_flight_count: flight_count,
            })

    def record_error(self, message: str, now_ms: int) -> None:
        with get_session(self._factory) as session:
            self._update(session, {
                StatusMetricsRow.last_error_message: message,
                StatusMetricsRow.last_error_at: now_ms,
            })

    def read(self) -> StatusMetrics:
        with get_session(self._factory) as session:
            row = session.get(StatusMetricsRow, SINGLETON_ID)
            if row is None:
                return StatusMetrics()
            err = None
            if row.last_error_message is not None and row.last_error_at is not None:
                err = LastError(message=row.last_error_message, at=row.last_error_at)
            return StatusMetrics(
                fetch_count=row.fetch_count or 0,
                last_updated=row.last_updated,
                last_flight_count=row.last_flight_count,
                last_error=err,
            )
