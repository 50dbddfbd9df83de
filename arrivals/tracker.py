# arrivals/tracker.py
import logging
import threading
from typing import Iterable, List, Optional

from sqlalchemy.orm import sessionmaker

from arrivals.config import SUGGESTIONS_PAGE_SIZE, Settings
from arrivals.core.context import PassContext
from arrivals.core.repository import FlightRepository
from arrivals.db import init_db, make_engine, make_session_factory
from arrivals.errors import FlightNotFound
from arrivals.models import (
    Flight, PassResult, ScheduleStatus, StatusReport, SuggestionPage, TrackOutcome,
    normalize_flight_number,
)
from arrivals.pipeline import run_reconciliation
from arrivals.scheduler import ReconciliationScheduler
from arrivals.services.fetcher import FlightFetcher
from arrivals.services.notifier import make_notifier
from arrivals.services.status import StatusStore
from arrivals.services.subscriptions import SubscriptionIndex
from arrivals.services.sweeper import RetirementSweeper
from arrivals.timeutils import Clock, format_local, format_time_ago

log = logging.getLogger(__name__)


class FlightTracker:
    """
    The one object entrypoints talk to. It owns the stores, the scheduler
    and the external fetcher/notifier, and builds a fresh PassContext per pass.
    """

    def __init__(
        self,
        *,
        session_factory: sessionmaker,
        clock: Clock,
        fetcher,
        notifier,
        period_ms: int,
        grace_ms: int,
        admin_chat_id: Optional[str] = None,
    ):
        self.clock = clock
        self.fetcher = fetcher
        self.notifier = notifier
        self.period_ms = period_ms
        self.admin_chat_id = admin_chat_id
        # one pass at a time per process; scheduled fires go through trigger_pass too
        self._pass_lock = threading.Lock()

        self.flights = FlightRepository(session_factory)
        self.subscriptions = SubscriptionIndex(self.flights, session_factory)
        self.sweeper = RetirementSweeper(self.subscriptions, grace_ms)
        self.status = StatusStore(session_factory)
        self.status.ensure()
        self.scheduler = ReconciliationScheduler(
            self.trigger_pass,
            clock=clock,
            period_ms=period_ms,
            session_factory=session_factory,
            status=self.status,
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "FlightTracker":
        settings = settings or Settings.from_env()
        engine = make_engine(settings.database_url)
        init_db(engine)
        clock = Clock(settings.timezone)
        return cls(
            session_factory=make_session_factory(engine),
            clock=clock,
            fetcher=FlightFetcher(
                settings.flights_url,
                timeout=settings.fetch_timeout_sec,
                attempts=settings.fetch_attempts,
            ),
            notifier=make_notifier(settings.bot_token, clock=clock),
            period_ms=settings.period_ms,
            grace_ms=settings.grace_ms,
            admin_chat_id=settings.admin_chat_id,
        )

    # ------------------------------------------------------------------
    # reconciliation
    # ------------------------------------------------------------------

    def trigger_pass(self) -> PassResult:
        """
        Run one pass now. Scheduled fires call this as well; only `fire` bumps
        the counter. Passes are serialised: a caller arriving while another
        pass runs waits for it to finish, then runs its own.
        """
        with self._pass_lock:
            was_failing = self.status.read().error_is_current
            ctx = PassContext.start(self.clock, fetcher=self.fetcher, notifier=self.notifier)
            result = run_reconciliation(
                ctx,
                flights=self.flights,
                subscriptions=self.subscriptions,
                sweeper=self.sweeper,
                status=self.status,
            )
            if not result.ok and not was_failing:
                self._alert_admin(result.error)
            return result

    def _alert_admin(self, error: Optional[str]) -> None:
        """Tell the operator chat when the feed starts failing (once per outage)."""
        if not self.admin_chat_id or self.notifier is None:
            return
        try:
            self.notifier.notify(self.admin_chat_id, f"⚠️ *Arrivals feed failing*\n\n{error or 'unknown error'}")
        except Exception:
            log.exception("❌ Admin alert to %s failed", self.admin_chat_id)

    def tick(self) -> bool:
        return self.scheduler.tick()

    def schedule_status(self) -> ScheduleStatus:
        return self.scheduler.status_report()

    def reset_schedule(self) -> ScheduleStatus:
        return self.scheduler.reset()

    def rebuild_schema(self) -> ScheduleStatus:
        with self._pass_lock:
            result = self.scheduler.rebuild_schema()
            self.flights.invalidate()
        return result

    # ------------------------------------------------------------------
    # subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, subscriber_id: str, flight_id: str) -> bool:
        self.flights.invalidate()
        if self.flights.get_by_id(flight_id) is None:
            raise FlightNotFound(flight_id)
        return self.subscriptions.subscribe(subscriber_id, flight_id, self.clock.now_ms())

    def track_by_number(self, subscriber_id: str, flight_number: str) -> Flight:
        flight = self.flights.get_by_number(flight_number, self.clock.now_ms())
        if flight is None:
            raise FlightNotFound(normalize_flight_number(flight_number))
        self.subscriptions.subscribe(subscriber_id, flight.id, self.clock.now_ms())
        return flight

    def track_many(self, subscriber_id: str, flight_numbers: Iterable[str]) -> TrackOutcome:
        outcome = TrackOutcome()
        for number in flight_numbers:
            if not normalize_flight_number(number):
                continue
            flight = self.flights.get_by_number(number, self.clock.now_ms())
            if flight is None:
                outcome.not_found.append(normalize_flight_number(number))
                continue
            if self.subscriptions.subscribe(subscriber_id, flight.id, self.clock.now_ms()):
                outcome.tracked.append(flight)
            else:
                outcome.already_tracked.append(flight)
        return outcome

    def untrack(self, subscriber_id: str, flight_id: str) -> bool:
        return self.subscriptions.unsubscribe(subscriber_id, flight_id)

    def clear_tracked(self, subscriber_id: str) -> int:
        return self.subscriptions.unsubscribe_all(subscriber_id)

    def tracked_flights(self, subscriber_id: str) -> List[Flight]:
        self.flights.invalidate()
        return self.subscriptions.list_for_subscriber(subscriber_id)

    def suggestions(self, subscriber_id: str, page: int = 0) -> SuggestionPage:
        self.flights.invalidate()
        eligible = self.subscriptions.list_untracked(subscriber_id)
        page = max(0, page)
        start = page * SUGGESTIONS_PAGE_SIZE
        return SuggestionPage(
            flights=eligible[start:start + SUGGESTIONS_PAGE_SIZE],
            page=page,
            total=len(eligible),
            has_previous=page > 0,
            has_next=start + SUGGESTIONS_PAGE_SIZE < len(eligible),
        )

    # ------------------------------------------------------------------
    # status
    # ------------------------------------------------------------------

    def status_report(self) -> StatusReport:
        metrics = self.status.read()
        now = self.clock.now_ms()
        updated = metrics.last_updated
        return StatusReport(
            online=updated is not None,
            last_updated=updated,
            last_updated_local=format_local(updated, self.clock.tz),
            time_ago=format_time_ago(updated, now) if updated is not None else None,
            flight_count=metrics.last_flight_count or 0,
            fetch_count=metrics.fetch_count,
            last_error=metrics.last_error,
            error_is_current=metrics.error_is_current,
            refresh_period_sec=self.period_ms // 1000,
            schedule=self.schedule_status(),
        )

    def status_message(self) -> str:
        r = self.status_report()
        lines = ["📊 *System Status*", ""]
        if r.online:
            lines += [
                "✅ System: Online",
                "",
                f"📅 Last updated: {r.last_updated_local} ({r.time_ago})",
                f"📊 Flights count: {r.flight_count}",
                f"🔢 Total fetches: {r.fetch_count}",
            ]
        else:
            lines.append("🔶 System: Starting up")
        if r.last_error is not None:
            lines += ["", f"⚠️ Last error: {format_local(r.last_error.at, self.clock.tz)}"]
        lines += ["", f"_⏱️ Data refreshes every {r.refresh_period_sec} seconds_"]
        return "\n".join(lines)
