# arrivals/pipeline.py
import logging
from typing import Dict, List

from arrivals.core.context import PassContext
from arrivals.core.diff import classify, local_formatter
from arrivals.core.repository import FlightRepository
from arrivals.errors import FetchError
from arrivals.models import Flight, PassResult
from arrivals.services.alerts import send_flight_alerts
from arrivals.services.status import StatusStore
from arrivals.services.subscriptions import SubscriptionIndex
from arrivals.services.sweeper import RetirementSweeper

log = logging.getLogger(__name__)


def _dedupe(flights: List[Flight]) -> List[Flight]:
    # the feed occasionally repeats a row; the last one wins
    by_id: Dict[str, Flight] = {}
    for f in flights:
        by_id[f.id] = f
    if len(by_id) != len(flights):
        log.warning("Feed returned %d duplicate row(s)", len(flights) - len(by_id))
    return list(by_id.values())


def run_reconciliation(
    ctx: PassContext,
    *,
    flights: FlightRepository,
    subscriptions: SubscriptionIndex,
    sweeper: RetirementSweeper,
    status: StatusStore,
) -> PassResult:
    """
    One reconciliation pass:
      - fetch the arrivals board
      - diff it against the stored snapshot
      - notify subscribers of changed flights (best effort)
      - store the new snapshot in one transaction
      - retire subscriptions of finished flights
      - record metrics

    A fetch failure is recorded as the last error and skips diff/notify/store;
    the sweep still runs on the stored snapshot. Storage errors propagate.
    """
    now_ms = ctx.now_ms
    flights.invalidate()

    try:
        raw = ctx.fetcher.fetch_latest_flights()
    except FetchError as e:
        log.error("❌ Fetch failed: %s", e)
        status.record_error(str(e), now_ms)
        swept = sweeper.sweep(flights.get_all(), now_ms)
        return PassResult(ok=False, swept=swept, error=str(e))

    current = _dedupe([r.to_flight(now_ms) for r in raw])
    previous = flights.snapshot()
    diff = classify(previous, current, local_formatter(ctx.tz))
    log.info(
        "🔎 Diff: %d new, %d updated, %d unchanged",
        len(diff.new), len(diff.updated), len(diff.unchanged),
    )

    notifications = 0
    if not diff.is_empty and ctx.notifier is not None:
        notifications = send_flight_alerts(
            diff.changes_by_flight, subscriptions, ctx.notifier, at_ms=now_ms,
        )

    flights.upsert(current, now_ms)
    swept = sweeper.sweep(flights.get_all(), now_ms)
    status.record_success(len(current), now_ms)

    log.info(
        "✅ Pass done: fetched=%d new=%d updated=%d notified=%d swept=%d",
        len(current), len(diff.new), len(diff.updated), notifications, swept,
    )
    return PassResult(
        ok=True,
        fetched=len(current),
        new_flights=len(diff.new),
        updated_flights=len(diff.updated),
        notifications=notifications,
        swept=swept,
    )
