# arrivals/scheduler.py
import logging
from typing import Any, Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from arrivals import db
from arrivals.db import SessionLocal, SchedulerStateRow, SINGLETON_ID, get_session
from arrivals.models import PassResult, ScheduleStatus, SchedulerStateEnum
from arrivals.services.status import StatusStore
from arrivals.timeutils import Clock, to_z

log = logging.getLogger(__name__)


class ReconciliationScheduler:
    """
    Self-rescheduling timer with durable state (table `scheduler_state`, one row).

      IDLE --fire--> RUNNING --ok--> IDLE
                             --error--> FAILED
    Whatever happens in the body, the next fire is set to now + period.

    The host (APScheduler in scheduler_daemon.py, or a test) only has to call
    `tick()` often; a due slot is claimed with a conditional UPDATE so two
    processes sharing the database never run the same slot twice.
    """

    def __init__(
        self,
        body: Callable[[], Any],
        *,
        clock: Clock,
        period_ms: int,
        session_factory: Optional[sessionmaker] = None,
        status: Optional[StatusStore] = None,
    ):
        if period_ms <= 0:
            raise ValueError("period_ms must be positive")
        self.body = body
        self.clock = clock
        self.period_ms = period_ms
        self._factory = session_factory or SessionLocal
        self.status = status
        self._stranded = False
        self.ensure()

    # ------------------------------------------------------------------
    # state row
    # ------------------------------------------------------------------

    def ensure(self) -> None:
        """Create the state row if needed and make sure a next fire is pending."""
        now = self.clock.now_ms()
        try:
            with get_session(self._factory) as session:
                row = session.get(SchedulerStateRow, SINGLETON_ID)
                if row is None:
                    session.add(SchedulerStateRow(
                        id=SINGLETON_ID,
                        fire_count=0,
                        state=SchedulerStateEnum.IDLE.value,
                        next_fire_at=now + self.period_ms,
                    ))
                    log.info("⏰ Scheduler initialised, first fire at %s", to_z(now + self.period_ms))
                    return
                if row.next_fire_at is None:
                    if row.state == SchedulerStateEnum.RUNNING.value:
                        log.warning("⚠️ Previous pass was interrupted (state RUNNING); rescheduling")
                    row.next_fire_at = now + self.period_ms
                    row.state = SchedulerStateEnum.IDLE.value
                    log.info("⏰ No pending fire, next fire at %s", to_z(row.next_fire_at))
        except IntegrityError:
            log.debug("scheduler_state row already present")

    def status_report(self) -> ScheduleStatus:
        with get_session(self._factory) as session:
            row = session.get(SchedulerStateRow, SINGLETON_ID)
            if row is None:
                return ScheduleStatus(fire_count=0)
            return ScheduleStatus(
                fire_count=row.fire_count or 0,
                next_fire_at=row.next_fire_at,
                state=SchedulerStateEnum(row.state),
                last_fire_at=row.last_fire_at,
            )

    def _set(self, values: dict) -> int:
        with get_session(self._factory) as session:
            return (
                session.query(SchedulerStateRow)
                .filter(SchedulerStateRow.id == SINGLETON_ID)
                .update(values, synchronize_session=False)
            )

    # ------------------------------------------------------------------
    # firing
    # ------------------------------------------------------------------

    def tick(self) -> bool:
        """Run the body if the pending fire is due. Returns True if it ran."""
        if self._stranded:
            self._recover()
        now = self.clock.now_ms()
        with get_session(self._factory) as session:
            claimed = (
                session.query(SchedulerStateRow)
                .filter(
                    SchedulerStateRow.id == SINGLETON_ID,
                    SchedulerStateRow.next_fire_at.isnot(None),
                    SchedulerStateRow.next_fire_at <= now,
                )
                .update({SchedulerStateRow.next_fire_at: None}, synchronize_session=False)
            )
        if claimed != 1:
            return False
        self.fire()
        return True

    def fire(self) -> Any:
        """
        One scheduled fire: count it, run the body, reschedule.
        The counter is bumped before the body runs so it counts attempts.
        Every step after the claim sits inside the try so the reschedule always runs.
        """
        started = self.clock.now_ms()
        state = SchedulerStateEnum.IDLE
        result = None
        try:
            pending = self.status_report().next_fire_at
            if pending is not None:
                log.warning("⚠️ Fire with a next fire already pending (%s); possible scheduling race", to_z(pending))

            self._set({
                SchedulerStateRow.fire_count: SchedulerStateRow.fire_count + 1,
                SchedulerStateRow.state: SchedulerStateEnum.RUNNING.value,
                SchedulerStateRow.last_fire_at: started,
            })
            log.info("🛫 Scheduled fire #%d started", self.status_report().fire_count)

            result = self.body()
            if isinstance(result, PassResult) and not result.ok:
                state = SchedulerStateEnum.FAILED
        except Exception as e:
            state = SchedulerStateEnum.FAILED
            log.exception("❌ Reconciliation pass failed")
            self._record_error(f"{type(e).__name__}: {e}", started)
        finally:
            self._reschedule(state)
        return result

    def _reschedule(self, state: SchedulerStateEnum) -> None:
        next_fire = self.clock.now_ms() + self.period_ms
        try:
            self._set({
                SchedulerStateRow.next_fire_at: next_fire,
                SchedulerStateRow.state: state.value,
            })
        except Exception:
            # the claim left next_fire_at NULL; the next tick repairs it
            self._stranded = True
            log.exception("❌ Could not persist next fire; will retry on next tick")
            return
        self._stranded = False
        log.info("⏰ Next fire at %s (state %s)", to_z(next_fire), state.value)

    def _recover(self) -> None:
        """Re-arm a slot whose reschedule write failed; it is overdue, so fire now."""
        now = self.clock.now_ms()
        with get_session(self._factory) as session:
            (
                session.query(SchedulerStateRow)
                .filter(SchedulerStateRow.id == SINGLETON_ID, SchedulerStateRow.next_fire_at.is_(None))
                .update({
                    SchedulerStateRow.next_fire_at: now,
                    SchedulerStateRow.state: SchedulerStateEnum.FAILED.value,
                }, synchronize_session=False)
            )
        self._stranded = False
        log.warning("⚠️ Re-armed schedule after a failed reschedule, firing at %s", to_z(now))

    def _record_error(self, message: str, at: int) -> None:
        if self.status is None:
            return
        try:
            self.status.record_error(message, at)
        except Exception:
            log.exception("Could not record pass error")

    # ------------------------------------------------------------------
    # admin
    # ------------------------------------------------------------------

    def reset(self) -> ScheduleStatus:
        """Zero the counter and make the next tick fire immediately."""
        now = self.clock.now_ms()
        n = self._set({
            SchedulerStateRow.fire_count: 0,
            SchedulerStateRow.next_fire_at: now,
            SchedulerStateRow.state: SchedulerStateEnum.IDLE.value,
        })
        if n == 0:
            self.ensure()
            self._set({SchedulerStateRow.next_fire_at: now})
        log.info("🔄 Scheduler reset, firing at %s", to_z(now))
        return self.status_report()

    def rebuild_schema(self) -> ScheduleStatus:
        """Drop and recreate every table, then re-create the singleton rows."""
        db.rebuild_schema(self._factory.kw.get("bind"))
        if self.status is not None:
            self.status.ensure()
        self.ensure()
        return self.status_report()
