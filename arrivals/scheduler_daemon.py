# arrivals/scheduler_daemon.py
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger
from logging.handlers import RotatingFileHandler
from pathlib import Path
import logging, signal, sys

from arrivals.config import Settings
from arrivals.tracker import FlightTracker

# --- logging: console + rotating file ---
logs_dir = Path(__file__).resolve().parents[1] / "logs"
logs_dir.mkdir(parents=True, exist_ok=True)
log_path = logs_dir / "arrivals_scheduler.log"

root = logging.getLogger()
root.setLevel(logging.INFO)
fmt = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s")

ch = logging.StreamHandler(sys.stdout); ch.setFormatter(fmt)
fh = RotatingFileHandler(log_path, maxBytes=2_000_000, backupCount=5, encoding="utf-8"); fh.setFormatter(fmt)
root.handlers = [ch, fh]
logging.getLogger("urllib3").setLevel(logging.WARNING)
logging.getLogger("apscheduler").setLevel(logging.WARNING)
log = logging.getLogger(__name__)


def make_tick_job(tracker: FlightTracker):
    def tick_job():
        # errors inside a pass are handled by the scheduler; this only guards the claim itself
        try:
            tracker.tick()
        except Exception:
            log.exception("❌ Tick failed")
    return tick_job


if __name__ == "__main__":
    settings = Settings.from_env()
    tracker = FlightTracker.from_settings(settings)

    scheduler = BlockingScheduler(timezone="UTC")
    scheduler.add_job(
        make_tick_job(tracker),
        trigger=IntervalTrigger(seconds=settings.tick_sec),
        id="arrivals_tick",
        replace_existing=True,
        coalesce=True,
        misfire_grace_time=settings.tick_sec * 2,
        max_instances=1,
    )

    def _stop(signum, _frame):
        log.info("Received signal %s, shutting down…", signum)
        scheduler.shutdown(wait=False)

    signal.signal(signal.SIGTERM, _stop)

    log.info(
        "Scheduler is running (period %ss, tick %ss)… Ctrl+C to stop. Log file: %s",
        settings.period_sec, settings.tick_sec, log_path,
    )
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        log.info("Scheduler stopped.")
