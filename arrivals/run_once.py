# arrivals/run_once.py
import logging, sys

from arrivals.config import Settings
from arrivals.tracker import FlightTracker

# --- print-style logging to console ---
logging.basicConfig(
    level=logging.INFO,         # set DEBUG for more detail
    format="%(message)s",       # looks like print()
    stream=sys.stdout,
    force=True,
)
logging.getLogger("urllib3").setLevel(logging.WARNING)
logging.getLogger("requests").setLevel(logging.WARNING)
log = logging.getLogger(__name__)


if __name__ == "__main__":
    settings = Settings.from_env()
    log.info("Using feed: %s", settings.flights_url)
    try:
        tracker = FlightTracker.from_settings(settings)
        result = tracker.trigger_pass()
        log.info("Done: %s", result.model_dump())
        log.info("\n%s", tracker.status_message())
    except Exception:
        logging.exception("Run failed")
        raise
    sys.exit(0 if result.ok else 1)

# Usage
#   python -m arrivals.run_once
#   ARRIVALS_FLIGHTS_URL=http://localhost:3000/api/tlv-arrivals python -m arrivals.run_once
