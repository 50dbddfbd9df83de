# arrivals/reset_schema.py
import logging, sys

from sqlalchemy.engine import make_url

from arrivals.config import Settings
from arrivals.tracker import FlightTracker

logging.basicConfig(level=logging.INFO, format="%(message)s", stream=sys.stdout, force=True)
log = logging.getLogger(__name__)


def reset_schema(settings: Settings) -> None:
    tracker = FlightTracker.from_settings(settings)
    status = tracker.rebuild_schema()
    log.info("✅ Schema rebuilt; next fire at %s", status.next_fire_at)


if __name__ == "__main__":
    settings = Settings.from_env()
    if "--yes" not in sys.argv:
        print(f"⚠️ This drops ALL tables in {make_url(settings.database_url).render_as_string(hide_password=True)}. Re-run with --yes to confirm.")
        sys.exit(2)
    reset_schema(settings)
