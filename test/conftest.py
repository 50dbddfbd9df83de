# test/conftest.py
import sys, os
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Set, Tuple
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from arrivals.db import init_db, make_session_factory
from arrivals.errors import FetchError
from arrivals.models import Flight, RawFlight
from arrivals.timeutils import Clock, to_ms
from arrivals.tracker import FlightTracker

TZ_NAME = "Asia/Jerusalem"
PERIOD_MS = 180_000
GRACE_MS = 3_600_000

# 2025-03-10 08:00 UTC == 10:00 in Tel Aviv (UTC+2, before DST)
START = datetime(2025, 3, 10, 8, 0, tzinfo=timezone.utc)


class ManualClock(Clock):
    """Clock that only moves when a test tells it to."""

    def __init__(self, start: datetime = START):
        super().__init__(TZ_NAME, source=lambda: self.current)
        self.current = start

    def advance(self, seconds: float = 0, ms: int = 0) -> None:
        self.current += timedelta(seconds=seconds, milliseconds=ms)


class RecordingNotifier:
    def __init__(self):
        self.sent: List[Tuple[str, str]] = []
        self.fail_for: Set[str] = set()
        self.raise_for: Set[str] = set()

    def notify(self, subscriber_id: str, message: str) -> bool:
        if subscriber_id in self.raise_for:
            raise RuntimeError("transport exploded")
        if subscriber_id in self.fail_for:
            return False
        self.sent.append((subscriber_id, message))
        return True

    def messages_for(self, subscriber_id: str) -> List[str]:
        return [m for sid, m in self.sent if sid == subscriber_id]


class ScriptedFetcher:
    """Returns whatever board the test last set; `error` makes the next fetches fail."""

    def __init__(self):
        self.rows: List[dict] = []
        self.error: Optional[str] = None
        self.calls = 0

    def set_board(self, *rows: dict) -> None:
        self.rows = list(rows)

    def fetch_latest_flights(self) -> List[RawFlight]:
        self.calls += 1
        if self.error:
            raise FetchError(self.error)
        return [RawFlight.model_validate(r) for r in self.rows]


def local_ms(hour: int, minute: int = 0, day: int = 10) -> int:
    """Unix ms for a Tel Aviv wall-clock time on the test day."""
    return to_ms(datetime(2025, 3, day, hour, minute, tzinfo=ZoneInfo(TZ_NAME)))


def row(fln: str, sta: Optional[int], eta: Optional[int] = None, status: str = "SCHEDULED",
        city: Optional[str] = "London", airline: Optional[str] = "British Airways") -> dict:
    return {"fln": fln, "status": status, "sta": sta, "eta": eta, "city": city, "airline": airline}


def make_flight(fln: str, sta: Optional[int], eta: Optional[int] = None, status: str = "SCHEDULED",
                city: Optional[str] = "London", airline: Optional[str] = "British Airways",
                now_ms: int = 0) -> Flight:
    return RawFlight.model_validate(row(fln, sta, eta, status, city, airline)).to_flight(now_ms)


@pytest.fixture
def db_engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def fetcher():
    return ScriptedFetcher()


@pytest.fixture
def tracker(session_factory, clock, fetcher, notifier):
    return FlightTracker(
        session_factory=session_factory,
        clock=clock,
        fetcher=fetcher,
        notifier=notifier,
        period_ms=PERIOD_MS,
        grace_ms=GRACE_MS,
    )
