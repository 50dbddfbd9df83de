# arrivals/timeutils.py
from datetime import datetime, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from arrivals.config import DEFAULT_TIMEZONE

TBA = "TBA"


class Clock:
    """
    Wall clock pinned to the airport's time zone.
      - now() is timezone-aware (DST handled by zoneinfo)
      - `source` lets callers (tests, replays) inject a fixed instant
    """

    def __init__(self, tz_name: str = DEFAULT_TIMEZONE, source: Optional[Callable[[], datetime]] = None):
        self.tz = ZoneInfo(tz_name)
        self._source = source

    def now(self) -> datetime:
        dt = self._source() if self._source else datetime.now(timezone.utc)
        if dt.tzinfo is None:  # naive -> assume UTC
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(self.tz)

    def now_ms(self) -> int:
        return to_ms(self.now())


def to_ms(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def from_ms(ms: Optional[int], tz: ZoneInfo) -> Optional[datetime]:
    if ms is None:
        return None
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).astimezone(tz)


def format_time_of_day(ms: Optional[int], tz: ZoneInfo) -> str:
    """Unix ms -> local 'HH:MM'; unknown -> 'TBA'."""
    dt = from_ms(ms, tz)
    return dt.strftime("%H:%M") if dt else TBA


def format_local(ms: Optional[int], tz: ZoneInfo) -> Optional[str]:
    dt = from_ms(ms, tz)
    return dt.strftime("%Y-%m-%d %H:%M:%S") if dt else None


def to_z(ms: Optional[int]) -> Optional[str]:
    """Render as 'YYYY-MM-DDTHH:MM:SSZ' for JSON/logs."""
    if ms is None:
        return None
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_time_ago(ms: int, now_ms: int) -> str:
    seconds = max(0, (now_ms - ms) // 1000)
    if seconds < 60:
        return f"{seconds}s ago"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes} min ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h {minutes % 60}m ago"
    return f"{hours // 24}d ago"
