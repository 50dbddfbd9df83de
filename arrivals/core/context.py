# arrivals/core/context.py
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from arrivals.timeutils import Clock, to_ms


@dataclass(frozen=True)
class PassContext:
    """
    State shared by one reconciliation pass.
    `now` is read once at pass start so every step sees the same instant;
    build a fresh context per pass and drop it afterwards.
    """

    now: datetime
    tz: ZoneInfo
    fetcher: Any = None
    notifier: Any = None

    @classmethod
    def start(cls, clock: Clock, *, fetcher=None, notifier=None) -> "PassContext":
        return cls(now=clock.now(), tz=clock.tz, fetcher=fetcher, notifier=notifier)

    @property
    def now_ms(self) -> int:
        return to_ms(self.now)
