# arrivals/config.py
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()  # does nothing if no .env present

BASE_DIR = Path(__file__).resolve().parent.parent  # project root

# --- runtime knobs (overridable from env) ---
DEFAULT_FLIGHTS_URL = "https://flights-taupe.vercel.app/api/tlv-arrivals"
DEFAULT_TIMEZONE = "Asia/Jerusalem"
PERIOD_SECONDS = 180           # one reconciliation pass per period
TICK_SECONDS = 5               # how often the host timer checks for a due fire
GRACE_SECONDS = 60 * 60        # eta older than this -> subscriptions retired
FETCH_TIMEOUT_SEC = 20.0
FETCH_ATTEMPTS = 3
SUGGESTIONS_PAGE_SIZE = 5


def _env(name: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
    v = os.getenv(name, default)
    if required and not v:
        raise RuntimeError(f"Missing required env var: {name}")
    return v


def default_database_url() -> str:
    return f"sqlite:///{BASE_DIR / 'arrivals.db'}"


class Settings(BaseModel):
    """Everything the tracker reads from the environment."""

    database_url: str = Field(default_factory=default_database_url)
    flights_url: str = DEFAULT_FLIGHTS_URL
    timezone: str = DEFAULT_TIMEZONE
    period_sec: int = Field(PERIOD_SECONDS, gt=0)
    tick_sec: int = Field(TICK_SECONDS, gt=0)
    grace_sec: int = Field(GRACE_SECONDS, ge=0)
    fetch_timeout_sec: float = Field(FETCH_TIMEOUT_SEC, gt=0)
    fetch_attempts: int = Field(FETCH_ATTEMPTS, ge=1)
    bot_token: Optional[str] = None
    admin_chat_id: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=_env("DATABASE_URL") or default_database_url(),
            flights_url=_env("ARRIVALS_FLIGHTS_URL", DEFAULT_FLIGHTS_URL),
            timezone=_env("ARRIVALS_TIMEZONE", DEFAULT_TIMEZONE),
            period_sec=int(_env("ARRIVALS_PERIOD_SEC", str(PERIOD_SECONDS))),
            tick_sec=int(_env("ARRIVALS_TICK_SEC", str(TICK_SECONDS))),
            grace_sec=int(_env("ARRIVALS_GRACE_SEC", str(GRACE_SECONDS))),
            fetch_timeout_sec=float(_env("ARRIVALS_FETCH_TIMEOUT_SEC", str(FETCH_TIMEOUT_SEC))),
            fetch_attempts=int(_env("ARRIVALS_FETCH_ATTEMPTS", str(FETCH_ATTEMPTS))),
            bot_token=_env("BOT_TOKEN"),
            admin_chat_id=_env("ADMIN_CHAT_ID"),
        )

    @property
    def period_ms(self) -> int:
        return self.period_sec * 1000

    @property
    def grace_ms(self) -> int:
        return self.grace_sec * 1000
