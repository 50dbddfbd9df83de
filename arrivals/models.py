# arrivals/models.py
import enum
import re
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

TERMINAL_STATUSES = frozenset({"LANDED", "CANCELED"})

_WS_RE = re.compile(r"\s+")


def normalize_flight_number(raw: str) -> str:
    """'ly 086' -> 'LY086'."""
    return _WS_RE.sub("", raw or "").upper()


def make_flight_id(flight_number: str, sta: Optional[int]) -> str:
    return f"{flight_number}_{sta if sta is not None else 'unknown'}"


class Flight(BaseModel):
    """One observed arrival, as stored in the snapshot."""

    id: str
    flight_number: str
    status: str
    sta: Optional[int] = Field(None, description="Scheduled arrival, unix ms")
    eta: Optional[int] = Field(None, description="Estimated arrival, unix ms; None until published")
    city: Optional[str] = None
    airline: Optional[str] = None
    created_at: Optional[int] = None
    updated_at: Optional[int] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class RawFlight(BaseModel):
    """A record as published by the arrivals feed."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    flight_number: str = Field(validation_alias=AliasChoices("fln", "flight_number", "Flight"))
    status: str = Field("UNKNOWN", validation_alias=AliasChoices("status", "Status"))
    sta: Optional[int] = Field(None, validation_alias=AliasChoices("sta", "ScheduledDateTime"))
    eta: Optional[int] = Field(None, validation_alias=AliasChoices("eta", "UpdatedDateTime"))
    city: Optional[str] = Field(None, validation_alias=AliasChoices("city", "City"))
    airline: Optional[str] = Field(None, validation_alias=AliasChoices("airline", "Airline"))

    @field_validator("flight_number")
    @classmethod
    def _has_number(cls, v: str) -> str:
        if not normalize_flight_number(v):
            raise ValueError("empty flight number")
        return v

    @field_validator("status", mode="before")
    @classmethod
    def _status_text(cls, v):
        if v is None or not str(v).strip():
            return "UNKNOWN"
        return str(v).strip()

    def to_flight(self, now_ms: int) -> Flight:
        number = normalize_flight_number(self.flight_number)
        return Flight(
            id=make_flight_id(number, self.sta),
            flight_number=number,
            status=self.status,
            sta=self.sta,
            eta=self.eta,
            city=self.city,
            airline=self.airline,
            created_at=now_ms,
            updated_at=now_ms,
        )


class LastError(BaseModel):
    message: str
    at: int


class StatusMetrics(BaseModel):
    fetch_count: int = 0
    last_updated: Optional[int] = None
    last_flight_count: Optional[int] = None
    last_error: Optional[LastError] = None

    @property
    def error_is_current(self) -> bool:
        """The stored error is never cleared; it only matters if no success followed it."""
        if self.last_error is None:
            return False
        return self.last_updated is None or self.last_error.at >= self.last_updated


class SchedulerStateEnum(str, enum.Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    FAILED = "FAILED"


class ScheduleStatus(BaseModel):
    fire_count: int
    next_fire_at: Optional[int] = None
    state: SchedulerStateEnum = SchedulerStateEnum.IDLE
    last_fire_at: Optional[int] = None


class PassResult(BaseModel):
    ok: bool
    fetched: int = 0
    new_flights: int = 0
    updated_flights: int = 0
    notifications: int = 0
    swept: int = 0
    error: Optional[str] = None


class ChangedFlight(BaseModel):
    flight: Flight
    changes: List[str]


class TrackOutcome(BaseModel):
    tracked: List[Flight] = Field(default_factory=list)
    already_tracked: List[Flight] = Field(default_factory=list)
    not_found: List[str] = Field(default_factory=list)


class SuggestionPage(BaseModel):
    flights: List[Flight]
    page: int
    total: int
    has_previous: bool
    has_next: bool


class StatusReport(BaseModel):
    online: bool
    last_updated: Optional[int] = None
    last_updated_local: Optional[str] = None
    time_ago: Optional[str] = None
    flight_count: int = 0
    fetch_count: int = 0
    last_error: Optional[LastError] = None
    error_is_current: bool = False
    refresh_period_sec: int
    schedule: Optional[ScheduleStatus] = None
