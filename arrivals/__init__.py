# arrivals/__init__.py
from .errors import ArrivalsError, FetchError, FlightNotFound
from .models import Flight, PassResult, RawFlight, ScheduleStatus, StatusReport

__all__ = [
    "ArrivalsError",
    "FetchError",
    "FlightNotFound",
    "Flight",
    "PassResult",
    "RawFlight",
    "ScheduleStatus",
    "StatusReport",
]
