# arrivals/core/diff.py
"""
Field-level change detection between two snapshots of the arrivals board.

Only status, eta, city and airline are compared, in that order; the order is
the order the lines appear in an alert. Comparison is strict: an unknown eta
(None) differs from every number, including 0.
"""
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

from arrivals.models import ChangedFlight, Flight
from arrivals.timeutils import format_time_of_day

TimeFormatter = Callable[[Optional[int]], str]

UNKNOWN = "Unknown"


def local_formatter(tz: ZoneInfo) -> TimeFormatter:
    return lambda ms: format_time_of_day(ms, tz)


def detect_changes(prev: Flight, current: Flight, fmt: TimeFormatter) -> List[str]:
    changes: List[str] = []
    if prev.status != current.status:
        changes.append(f"Status: {current.status}")
    if prev.eta != current.eta:
        changes.append(f"Arrival Time: {fmt(current.eta)} (was {fmt(prev.eta)})")
    if prev.city != current.city:
        changes.append(f"City: {current.city or UNKNOWN}")
    if prev.airline != current.airline:
        changes.append(f"Airline: {current.airline or UNKNOWN}")
    return changes


def describe_new_flight(flight: Flight, fmt: TimeFormatter) -> List[str]:
    """A flight seen for the first time reports every field."""
    return [
        f"Status: {flight.status}",
        f"Arrival Time: {fmt(flight.eta)}",
        f"City: {flight.city or UNKNOWN}",
        f"Airline: {flight.airline or UNKNOWN}",
    ]


@dataclass
class SnapshotDiff:
    new: List[ChangedFlight] = field(default_factory=list)
    updated: List[ChangedFlight] = field(default_factory=list)
    unchanged: List[Flight] = field(default_factory=list)

    @property
    def changes_by_flight(self) -> Dict[str, ChangedFlight]:
        return {c.flight.id: c for c in (*self.new, *self.updated)}

    @property
    def is_empty(self) -> bool:
        return not self.new and not self.updated


def classify(previous: Dict[str, Flight], current: Iterable[Flight], fmt: TimeFormatter) -> SnapshotDiff:
    """
    Split a fetched snapshot into new / updated / unchanged flights.
    Flights only present in `previous` are left to the retirement sweep.
    """
    diff = SnapshotDiff()
    for flight in current:
        prev = previous.get(flight.id)
        if prev is None:
            diff.new.append(ChangedFlight(flight=flight, changes=describe_new_flight(flight, fmt)))
            continue
        changes = detect_changes(prev, flight, fmt)
        if changes:
            diff.updated.append(ChangedFlight(flight=flight, changes=changes))
        else:
            diff.unchanged.append(flight)
    return diff
