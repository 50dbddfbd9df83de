# arrivals/services/fetcher.py
import logging
import random
import time
from typing import List

import requests
from pydantic import ValidationError

from arrivals.errors import FetchError
from arrivals.models import RawFlight

log = logging.getLogger(__name__)


def _get_with_backoff(url, headers=None, attempts=4, timeout=15, base=0.5):
    headers = headers or {}
    for i in range(attempts):
        try:
            return requests.get(url, headers=headers, timeout=timeout)
        except requests.RequestException as e:
            if i == attempts - 1:
                raise
            sleep = base * (2 ** i) + random.random() * 0.2 * base
            log.warning(
                "HTTP error fetching %s (try %d/%d): %s; retrying in %.2fs",
                url, i + 1, attempts, e, sleep
            )
            time.sleep(sleep)


class FlightFetcher:
    """
    Reads the scraped TLV arrivals board from its JSON endpoint:
      {"Flights": [{"fln": "LY 086", "status": "...", "sta": ms, "eta": ms, "city": "...", "airline": "..."}]}
    Any network, HTTP or payload problem surfaces as FetchError.
    """

    def __init__(self, url: str, *, timeout: float = 20.0, attempts: int = 3, backoff_base: float = 0.5):
        self.url = url
        self.timeout = timeout
        self.attempts = attempts
        self.backoff_base = backoff_base

    def fetch_latest_flights(self) -> List[RawFlight]:
        try:
            resp = _get_with_backoff(
                self.url,
                headers={"User-Agent": "Mozilla/5.0", "Accept": "application/json"},
                attempts=self.attempts,
                timeout=self.timeout,
                base=self.backoff_base,
            )
        except requests.RequestException as e:
            raise FetchError(f"Arrivals feed unreachable: {e}") from e

        if resp.status_code != 200:
            raise FetchError(f"HTTP {resp.status_code} from arrivals feed")

        try:
            data = resp.json()
        except ValueError as e:
            raise FetchError(f"Arrivals feed returned invalid JSON: {e}") from e

        rows = data.get("Flights") if isinstance(data, dict) else None
        if not isinstance(rows, list):
            raise FetchError("Arrivals feed payload has no 'Flights' list")

        flights: List[RawFlight] = []
        for row in rows:
            try:
                flights.append(RawFlight.model_validate(row))
            except ValidationError as e:
                log.warning("⚠️ Skipping malformed arrival record %r: %s", row, e.errors()[:1])
        log.info("📡 Fetched %d flights (%d raw)", len(flights), len(rows))
        return flights
