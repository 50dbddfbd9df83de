# arrivals/errors.py


class ArrivalsError(Exception):
    """Base class for tracker errors."""


class FetchError(ArrivalsError):
    """Upstream arrivals feed could not be fetched or parsed."""


class FlightNotFound(ArrivalsError):
    def __init__(self, flight_number: str):
        super().__init__(f"Flight not found: {flight_number}")
        self.flight_number = flight_number
