# test/test_models.py
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from arrivals.config import Settings
from arrivals.models import RawFlight, make_flight_id, normalize_flight_number
from arrivals.timeutils import Clock, format_time_ago, format_time_of_day, to_z

TLV = ZoneInfo("Asia/Jerusalem")


def test_flight_number_normalization():
    assert normalize_flight_number(" ly 086 ") == "LY086"
    assert normalize_flight_number("w6\t2325") == "W62325"
    assert normalize_flight_number("") == ""


def test_flight_id_includes_schedule_time():
    assert make_flight_id("LY086", 1741590000000) == "LY086_1741590000000"
    assert make_flight_id("LY086", None) == "LY086_unknown"


def test_raw_flight_accepts_board_field_names():
    raw = RawFlight.model_validate({
        "Flight": "LY 8", "Status": "Landed", "ScheduledDateTime": 10, "UpdatedDateTime": 20,
        "City": "Paris", "Airline": "EL AL",
    })
    f = raw.to_flight(99)
    assert (f.id, f.flight_number, f.status, f.sta, f.eta) == ("LY8_10", "LY8", "Landed", 10, 20)
    assert (f.created_at, f.updated_at) == (99, 99)


@pytest.mark.parametrize("fln", ["", "   ", "\t"])
def test_raw_flight_rejects_blank_number(fln):
    with pytest.raises(ValidationError):
        RawFlight.model_validate({"fln": fln, "sta": 1})


def test_time_of_day_uses_local_zone_and_dst():
    winter = int(datetime(2025, 1, 15, 8, 0, tzinfo=timezone.utc).timestamp() * 1000)
    summer = int(datetime(2025, 7, 15, 8, 0, tzinfo=timezone.utc).timestamp() * 1000)
    assert format_time_of_day(winter, TLV) == "10:00"
    assert format_time_of_day(summer, TLV) == "11:00"
    assert format_time_of_day(None, TLV) == "TBA"


def test_clock_treats_naive_source_as_utc():
    clock = Clock("Asia/Jerusalem", source=lambda: datetime(2025, 1, 15, 8, 0))
    assert clock.now().hour == 10
    assert to_z(clock.now_ms()) == "2025-01-15T08:00:00Z"


def test_time_ago():
    now = 10_000_000
    assert format_time_ago(now - 5_000, now) == "5s ago"
    assert format_time_ago(now - 3 * 60_000, now) == "3 min ago"
    assert format_time_ago(now - (2 * 60 + 5) * 60_000, now) == "2h 5m ago"
    assert format_time_ago(now - 3 * 24 * 3_600_000, now) == "3d ago"
    assert format_time_ago(now + 1_000, now) == "0s ago"


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("ARRIVALS_PERIOD_SEC", "60")
    monkeypatch.setenv("ARRIVALS_GRACE_SEC", "120")
    monkeypatch.delenv("BOT_TOKEN", raising=False)
    s = Settings.from_env()
    assert s.database_url == "sqlite://"
    assert s.period_ms == 60_000
    assert s.grace_ms == 120_000
    assert s.bot_token is None
