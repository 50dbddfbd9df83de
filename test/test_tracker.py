# test/test_tracker.py
import pytest

from arrivals.errors import FlightNotFound

from conftest import PERIOD_MS, local_ms, row

STA = local_ms(9, 30)


def test_status_message_starting_up(tracker):
    text = tracker.status_message()
    assert text.startswith("📊 *System Status*")
    assert "🔶 System: Starting up" in text
    assert text.endswith(f"_⏱️ Data refreshes every {PERIOD_MS // 1000} seconds_")


def test_status_message_online_with_error(tracker, fetcher, clock):
    fetcher.set_board(row("LY086", STA, local_ms(10, 30)))
    tracker.trigger_pass()
    clock.advance(seconds=120)
    fetcher.error = "HTTP 500"
    tracker.trigger_pass()

    text = tracker.status_message()
    assert "✅ System: Online" in text
    assert "📅 Last updated: 2025-03-10 10:00:00 (2 min ago)" in text
    assert "📊 Flights count: 1" in text
    assert "🔢 Total fetches: 1" in text
    assert "⚠️ Last error: 2025-03-10 10:02:00" in text

    report = tracker.status_report()
    assert report.error_is_current
    assert report.last_error.message == "HTTP 500"


def test_track_by_number_unknown_raises(tracker):
    with pytest.raises(FlightNotFound) as exc:
        tracker.track_by_number("1", "zz 999")
    assert exc.value.flight_number == "ZZ999"


def test_track_many_skips_blank_numbers(tracker, fetcher):
    fetcher.set_board(row("LY086", STA, local_ms(10, 30)))
    tracker.trigger_pass()
    outcome = tracker.track_many("1", ["", "  ", "LY086"])
    assert [f.flight_number for f in outcome.tracked] == ["LY086"]
    assert outcome.not_found == []


def test_negative_suggestion_page_is_first_page(tracker, fetcher):
    fetcher.set_board(row("LY086", STA, local_ms(10, 30)))
    tracker.trigger_pass()
    page = tracker.suggestions("1", page=-3)
    assert page.page == 0
    assert [f.flight_number for f in page.flights] == ["LY086"]
