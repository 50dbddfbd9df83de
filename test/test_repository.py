# test/test_repository.py
import pytest
from sqlalchemy.exc import IntegrityError

from arrivals.core.repository import FlightRepository
from arrivals.db import FlightRecord, get_session
from arrivals.models import Flight

from conftest import local_ms, make_flight

NOW = local_ms(10)


def test_upsert_inserts_then_updates(session_factory):
    repo = FlightRepository(session_factory)
    f = make_flight("LY086", local_ms(9), local_ms(9, 30), now_ms=NOW)

    assert repo.upsert([f], NOW) == (1, 0)

    later = NOW + 180_000
    changed = make_flight("LY086", local_ms(9), local_ms(9, 45), status="DELAYED", now_ms=later)
    assert repo.upsert([changed], later) == (0, 1)

    stored = repo.get_by_id(f.id)
    assert stored.status == "DELAYED"
    assert stored.eta == local_ms(9, 45)
    assert stored.created_at == NOW
    assert stored.updated_at == later
    assert len(repo.get_all()) == 1


def test_same_number_different_schedule_is_a_new_occurrence(session_factory):
    repo = FlightRepository(session_factory)
    today = make_flight("LY086", local_ms(9), local_ms(9))
    tomorrow = make_flight("LY086", local_ms(9, day=11), local_ms(9, day=11))

    assert repo.upsert([today, tomorrow], NOW) == (2, 0)
    assert {f.id for f in repo.get_all()} == {today.id, tomorrow.id}


def test_get_by_number_prefers_soonest_future(session_factory):
    repo = FlightRepository(session_factory)
    past = make_flight("LY086", local_ms(6, day=9), local_ms(6, day=9))
    soon = make_flight("LY086", local_ms(12), local_ms(12))
    later = make_flight("LY086", local_ms(12, day=11), local_ms(12, day=11))
    repo.upsert([later, past, soon], NOW)

    assert repo.get_by_number("ly 086", NOW).id == soon.id


def test_get_by_number_falls_back_to_any_occurrence(session_factory):
    repo = FlightRepository(session_factory)
    older = make_flight("LY086", local_ms(6, day=8), local_ms(6, day=8))
    old = make_flight("LY086", local_ms(6, day=9), local_ms(6, day=9))
    repo.upsert([old, older], NOW)

    assert repo.get_by_number("LY086", NOW).id == older.id
    assert repo.get_by_number("XX999", NOW) is None


def test_read_cache_lives_until_invalidated(session_factory):
    repo = FlightRepository(session_factory)
    repo.upsert([make_flight("LY001", local_ms(8), local_ms(8))], NOW)
    assert len(repo.get_all()) == 1

    # a write that bypasses the repository is invisible until the next pass
    with get_session(session_factory) as s:
        s.add(FlightRecord(id="LY002_1", flight_number="LY002", status="SCHEDULED",
                           sta=1, eta=None, created_at=NOW, updated_at=NOW))
    assert len(repo.get_all()) == 1

    repo.invalidate()
    assert len(repo.get_all()) == 2


def test_upsert_refreshes_the_cache(session_factory):
    repo = FlightRepository(session_factory)
    assert repo.get_all() == []
    repo.upsert([make_flight("LY001", local_ms(8), local_ms(8))], NOW)
    assert len(repo.get_all()) == 1


def test_upsert_failing_partway_keeps_previous_snapshot(session_factory):
    repo = FlightRepository(session_factory)
    repo.upsert([make_flight("LY001", local_ms(9), now_ms=NOW)], NOW)
    assert len(repo.get_all()) == 1  # cache loaded

    bad = Flight.model_construct(
        id="BAD_1", flight_number="BAD", status=None, sta=1, eta=None,
        city=None, airline=None, created_at=None, updated_at=None,
    )
    later = NOW + 180_000
    with pytest.raises(IntegrityError):
        repo.upsert([
            make_flight("LY001", local_ms(9), status="DELAYED", now_ms=later),
            make_flight("LY002", local_ms(9, 15), now_ms=later),
            bad,
        ], later)

    assert repo._cache is None
    stored = repo.get_all()
    assert [f.flight_number for f in stored] == ["LY001"]
    assert stored[0].status == "SCHEDULED"
    assert stored[0].updated_at == NOW
