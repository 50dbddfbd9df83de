# arrivals/db.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import (
    create_engine, event, Column, String, Integer, BigInteger, Text,
    ForeignKey, Index, UniqueConstraint,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

from arrivals.config import Settings
from arrivals.models import Flight

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Engine & Session
# ---------------------------------------------------------------------------


def make_engine(database_url: str, **kwargs) -> Engine:
    if database_url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    else:
        kwargs.setdefault("pool_pre_ping", True)
    eng = create_engine(database_url, future=True, **kwargs)

    if database_url.startswith("postgresql"):
        @event.listens_for(eng, "connect")
        def set_sql_timezone(dbapi_connection, _):
            with dbapi_connection.cursor() as cur:
                cur.execute("SET TIME ZONE 'UTC'")

    return eng


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, future=True, expire_on_commit=False)


DATABASE_URL = Settings.from_env().database_url

engine = make_engine(DATABASE_URL)
SessionLocal = make_session_factory(engine)
Base = declarative_base()


@contextmanager
def get_session(factory: Optional[sessionmaker] = None):
    """Small helper so you can do: with get_session() as s: ..."""
    session = (factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------

class FlightRecord(Base):
    __tablename__ = "flights"

    id = Column(String(64), primary_key=True)             # "{flight_number}_{sta}"
    flight_number = Column(String(16), nullable=False, index=True)
    status = Column(String(64), nullable=False, index=True)
    sta = Column(BigInteger, index=True)                   # unix ms
    eta = Column(BigInteger)                               # unix ms, NULL until published
    city = Column(String(128))
    airline = Column(String(128))
    created_at = Column(BigInteger, nullable=False)
    updated_at = Column(BigInteger, nullable=False)

    __table_args__ = (
        UniqueConstraint("flight_number", "sta", name="uq_flight_number_sta"),
    )

    def to_model(self) -> Flight:
        return Flight(
            id=self.id,
            flight_number=self.flight_number,
            status=self.status,
            sta=self.sta,
            eta=self.eta,
            city=self.city,
            airline=self.airline,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class Subscription(Base):
    __tablename__ = "subscriptions"

    subscriber_id = Column(String(64), primary_key=True)   # chat id
    flight_id = Column(String(64), ForeignKey("flights.id"), primary_key=True)
    created_at = Column(BigInteger, nullable=False)
    auto_cleanup_at = Column(BigInteger, nullable=True)    # NULL while active

    __table_args__ = (
        Index("ix_subs_flight", "flight_id"),
        Index("ix_subs_subscriber_cleanup", "subscriber_id", "auto_cleanup_at"),
    )


class StatusMetricsRow(Base):
    __tablename__ = "status_metrics"

    id = Column(Integer, primary_key=True)                 # single row, id=1
    fetch_count = Column(Integer, nullable=False, default=0)
    last_updated = Column(BigInteger)
    last_flight_count = Column(Integer)
    last_error_message = Column(Text)
    last_error_at = Column(BigInteger)


class SchedulerStateRow(Base):
    __tablename__ = "scheduler_state"

    id = Column(Integer, primary_key=True)                 # single row, id=1
    next_fire_at = Column(BigInteger, nullable=True)
    fire_count = Column(Integer, nullable=False, default=0)
    state = Column(String(16), nullable=False, default="IDLE")
    last_fire_at = Column(BigInteger)


SINGLETON_ID = 1

# ---------------------------------------------------------------------------
# Utilities
# ---------------------------------------------------------------------------

def init_db(bind: Optional[Engine] = None) -> None:
    """Create all tables that don't exist yet."""
    Base.metadata.create_all(bind=bind or engine)


def rebuild_schema(bind: Optional[Engine] = None) -> None:
    """Drop every table and recreate it. Destroys all data."""
    bind = bind or engine
    log.warning("🧨 Dropping ALL tables on %s", bind.url.render_as_string(hide_password=True))
    Base.metadata.drop_all(bind=bind)
    Base.metadata.create_all(bind=bind)
    log.info("✅ Tables recreated.")


__all__ = [
    "engine", "SessionLocal", "Base", "get_session", "init_db", "rebuild_schema",
    "make_engine", "make_session_factory", "SINGLETON_ID",
    "FlightRecord", "Subscription", "StatusMetricsRow", "SchedulerStateRow",
]
