"""
Pytest configuration and fixtures

Tests run against a fresh in-memory SQLite database per test function, so
nothing leaks between tests and no external Postgres is needed.
"""
import os
import sys

import pytest

# Must be set before core.config is imported anywhere.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_FORMAT", "text")

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.database import Base
import models  # noqa: F401  (registers tables)
from models import Activity, User


@pytest.fixture(scope="function")
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture(scope="function")
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


def _make_user(db_session, athlete_id, username):
    user = User(strava_athlete_id=athlete_id, username=username, firstname=username.title())
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def user_a(db_session):
    return _make_user(db_session, 1001, "alice")


@pytest.fixture
def user_b(db_session):
    return _make_user(db_session, 1002, "bob")


@pytest.fixture
def make_user(db_session):
    def _factory(athlete_id, username):
        return _make_user(db_session, athlete_id, username)
    return _factory


@pytest.fixture
def make_activity(db_session):
    """Bare activity rows to act as the cause of ledger claims."""
    counter = iter(range(5_000_000_000, 6_000_000_000))

    def _factory(user, captured=True, distance_m=1000.0):
        activity = Activity(
            strava_activity_id=next(counter),
            user_id=user.id,
            name="Loop",
            distance_m=distance_m,
            captured=captured,
        )
        db_session.add(activity)
        db_session.commit()
        db_session.refresh(activity)
        return activity
    return _factory
