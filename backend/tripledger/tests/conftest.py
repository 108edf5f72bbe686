"""
Shared fixtures: an in-memory SQLite database recreated for every test.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from tripledger.db.base import Base
from tripledger.db.session import engine, SessionLocal
import tripledger.models  # noqa: F401
from tripledger.schemas.trip import TripCreate, MemberCreate
from tripledger.services import ledger_service


@pytest.fixture(autouse=True)
def schema():
    """Fresh tables for each test."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def trip(db):
    """A trip with three members: Alice, Bob and Carol (ids ascending in that order)."""
    return ledger_service.create_trip(db, TripCreate(
        name="Palawan",
        currency="PHP",
        members=[
            MemberCreate(display_name="Alice", user_id="u-alice"),
            MemberCreate(display_name="Bob", user_id="u-bob"),
            MemberCreate(display_name="Carol", user_id="u-carol"),
        ],
    ))


@pytest.fixture
def members(trip):
    """Member ids of the trip fixture as (alice, bob, carol)."""
    return tuple(m.id for m in trip.members)
