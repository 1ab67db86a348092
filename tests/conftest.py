# tests/conftest.py
import os
import tempfile
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ["SKIP_DB_INIT"] = "1"

from app.config import load_settings
from app.db import get_db
from app.models import Base, User, Amenity, Reservation
from app.main import app
from app.reservations import ReservationService
from app.store import RecordStore

from tests.helpers import ALL_DAYS, NOW


@pytest.fixture(scope="function")
def session_factory():
    # temp DB
    tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    tmp.close()
    db_url = f"sqlite:///{tmp.name}"

    # test engine / Session
    engine = create_engine(db_url, connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    try:
        yield TestingSessionLocal
    finally:
        engine.dispose()
        os.unlink(tmp.name)


@pytest.fixture(scope="function")
def test_db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(test_db_session):
    return RecordStore(test_db_session)


@pytest.fixture
def settings():
    return load_settings({})


@pytest.fixture
def service(store, settings):
    return ReservationService(store, settings=settings, clock=lambda: NOW)


@pytest.fixture(scope="function")
def client(test_db_session):
    def override_get_db():
        try:
            yield test_db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


# —— Factories ——
@pytest.fixture
def make_user(test_db_session):
    def _make_user(user_id="u-1", name="User1", email=None, role="user"):
        u = User(id=user_id, name=name, email=email or f"{user_id}@example.com", role=role)
        test_db_session.add(u)
        test_db_session.commit()
        return u
    return _make_user


@pytest.fixture
def make_amenity(test_db_session):
    def _make_amenity(
        amenity_id="a-jacuzzi",
        name="Jacuzzi",
        type="jacuzzi",
        capacity=6,
        operating_hours=None,
        auto_approval_rules=None,
        requires_approval=None,
        max_duration_minutes=None,
        special_requirements=None,
        is_active=True,
    ):
        a = Amenity(
            id=amenity_id,
            name=name,
            type=type,
            capacity=capacity,
            operating_hours=operating_hours or {"start": "07:00", "end": "21:00", "days": ALL_DAYS},
            auto_approval_rules=auto_approval_rules,
            requires_approval=requires_approval,
            max_duration_minutes=max_duration_minutes,
            special_requirements=special_requirements or {},
            is_active=is_active,
        )
        test_db_session.add(a)
        test_db_session.commit()
        return a
    return _make_amenity


@pytest.fixture
def jacuzzi(make_amenity):
    return make_amenity(auto_approval_rules={"maxDurationMinutes": 60, "maxReservationsPerDay": 1})


@pytest.fixture
def lounge(make_amenity):
    return make_amenity(
        amenity_id="a-lounge",
        name="Community Lounge",
        type="lounge",
        capacity=20,
        operating_hours={"start": "08:00", "end": "23:00", "days": ALL_DAYS},
        requires_approval=True,
        max_duration_minutes=240,
        special_requirements={"maxVisitors": 20, "advanceBookingHours": 24, "allowGrillUsage": True},
    )


@pytest.fixture
def make_reservation(test_db_session):
    counter = {"n": 0}

    def _make_reservation(
        reservation_id=None,
        user_id="u-1",
        amenity_id="a-jacuzzi",
        start=None,
        end=None,
        status="pending",
        created_at=None,
    ):
        counter["n"] += 1
        start = start or (NOW + timedelta(days=1))
        end = end or (start + timedelta(hours=1))
        r = Reservation(
            id=reservation_id or f"r-{counter['n']}",
            user_id=user_id,
            amenity_id=amenity_id,
            amenity_name="Jacuzzi",
            start_time=start,
            end_time=end,
            duration_minutes=int((end - start).total_seconds() // 60),
            status=status,
            special_requests={},
            created_at=created_at or NOW - timedelta(days=1),
            updated_at=created_at or NOW - timedelta(days=1),
        )
        test_db_session.add(r)
        test_db_session.commit()
        return r
    return _make_reservation
