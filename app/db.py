import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from app.config import get_settings

logger = logging.getLogger(__name__)

SQLALCHEMY_DATABASE_URL = get_settings().database_url

connect_args = {"check_same_thread": False} if SQLALCHEMY_DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


DEFAULT_AMENITIES = [
    {
        "id": "a-jacuzzi",
        "name": "Jacuzzi",
        "type": "jacuzzi",
        "description": "Relaxing hot tub with jets for up to 6 people",
        "capacity": 6,
        "operating_hours": {"start": "07:00", "end": "21:00", "days": [0, 1, 2, 3, 4, 5, 6]},
        "auto_approval_rules": {"maxDurationMinutes": 60, "maxReservationsPerDay": 1},
    },
    {
        "id": "a-cold-tub",
        "name": "Cold Tub",
        "type": "cold-tub",
        "description": "Cold therapy tub for recovery and wellness",
        "capacity": 4,
        "operating_hours": {"start": "07:00", "end": "21:00", "days": [0, 1, 2, 3, 4, 5, 6]},
        "auto_approval_rules": {"maxDurationMinutes": 60, "maxReservationsPerDay": 1},
    },
    {
        "id": "a-yoga-deck",
        "name": "Yoga Deck",
        "type": "yoga-deck",
        "description": "Peaceful outdoor space for yoga and meditation",
        "capacity": 10,
        "operating_hours": {"start": "07:00", "end": "21:00", "days": [0, 1, 2, 3, 4, 5, 6]},
        "auto_approval_rules": {"maxDurationMinutes": 60, "maxReservationsPerDay": 1},
    },
    {
        "id": "a-lounge",
        "name": "Community Lounge",
        "type": "lounge",
        "description": "Community lounge with grill access for gatherings",
        "capacity": 20,
        "operating_hours": {"start": "08:00", "end": "23:00", "days": [0, 1, 2, 3, 4, 5, 6]},
        # no auto-approval rules: lounge bookings always go to an administrator
        "requires_approval": True,
        "max_duration_minutes": 240,
        "special_requirements": {"maxVisitors": 20, "advanceBookingHours": 24, "allowGrillUsage": True},
    },
]


def init_db():
    # Import models here to create tables
    from app.models import User, Amenity
    Base.metadata.create_all(bind=engine)

    # Seed minimal data if empty
    from sqlalchemy.orm import Session
    db: Session = SessionLocal()
    try:
        if not db.query(User).filter(User.role == "admin").first():
            db.add(User(id="u-admin", name="Administrator", email="admin@example.com", role="admin"))
        if not db.query(Amenity).first():
            db.add_all([Amenity(**data) for data in DEFAULT_AMENITIES])
            logger.info("Seeded %d default amenities", len(DEFAULT_AMENITIES))
        db.commit()
    finally:
        db.close()
