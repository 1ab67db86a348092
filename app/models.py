from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text

from app.db import Base


def utcnow() -> datetime:
    """Naive UTC now; every stored timestamp is naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True)
    role = Column(String, nullable=False, default="user")  # user|admin
    created_at = Column(DateTime, default=utcnow)


class Amenity(Base):
    __tablename__ = "amenities"
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)
    description = Column(Text, default="")
    capacity = Column(Integer, nullable=False)
    # raw ingested shapes; AmenityCatalog normalizes them
    operating_hours = Column(JSON)
    auto_approval_rules = Column(JSON)
    special_requirements = Column(JSON)
    requires_approval = Column(Boolean)
    max_duration_minutes = Column(Integer)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)


class Reservation(Base):
    __tablename__ = "reservations"
    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False)
    amenity_id = Column(String, ForeignKey("amenities.id", ondelete="CASCADE"), nullable=False)
    amenity_name = Column(String)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer)
    status = Column(String, nullable=False)  # pending|approved|denied|cancelled (confirmed: legacy)
    denial_reason = Column(Text)
    special_requests = Column(JSON)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)
    processed_at = Column(DateTime)
    cancelled_at = Column(DateTime)

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="reservation_time_valid"),
        CheckConstraint(
            "status in ('pending','approved','denied','cancelled','confirmed')",
            name="reservation_status_valid",
        ),
        Index("ix_reservations_amenity_status_start", "amenity_id", "status", "start_time"),
        Index("ix_reservations_user_start", "user_id", "start_time"),
    )
