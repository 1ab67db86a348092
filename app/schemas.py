from datetime import datetime, time
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AmenityCategory(str, Enum):
    HOT_TUB = "hot_tub"
    COLD_TUB = "cold_tub"
    DECK = "deck"
    LOUNGE = "lounge"


class OperatingHours(BaseModel):
    """Canonical hours. ``open``/``close`` are None when the source data was unusable."""
    days: list[int] = Field(default_factory=lambda: list(range(7)))  # Monday == 0
    open: Optional[time] = None
    close: Optional[time] = None

    @property
    def is_well_formed(self) -> bool:
        return self.open is not None and self.close is not None and self.close > self.open


class AutoApprovalRules(BaseModel):
    max_duration_minutes: int = 240
    max_reservations_per_day: Optional[int] = None
    advance_booking_hours: float = 0


class SpecialRequirements(BaseModel):
    max_visitors: Optional[int] = None
    advance_booking_hours: Optional[float] = None
    allow_grill_usage: bool = False


class Amenity(BaseModel):
    id: str
    name: str
    category: AmenityCategory
    description: str = ""
    capacity: int
    operating_hours: OperatingHours
    auto_approval_rules: Optional[AutoApprovalRules] = None
    requires_approval: Optional[bool] = None
    max_duration_minutes: Optional[int] = None
    special_requirements: SpecialRequirements = Field(default_factory=SpecialRequirements)
    is_active: bool = True

    @property
    def is_lounge(self) -> bool:
        return self.category == AmenityCategory.LOUNGE


class SpecialRequests(BaseModel):
    visitor_count: Optional[int] = None
    grill_usage: Optional[bool] = None
    notes: Optional[str] = None


class Slot(BaseModel):
    start_time: datetime
    end_time: datetime
    auto_approved: bool


class ReservationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    user_name: Optional[str] = None
    amenity_id: str
    amenity_name: Optional[str] = None
    start_time: datetime
    end_time: datetime
    duration_minutes: Optional[int] = None
    status: str
    denial_reason: Optional[str] = None
    special_requests: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    approval_reason: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)


# —— Request bodies ——

class CreateReservationBody(BaseModel):
    user_id: str
    amenity_id: str
    start_time: datetime
    end_time: datetime
    special_requests: SpecialRequests = Field(default_factory=SpecialRequests)


class StatusBody(BaseModel):
    status: str
    actor_role: str
    denial_reason: Optional[str] = None


class CancelBody(BaseModel):
    actor_id: str
    actor_role: str = "user"


class CreateAmenityBody(BaseModel):
    actor_role: str
    name: str
    type: str
    description: str = ""
    capacity: int
    operating_hours: dict[str, Any]
    auto_approval_rules: Optional[dict[str, Any]] = None
    requires_approval: Optional[bool] = None
    max_duration_minutes: Optional[int] = None
    special_requirements: dict[str, Any] = Field(default_factory=dict)

    @field_validator("capacity")
    @classmethod
    def capacity_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("capacity must be at least 1")
        return v
