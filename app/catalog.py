"""Amenity catalog.

Stored amenity rows keep whatever shape they were ingested with (several
spellings for operating-hour keys, camelCase rule blocks, free-form type
strings). This module is the only place that reads those raw shapes; the
rest of the engine sees the canonical ``app.schemas.Amenity``.
"""

import logging
import uuid
from datetime import time
from typing import Any, Dict, List, Optional

from app.errors import ConflictError, ValidationError
from app.models import utcnow
from app.schemas import (
    Amenity,
    AmenityCategory,
    AutoApprovalRules,
    OperatingHours,
    SpecialRequirements,
)
from app.store import RecordStore

logger = logging.getLogger(__name__)

OPEN_KEYS = ("open", "start", "startTime", "openTime", "start_time", "open_time")
CLOSE_KEYS = ("close", "end", "endTime", "closeTime", "end_time", "close_time")

TYPE_CATEGORIES = {
    "jacuzzi": AmenityCategory.HOT_TUB,
    "hot-tub": AmenityCategory.HOT_TUB,
    "hot_tub": AmenityCategory.HOT_TUB,
    "hottub": AmenityCategory.HOT_TUB,
    "cold-tub": AmenityCategory.COLD_TUB,
    "cold_tub": AmenityCategory.COLD_TUB,
    "cold-plunge": AmenityCategory.COLD_TUB,
    "yoga-deck": AmenityCategory.DECK,
    "yoga_deck": AmenityCategory.DECK,
    "deck": AmenityCategory.DECK,
    "lounge": AmenityCategory.LOUNGE,
}


def _pick(raw: Dict[str, Any], *keys: str, default=None):
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


def parse_clock(value) -> Optional[time]:
    """'HH:MM' (or a time) to ``time``; None when it cannot be read."""
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        return None
    try:
        hour, minute = value.strip().split(":")[:2]
        return time(int(hour), int(minute))
    except ValueError:
        return None


def category_for(type_name: Optional[str], name: Optional[str]) -> Optional[AmenityCategory]:
    if name and "lounge" in name.lower():
        return AmenityCategory.LOUNGE
    if not type_name:
        return None
    return TYPE_CATEGORIES.get(type_name.strip().lower())


def stored_day_to_weekday(day: int) -> int:
    """Stored rows count days from Sunday == 0; the engine uses Monday == 0."""
    return (day - 1) % 7


def normalize_hours(raw) -> OperatingHours:
    if not isinstance(raw, dict):
        return OperatingHours()

    days = raw.get("days")
    if not isinstance(days, (list, tuple)) or not all(isinstance(d, int) and 0 <= d <= 6 for d in days):
        days = list(range(7))

    return OperatingHours(
        days=sorted({stored_day_to_weekday(d) for d in days}),
        open=parse_clock(_pick(raw, *OPEN_KEYS)),
        close=parse_clock(_pick(raw, *CLOSE_KEYS)),
    )


def _number(raw: Dict[str, Any], cast, *keys: str, default=None):
    value = _pick(raw, *keys)
    if value is None:
        return default
    try:
        return cast(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring unreadable %s value %r; using %r", keys[0], value, default)
        return default


def normalize_auto_approval(raw) -> Optional[AutoApprovalRules]:
    if not isinstance(raw, dict):
        return None
    rules = AutoApprovalRules()
    max_duration = _number(raw, int, "maxDurationMinutes", "max_duration_minutes")
    if max_duration:
        rules.max_duration_minutes = max_duration
    rules.max_reservations_per_day = _number(raw, int, "maxReservationsPerDay", "max_reservations_per_day")
    advance = _number(raw, float, "advanceBookingHours", "advance_booking_hours")
    if advance:
        rules.advance_booking_hours = advance
    return rules


def normalize_requirements(raw) -> SpecialRequirements:
    if not isinstance(raw, dict):
        return SpecialRequirements()
    return SpecialRequirements(
        max_visitors=_number(raw, int, "maxVisitors", "max_visitors"),
        advance_booking_hours=_number(raw, float, "advanceBookingHours", "advance_booking_hours"),
        allow_grill_usage=bool(_pick(raw, "allowGrillUsage", "allow_grill_usage", default=False)),
    )


def normalize_amenity(row) -> Amenity:
    category = category_for(row.type, row.name)
    if category is None:
        logger.warning("Amenity %s has unknown type %r; treating it as a deck", row.id, row.type)
        category = AmenityCategory.DECK

    return Amenity(
        id=row.id,
        name=row.name,
        category=category,
        description=row.description or "",
        capacity=row.capacity,
        operating_hours=normalize_hours(row.operating_hours),
        auto_approval_rules=normalize_auto_approval(row.auto_approval_rules),
        requires_approval=row.requires_approval,
        max_duration_minutes=row.max_duration_minutes,
        special_requirements=normalize_requirements(row.special_requirements),
        is_active=bool(row.is_active),
    )


def validate_amenity_configuration(data: Dict[str, Any]) -> List[str]:
    """
    Check a new amenity definition. Raises ValidationError on hard errors and
    returns a list of warnings for questionable but accepted settings.
    """
    warnings: List[str] = []

    category = category_for(data.get("type"), data.get("name"))
    if category is None:
        raise ValidationError(f"Unknown amenity type: {data.get('type')}")

    hours = normalize_hours(data.get("operating_hours"))
    if hours.open is None or hours.close is None:
        raise ValidationError("Operating hours need an opening and a closing time (HH:MM)")
    if hours.close <= hours.open:
        raise ValidationError("Closing time must be after opening time")

    if category == AmenityCategory.LOUNGE:
        if data.get("requires_approval") is False:
            raise ValidationError("Lounge amenities must always require administrator approval")
        if data.get("auto_approval_rules"):
            warnings.append("Lounge amenities ignore auto-approval rules")
        max_duration = data.get("max_duration_minutes")
        if not max_duration or max_duration > 480:
            warnings.append("Recommended maximum duration for a lounge is 4 hours (240 minutes)")

    return warnings


class AmenityCatalog:
    def __init__(self, store: RecordStore):
        self.store = store

    def get_amenity_by_id(self, amenity_id: str) -> Optional[Amenity]:
        """Active amenity or None."""
        row = self.store.get("amenities", amenity_id)
        if row is None or not row.is_active:
            return None
        return normalize_amenity(row)

    def get_amenity_by_name(self, name: str) -> Optional[Amenity]:
        rows = self.store.query(
            "amenities",
            "lower(name) = lower(:name) AND is_active = :active",
            {"name": name, "active": True},
        )
        return normalize_amenity(rows[0]) if rows else None

    def list_amenities(self) -> List[Amenity]:
        rows = self.store.query("amenities", "is_active = :active", {"active": True}, order_by="name")
        return [normalize_amenity(r) for r in rows]

    def create_amenity(self, data: Dict[str, Any]) -> Amenity:
        warnings = validate_amenity_configuration(data)
        for w in warnings:
            logger.warning("Amenity %r: %s", data.get("name"), w)

        if self.get_amenity_by_name(data["name"]):
            raise ConflictError("Amenity with this name already exists")

        now = utcnow()
        row = self.store.create("amenities", {
            "id": str(uuid.uuid4()),
            "name": data["name"],
            "type": data["type"],
            "description": data.get("description") or "",
            "capacity": data["capacity"],
            "operating_hours": data["operating_hours"],
            "auto_approval_rules": data.get("auto_approval_rules"),
            "requires_approval": data.get("requires_approval"),
            "max_duration_minutes": data.get("max_duration_minutes"),
            "special_requirements": data.get("special_requirements") or {},
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        })
        logger.info("Amenity created: %s (%s)", row.name, row.id)
        return normalize_amenity(row)
