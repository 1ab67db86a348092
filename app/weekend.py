"""Consecutive-weekend restriction for lounge amenities.

Friday, Saturday and Sunday are weekend days. A user may not hold lounge
reservations on two adjacent weekend days of the same weekend (Fri+Sat,
Sat+Sun, or Fri+Sun).
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from app.lifecycle import ReservationStatus
from app.schemas import Amenity
from app.store import RecordStore

logger = logging.getLogger(__name__)

FRIDAY, SATURDAY, SUNDAY = 4, 5, 6
WEEKEND_DAYS = (FRIDAY, SATURDAY, SUNDAY)
DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

ONE_DAY_APART = {(FRIDAY, SATURDAY), (SATURDAY, FRIDAY), (SATURDAY, SUNDAY), (SUNDAY, SATURDAY)}
TWO_DAYS_APART = {(FRIDAY, SUNDAY), (SUNDAY, FRIDAY)}

RULE_STATUSES = (ReservationStatus.PENDING, ReservationStatus.APPROVED, ReservationStatus.CONFIRMED)

LOOKUP_FAILED_WARNING = "Unable to validate consecutive booking restrictions - proceeding with caution"


def _as_date(value) -> date:
    return value.date() if isinstance(value, datetime) else value


def is_weekend_day(value) -> bool:
    return _as_date(value).weekday() in WEEKEND_DAYS


def are_consecutive_weekend_days(first, second) -> bool:
    d1, d2 = _as_date(first), _as_date(second)
    if not is_weekend_day(d1) or not is_weekend_day(d2):
        return False

    pair = (d1.weekday(), d2.weekday())
    days_apart = abs((d1 - d2).days)
    if days_apart == 1:
        return pair in ONE_DAY_APART
    if days_apart == 2:
        return pair in TWO_DAYS_APART
    return False


def consecutive_booking_message(candidate, existing, amenity_name: str) -> str:
    candidate, existing = _as_date(candidate), _as_date(existing)
    earlier, later = sorted((candidate, existing))
    return (
        f"You already have a reservation on {DAY_NAMES[existing.weekday()]}. "
        f"Consecutive weekend bookings ({DAY_NAMES[earlier.weekday()]} + {DAY_NAMES[later.weekday()]}) "
        f"are not allowed for the {amenity_name}."
    )


@dataclass
class WeekendCheck:
    valid: bool
    message: Optional[str] = None
    details: Optional[str] = None
    conflicting_reservation_id: Optional[str] = None
    warning: Optional[str] = None


class WeekendConsecutiveRule:
    def __init__(self, store: RecordStore):
        self.store = store

    def check(
        self,
        user_id: str,
        amenity: Amenity,
        start: datetime,
        exclude_reservation_id: Optional[str] = None,
    ) -> WeekendCheck:
        if not amenity.is_lounge:
            return WeekendCheck(valid=True)

        candidate = start.date()
        if not is_weekend_day(candidate):
            return WeekendCheck(valid=True)

        try:
            existing = self.store.query(
                "reservations",
                "user_id = :user_id AND amenity_id = :amenity_id AND status IN :statuses",
                {
                    "user_id": user_id,
                    "amenity_id": amenity.id,
                    "statuses": [s.value for s in RULE_STATUSES],
                },
                order_by="start_time",
            )
        except Exception:
            # fail open: an infrastructure error must not block a legitimate booking
            logger.warning(
                "Weekend rule lookup failed for user %s, amenity %s; allowing booking",
                user_id, amenity.id, exc_info=True,
            )
            return WeekendCheck(valid=True, warning=LOOKUP_FAILED_WARNING)

        for reservation in existing:
            if reservation.id == exclude_reservation_id:
                continue
            other = reservation.start_time.date()
            if are_consecutive_weekend_days(candidate, other):
                logger.info(
                    "Consecutive weekend booking rejected for user %s: %s vs reservation %s on %s",
                    user_id, candidate, reservation.id, other,
                )
                return WeekendCheck(
                    valid=False,
                    message=f"Cannot book consecutive weekend days for the {amenity.name}",
                    details=consecutive_booking_message(candidate, other, amenity.name),
                    conflicting_reservation_id=reservation.id,
                )

        return WeekendCheck(valid=True)
