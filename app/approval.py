"""Initial status for a new reservation.

The rules are evaluated in a fixed order and the first match wins:

1. lounge amenities always go to review
2. an explicit ``requires_approval`` flag sends everything to review
3. auto-approval rules approve short, early-enough bookings
4. ``requires_approval is False`` approves
5. anything else goes to review
"""

from dataclasses import dataclass
from datetime import datetime

from app.lifecycle import ReservationStatus
from app.schemas import Amenity


@dataclass(frozen=True)
class ApprovalDecision:
    status: ReservationStatus
    reason: str

    @property
    def requires_approval(self) -> bool:
        return self.status == ReservationStatus.PENDING


def decide(amenity: Amenity, start: datetime, end: datetime, now: datetime) -> ApprovalDecision:
    if amenity.is_lounge:
        return ApprovalDecision(
            ReservationStatus.PENDING,
            f"{amenity.name} bookings always require administrator approval",
        )

    if amenity.requires_approval is True:
        return ApprovalDecision(ReservationStatus.PENDING, "Amenity requires administrator approval")

    rules = amenity.auto_approval_rules
    if rules is not None:
        duration_minutes = (end - start).total_seconds() / 60
        hours_in_advance = (start - now).total_seconds() / 3600
        if duration_minutes <= rules.max_duration_minutes and hours_in_advance >= rules.advance_booking_hours:
            return ApprovalDecision(ReservationStatus.APPROVED, "Meets auto-approval criteria")
        return ApprovalDecision(ReservationStatus.PENDING, "Does not meet auto-approval criteria")

    if amenity.requires_approval is False:
        return ApprovalDecision(ReservationStatus.APPROVED, "Amenity does not require approval")

    return ApprovalDecision(ReservationStatus.PENDING, "Default: requires administrator approval")
