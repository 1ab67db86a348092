from datetime import date

from fastapi import APIRouter, Depends, Query

from app.reservations import ReservationService
from routers.deps import get_service

router = APIRouter()


@router.get("")
def list_slots(
    amenity_id: str = Query(...),
    day: date = Query(..., alias="date"),
    duration_minutes: int | None = Query(default=None),
    service: ReservationService = Depends(get_service),
):
    """
    Bookable windows for one amenity on one day, 30 minutes apart on the grid:
      - never overlapping a pending or approved reservation
      - each tagged with whether it would be auto-approved as-is

    ``reason`` is ``"closed"`` when the amenity does not operate that day;
    an empty list with no reason means the day is fully booked.
    """
    slots = service.compute_available_slots(amenity_id, day, duration_minutes)
    return {
        "amenity_id": amenity_id,
        "date": day.isoformat(),
        "slots": [s.model_dump() for s in slots],
        "reason": slots.reason,
    }
