"""Bookable windows for one amenity on one day."""

import logging
from datetime import date, datetime, time, timedelta
from typing import Callable, Iterable, Iterator, Optional, Tuple

from app.approval import decide
from app.errors import ValidationError
from app.intervals import overlaps
from app.lifecycle import ACTIVE_STATUSES, ReservationStatus
from app.schemas import Amenity, Slot

logger = logging.getLogger(__name__)

CLOSED = "closed"


class AvailableSlots:
    """
    Finite, restartable slot sequence. Every ``iter()`` walks the day again,
    so callers can page through it or count it without materializing a list.
    ``reason`` is ``"closed"`` when the amenity does not operate that day.
    """

    def __init__(self, walk: Optional[Callable[[], Iterator[Slot]]] = None, reason: Optional[str] = None):
        self._walk = walk
        self.reason = reason

    def __iter__(self) -> Iterator[Slot]:
        if self._walk is None:
            return iter(())
        return self._walk()


class SlotGenerator:
    def __init__(
        self,
        step_minutes: int = 30,
        default_open: time = time(6, 0),
        default_close: time = time(22, 0),
        max_duration_minutes: int = 480,
    ):
        self.step = timedelta(minutes=step_minutes)
        self.default_open = default_open
        self.default_close = default_close
        self.max_duration_minutes = max_duration_minutes

    def window_for(self, amenity: Amenity, day: date) -> Tuple[datetime, datetime]:
        hours = amenity.operating_hours
        if hours.is_well_formed:
            open_at, close_at = hours.open, hours.close
        else:
            logger.warning(
                "Amenity %s (%s) has malformed operating hours (open=%s, close=%s); using %s-%s",
                amenity.id, amenity.name, hours.open, hours.close,
                self.default_open.strftime("%H:%M"), self.default_close.strftime("%H:%M"),
            )
            open_at, close_at = self.default_open, self.default_close
        return datetime.combine(day, open_at), datetime.combine(day, close_at)

    def generate(
        self,
        amenity: Amenity,
        day: date,
        duration_minutes: int,
        existing: Iterable,
        now: datetime,
    ) -> AvailableSlots:
        if duration_minutes <= 0:
            raise ValidationError("Duration must be a positive number of minutes")
        if day.weekday() not in amenity.operating_hours.days:
            return AvailableSlots(reason=CLOSED)

        open_dt, close_dt = self.window_for(amenity, day)
        window_minutes = (close_dt - open_dt).total_seconds() / 60
        if duration_minutes > window_minutes or duration_minutes > self.max_duration_minutes:
            raise ValidationError(
                f"Duration of {duration_minutes} minutes does not fit the "
                f"{open_dt:%H:%M}-{close_dt:%H:%M} operating window"
            )

        duration = timedelta(minutes=duration_minutes)
        busy = sorted(
            ((r.start_time, r.end_time) for r in existing if r.status in ACTIVE_STATUSES),
            key=lambda interval: interval[0],
        )

        def walk() -> Iterator[Slot]:
            cursor = open_dt
            while cursor + duration <= close_dt:
                end = cursor + duration
                if any(overlaps(cursor, end, b_start, b_end) for b_start, b_end in busy):
                    cursor += self.step
                    continue
                yield Slot(
                    start_time=cursor,
                    end_time=end,
                    auto_approved=decide(amenity, cursor, end, now).status == ReservationStatus.APPROVED,
                )
                # next candidate starts where this one ends so slots stay disjoint
                cursor = end

        return AvailableSlots(walk)
