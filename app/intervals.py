"""Half-open interval overlap, the single predicate used for every conflict check."""

from datetime import datetime
from typing import Iterable, List, Optional


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """
    True iff [a_start, a_end) and [b_start, b_end) share an instant.
    Back-to-back intervals (a_end == b_start) do not overlap.
    """
    return a_start < b_end and b_start < a_end


def find_conflicts(
    reservations: Iterable,
    start: datetime,
    end: datetime,
    exclude_id: Optional[str] = None,
) -> List:
    """Reservations (anything with start_time/end_time/id) overlapping [start, end)."""
    return [
        r for r in reservations
        if r.id != exclude_id and overlaps(r.start_time, r.end_time, start, end)
    ]
