"""Background auto-denial of pending reservations nobody reviewed in time.

A pending reservation whose start time has passed is moved to ``denied``
with a reason that records the original start time. The write is
conditional on the row still being ``pending``, so an administrator who
approved or denied it first always wins and the sweeper skips it.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from app.errors import ConflictError
from app.lifecycle import ReservationLifecycle, ReservationStatus
from app.models import utcnow
from app.store import RecordStore

logger = logging.getLogger(__name__)


def deny_overdue_reservations(
    store: RecordStore,
    now: datetime,
    cutoff: Optional[datetime] = None,
    lifecycle: Optional[ReservationLifecycle] = None,
) -> int:
    """Deny every pending reservation starting before ``cutoff`` (default ``now``); return how many."""
    lifecycle = lifecycle or ReservationLifecycle()
    cutoff = cutoff or now

    overdue = store.query(
        "reservations",
        "status = :status AND start_time < :cutoff",
        {"status": ReservationStatus.PENDING.value, "cutoff": cutoff},
        order_by="start_time ASC",
    )
    if not overdue:
        logger.info("No expired pending reservations found")
        return 0

    logger.warning("Found %d expired pending reservations", len(overdue))
    reservation_ids = [r.id for r in overdue]

    denied = 0
    for reservation_id in reservation_ids:
        try:
            reservation = store.get("reservations", reservation_id)
            if reservation is None or reservation.status != ReservationStatus.PENDING:
                continue
            changes = lifecycle.expire(reservation, now)
            store.update(
                "reservations",
                reservation_id,
                changes,
                expected={"status": ReservationStatus.PENDING.value},
            )
        except ConflictError:
            logger.info("Reservation %s was processed concurrently; leaving it alone", reservation_id)
            continue
        except Exception:
            # one bad record must not block the rest of the batch
            logger.exception("Error processing expired reservation %s", reservation_id)
            continue
        denied += 1
        logger.info("Expired reservation %s automatically denied", reservation_id)

    return denied


class ExpirySweeper:
    """
    Owns the timer thread. ``start`` runs a sweep right away and then every
    ``interval_seconds``; ``stop`` signals the thread and waits for it so no
    sweep touches the database after shutdown.
    """

    def __init__(
        self,
        session_factory: Callable,
        interval_seconds: float = 300,
        stale_after_hours: float = 24,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.stale_after = timedelta(hours=stale_after_hours)
        self.clock = clock
        self.lifecycle = ReservationLifecycle()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self, cutoff_delta: Optional[timedelta], now: Optional[datetime]) -> int:
        now = now or self.clock()
        cutoff = now - cutoff_delta if cutoff_delta else now
        db = self.session_factory()
        try:
            return deny_overdue_reservations(RecordStore(db), now, cutoff, self.lifecycle)
        finally:
            db.close()

    def sweep(self, now: Optional[datetime] = None) -> int:
        return self._run(None, now)

    def cleanup_stale(self, now: Optional[datetime] = None) -> int:
        """One-shot pass over reservations overdue by more than ``stale_after``."""
        count = self._run(self.stale_after, now)
        logger.info("Stale pending cleanup completed: %d reservations denied", count)
        return count

    def run_once(self) -> int:
        try:
            return self.sweep()
        except Exception:
            logger.exception("Expiry sweep failed; will retry on the next run")
            return 0

    def _loop(self):
        self.run_once()
        while not self._stop.wait(self.interval_seconds):
            self.run_once()

    def start(self):
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="expiry-sweeper", daemon=True)
        self._thread.start()
        logger.info("Reservation expiry sweeper started (every %ss)", self.interval_seconds)

    def stop(self, timeout: Optional[float] = 10) -> bool:
        """Signal the thread and wait for it. False if it is still mid-sweep after ``timeout``."""
        if self._thread is None:
            return True
        self._stop.set()
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("Reservation expiry sweeper did not stop within %ss", timeout)
            return False
        self._thread = None
        logger.info("Reservation expiry sweeper stopped")
        return True
