"""Reservation engine: availability, booking decisions and status changes.

The service is stateless between calls; everything durable goes through the
RecordStore it is given. One instance per request (or per sweeper run).
"""

import logging
import uuid
from datetime import date, datetime, time, timedelta
from typing import Callable, List, Optional

from app.approval import decide
from app.catalog import AmenityCatalog
from app.config import Settings, get_settings
from app.errors import ConflictError, NotFoundError, PermissionDenied, ValidationError
from app.intervals import find_conflicts
from app.lifecycle import ACTIVE_STATUSES, ActorRole, ReservationLifecycle, ReservationStatus, parse_role
from app.models import utcnow
from app.schemas import Amenity, ReservationRead, SpecialRequests
from app.slots import CLOSED, AvailableSlots, SlotGenerator
from app.store import RecordStore
from app.sweeper import deny_overdue_reservations
from app.users import UserDirectory
from app.weekend import WeekendConsecutiveRule

logger = logging.getLogger(__name__)

ACTIVE = [s.value for s in ACTIVE_STATUSES]
POST_WRITE_CONFLICT_REASON = "Conflict detected after the fact: another reservation for this time was created first"


class ReservationService:
    def __init__(
        self,
        store: RecordStore,
        catalog: Optional[AmenityCatalog] = None,
        users: Optional[UserDirectory] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.catalog = catalog or AmenityCatalog(store)
        self.users = users or UserDirectory(store)
        self.settings = settings or get_settings()
        self.clock = clock
        self.lifecycle = ReservationLifecycle()
        self.weekend_rule = WeekendConsecutiveRule(store)
        self.slot_generator = SlotGenerator(
            step_minutes=self.settings.slot_step_minutes,
            default_open=self.settings.default_open_time,
            default_close=self.settings.default_close_time,
            max_duration_minutes=self.settings.max_reservation_minutes,
        )

    # —— lookups ——

    def _require_amenity(self, amenity_id: str) -> Amenity:
        amenity = self.catalog.get_amenity_by_id(amenity_id)
        if amenity is None:
            raise NotFoundError("Amenity not found")
        return amenity

    def _require_reservation(self, reservation_id: str):
        row = self.store.get("reservations", reservation_id)
        if row is None:
            logger.warning("Reservation not found: %s", reservation_id)
            raise NotFoundError("Reservation not found")
        return row

    def _active_between(self, amenity_id: str, start: datetime, end: datetime):
        """Active reservations for the amenity that could touch [start, end)."""
        return self.store.query(
            "reservations",
            "amenity_id = :amenity_id AND status IN :statuses "
            "AND start_time < :end AND end_time > :start",
            {"amenity_id": amenity_id, "statuses": ACTIVE, "start": start, "end": end},
            order_by="start_time ASC",
        )

    def to_read(self, row, **extra) -> ReservationRead:
        view = ReservationRead.model_validate(row)
        view.user_name = self.users.display_name(row.user_id)
        for key, value in extra.items():
            setattr(view, key, value)
        return view

    # —— availability ——

    def compute_available_slots(
        self, amenity_id: str, day: date, duration_minutes: Optional[int] = None
    ) -> AvailableSlots:
        amenity = self._require_amenity(amenity_id)
        if duration_minutes is None:
            duration_minutes = self.settings.default_slot_duration_minutes

        start_of_day = datetime.combine(day, time.min)
        existing = self._active_between(amenity.id, start_of_day, start_of_day + timedelta(days=1))
        slots = self.slot_generator.generate(amenity, day, duration_minutes, existing, self.clock())
        if slots.reason == CLOSED:
            logger.info("Amenity %s is closed on %s", amenity.name, day.strftime("%A"))
        return slots

    # —— booking ——

    def _validate_interval(self, amenity: Amenity, start: datetime, end: datetime, now: datetime):
        if end <= start:
            raise ValidationError("End time must be after start time")
        if start <= now:
            raise ValidationError("Start time must be in the future")

        duration_minutes = (end - start).total_seconds() / 60
        if duration_minutes > self.settings.max_reservation_minutes:
            raise ValidationError(
                f"Reservations cannot exceed {self.settings.max_reservation_minutes} minutes"
            )
        if amenity.max_duration_minutes and duration_minutes > amenity.max_duration_minutes:
            raise ValidationError(
                f"{amenity.name} reservations cannot exceed {amenity.max_duration_minutes} minutes"
            )
        if start.weekday() not in amenity.operating_hours.days:
            raise ValidationError(f"{amenity.name} is closed on {start.strftime('%A')}")
        open_dt, close_dt = self.slot_generator.window_for(amenity, start.date())
        if start < open_dt or end > close_dt:
            raise ValidationError(
                f"{amenity.name} is only available from {open_dt:%H:%M} to {close_dt:%H:%M}"
            )

    def _validate_special_requests(self, amenity: Amenity, start: datetime, now: datetime, requests: SpecialRequests):
        requirements = amenity.special_requirements
        if requests.visitor_count is not None:
            max_visitors = requirements.max_visitors or amenity.capacity
            if requests.visitor_count < 1 or requests.visitor_count > max_visitors:
                raise ValidationError(f"Visitor count must be between 1 and {max_visitors}")
        if requests.grill_usage and not requirements.allow_grill_usage:
            raise ValidationError(f"{amenity.name} does not allow grill usage")

        advance_hours = requirements.advance_booking_hours
        if advance_hours is None and amenity.is_lounge:
            advance_hours = self.settings.lounge_advance_booking_hours
        if advance_hours:
            hours_in_advance = (start - now).total_seconds() / 3600
            if hours_in_advance < advance_hours:
                raise ValidationError(
                    f"{amenity.name} bookings require at least {advance_hours:g} hours advance notice"
                )

    def evaluate_and_create_reservation(
        self,
        user_id: str,
        amenity_id: str,
        start: datetime,
        end: datetime,
        special_requests: Optional[SpecialRequests] = None,
    ) -> ReservationRead:
        special_requests = special_requests or SpecialRequests()
        now = self.clock()

        amenity = self._require_amenity(amenity_id)
        self._validate_interval(amenity, start, end, now)
        self._validate_special_requests(amenity, start, now, special_requests)

        warnings: List[str] = []
        weekend = self.weekend_rule.check(user_id, amenity, start)
        if not weekend.valid:
            raise ValidationError(weekend.message, details=weekend.details)
        if weekend.warning:
            warnings.append(weekend.warning)

        if find_conflicts(self._active_between(amenity.id, start, end), start, end):
            raise ConflictError("Time slot is already reserved")

        decision = decide(amenity, start, end, now)
        row = self.store.create("reservations", {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "amenity_id": amenity.id,
            "amenity_name": amenity.name,
            "start_time": start,
            "end_time": end,
            "duration_minutes": round((end - start).total_seconds() / 60),
            "status": decision.status.value,
            "special_requests": special_requests.model_dump(exclude_none=True),
            "created_at": now,
            "updated_at": now,
        })
        self._recheck_after_write(row, now)

        logger.info(
            "Reservation created: %s for amenity %s (%s: %s)",
            row.id, amenity.name, decision.status.value, decision.reason,
        )
        return self.to_read(row, approval_reason=decision.reason, warnings=warnings)

    def _recheck_after_write(self, row, now: datetime):
        """
        Concurrent writers can both pass the pre-check. The reservation created
        later (ties broken by id) loses and is cancelled.
        """
        rivals = find_conflicts(
            self._active_between(row.amenity_id, row.start_time, row.end_time),
            row.start_time, row.end_time, exclude_id=row.id,
        )
        ours = (row.created_at or datetime.min, row.id)
        if not any((r.created_at or datetime.min, r.id) < ours for r in rivals):
            return

        logger.warning("Post-write conflict on amenity %s; cancelling reservation %s", row.amenity_id, row.id)
        try:
            self.store.update(
                "reservations",
                row.id,
                {"status": ReservationStatus.CANCELLED.value, "denial_reason": POST_WRITE_CONFLICT_REASON, "cancelled_at": now},
                expected={"status": row.status},
            )
        except ConflictError:
            logger.warning("Reservation %s changed before it could be compensated", row.id)
        raise ConflictError("Time slot is already reserved")

    # —— status changes ——

    def set_reservation_status(
        self,
        reservation_id: str,
        new_status: str,
        actor_role: str,
        reason: Optional[str] = None,
    ) -> ReservationRead:
        """Administrator approve / deny / cancel."""
        if parse_role(actor_role) != ActorRole.ADMIN:
            raise PermissionDenied("Only administrators can change reservation status")

        row = self._require_reservation(reservation_id)
        current = row.status
        changes = self.lifecycle.check(row, new_status, actor_role, self.clock(), reason=reason)
        updated = self.store.update("reservations", row.id, changes, expected={"status": current})

        logger.info("Reservation %s status updated %s -> %s", row.id, current, updated.status)
        return self.to_read(updated)

    def cancel_reservation(self, reservation_id: str, actor_id: str, actor_role: str) -> ReservationRead:
        row = self._require_reservation(reservation_id)
        current = row.status
        changes = self.lifecycle.check(
            row, ReservationStatus.CANCELLED, actor_role, self.clock(), actor_id=actor_id
        )
        updated = self.store.update("reservations", row.id, changes, expected={"status": current})

        logger.info("Reservation %s cancelled by %s (%s)", row.id, actor_id, actor_role)
        return self.to_read(updated)

    def sweep_expired_reservations(self, now: Optional[datetime] = None) -> int:
        return deny_overdue_reservations(self.store, now or self.clock(), lifecycle=self.lifecycle)

    # —— queries ——

    def get_reservation(self, reservation_id: str, actor_id: str, actor_role: str) -> ReservationRead:
        row = self._require_reservation(reservation_id)
        if parse_role(actor_role) != ActorRole.ADMIN and row.user_id != actor_id:
            raise PermissionDenied("Access denied")
        return self.to_read(row)

    @staticmethod
    def _filters(where: List[str], params: dict, status, start_date, end_date):
        if status:
            where.append("status = :status")
            params["status"] = status
        if start_date:
            where.append("start_time >= :start_date")
            params["start_date"] = start_date
        if end_date:
            where.append("start_time <= :end_date")
            params["end_date"] = end_date

    def list_user_reservations(
        self,
        user_id: str,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[ReservationRead]:
        where, params = ["user_id = :user_id"], {"user_id": user_id}
        self._filters(where, params, status, start_date, end_date)
        rows = self.store.query("reservations", " AND ".join(where), params, order_by="start_time DESC")
        return [self.to_read(r) for r in rows]

    def list_reservations(
        self,
        actor_role: str,
        status: Optional[str] = None,
        amenity_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[ReservationRead]:
        if parse_role(actor_role) != ActorRole.ADMIN:
            raise PermissionDenied("Only administrators can list all reservations")
        where, params = ["1 = 1"], {}
        self._filters(where, params, status, start_date, end_date)
        if amenity_id:
            where.append("amenity_id = :amenity_id")
            params["amenity_id"] = amenity_id
        rows = self.store.query("reservations", " AND ".join(where), params, order_by="created_at DESC")
        return [self.to_read(r) for r in rows]

    def list_amenity_reservations(
        self,
        amenity_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[ReservationRead]:
        where, params = ["amenity_id = :amenity_id"], {"amenity_id": amenity_id}
        self._filters(where, params, None, start_date, end_date)
        rows = self.store.query("reservations", " AND ".join(where), params, order_by="start_time ASC")
        return [self.to_read(r) for r in rows]

    def preview_bulk_cancel(self, amenity_id: str, start: datetime, end: datetime) -> List[ReservationRead]:
        """Active reservations a closure of the amenity over [start, end) would hit."""
        if end <= start:
            raise ValidationError("End time must be after start time")
        self._require_amenity(amenity_id)
        hits = find_conflicts(self._active_between(amenity_id, start, end), start, end)
        return [self.to_read(r) for r in hits]
