"""Reservation status machine.

``pending`` and ``approved`` are the only live states; everything else is
terminal. Changes are checked here and written by the caller with a
conditional update on the status that was checked, so a transition that
raced with another writer fails instead of overwriting it.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from app.errors import InvalidTransitionError, PermissionDenied, ValidationError

logger = logging.getLogger(__name__)


class ReservationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    CANCELLED = "cancelled"
    # legacy records; only the weekend rule still counts them
    CONFIRMED = "confirmed"


class ActorRole(str, Enum):
    USER = "user"
    ADMIN = "admin"
    SYSTEM = "system"


ACTIVE_STATUSES = (ReservationStatus.PENDING, ReservationStatus.APPROVED)

TRANSITIONS = {
    (ReservationStatus.PENDING, ReservationStatus.APPROVED): {ActorRole.ADMIN},
    (ReservationStatus.PENDING, ReservationStatus.DENIED): {ActorRole.ADMIN, ActorRole.SYSTEM},
    (ReservationStatus.PENDING, ReservationStatus.CANCELLED): {ActorRole.USER, ActorRole.ADMIN, ActorRole.SYSTEM},
    (ReservationStatus.APPROVED, ReservationStatus.CANCELLED): {ActorRole.USER, ActorRole.ADMIN, ActorRole.SYSTEM},
}

_ROLES_BY_TARGET: Dict[ReservationStatus, set] = {}
for (_source, _target), _roles in TRANSITIONS.items():
    _ROLES_BY_TARGET.setdefault(_target, set()).update(_roles)


def parse_status(value) -> ReservationStatus:
    try:
        return ReservationStatus(value)
    except ValueError:
        raise ValidationError(f"Invalid status value: {value}") from None


def parse_role(value) -> ActorRole:
    try:
        return ActorRole(value)
    except ValueError:
        raise PermissionDenied(f"Unknown actor role: {value}") from None


class ReservationLifecycle:

    def check(
        self,
        reservation,
        new_status,
        actor_role,
        now: datetime,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Validate moving ``reservation`` to ``new_status`` on behalf of the actor
        and return the column changes to write.
        """
        target = parse_status(new_status)
        role = parse_role(actor_role)
        current = parse_status(reservation.status)

        allowed_roles = _ROLES_BY_TARGET.get(target)
        if allowed_roles is None:
            raise ValidationError(f"Reservations cannot be moved to '{target.value}'")
        if role not in allowed_roles:
            raise PermissionDenied(f"Role '{role.value}' may not set reservations to '{target.value}'")
        if role == ActorRole.USER and reservation.user_id != actor_id:
            raise PermissionDenied("Access denied")

        if current == target == ReservationStatus.CANCELLED:
            raise InvalidTransitionError("Reservation is already cancelled")
        roles = TRANSITIONS.get((current, target))
        if roles is None:
            raise InvalidTransitionError(
                f"Cannot move reservation from '{current.value}' to '{target.value}'"
            )
        if role not in roles:
            raise PermissionDenied(f"Role '{role.value}' may not move '{current.value}' to '{target.value}'")

        changes: Dict[str, Any] = {"status": target.value}
        if target == ReservationStatus.DENIED:
            if not reason or not reason.strip():
                raise ValidationError("A denial reason is required")
            changes["denial_reason"] = reason.strip()
            changes["processed_at"] = now
        elif target == ReservationStatus.APPROVED:
            changes["denial_reason"] = None
            changes["processed_at"] = now
        elif target == ReservationStatus.CANCELLED:
            if reservation.start_time <= now:
                raise InvalidTransitionError("Cannot cancel past reservations")
            changes["cancelled_at"] = now
            if reason:
                changes["denial_reason"] = reason

        logger.debug(
            "Transition %s -> %s allowed for %s on reservation %s",
            current.value, target.value, role.value, reservation.id,
        )
        return changes

    def expire(self, reservation, now: datetime) -> Dict[str, Any]:
        """Sweeper auto-denial of a pending reservation whose start has passed."""
        hours_overdue = (now - reservation.start_time).total_seconds() / 3600
        reason = (
            "Automatically denied - reservation expired without admin review. "
            f"Start time was {reservation.start_time.isoformat()} ({hours_overdue:.1f}h overdue)."
        )
        return self.check(reservation, ReservationStatus.DENIED, ActorRole.SYSTEM, now, reason=reason)
