from datetime import date, datetime, timedelta

import pytest

from app.errors import ConflictError, InvalidTransitionError, NotFoundError, PermissionDenied, ValidationError
from app.intervals import overlaps
from app.schemas import SpecialRequests
from tests.helpers import NOW

FRI, SAT, SUN = date(2030, 1, 4), date(2030, 1, 5), date(2030, 1, 6)
MON = date(2030, 1, 7)
NEXT_SAT = date(2030, 1, 12)


def at(day, hour, minute=0):
    return datetime(day.year, day.month, day.day, hour, minute)


# —— booking decisions ——

def test_jacuzzi_one_hour_is_auto_approved(service, jacuzzi, make_user):
    make_user()
    start = NOW + timedelta(hours=3)

    r = service.evaluate_and_create_reservation("u-1", jacuzzi.id, start, start + timedelta(minutes=60))

    assert r.status == "approved"
    assert r.amenity_name == "Jacuzzi"
    assert r.user_name == "User1"
    assert r.duration_minutes == 60


def test_jacuzzi_ninety_minutes_needs_review(service, jacuzzi):
    start = NOW + timedelta(hours=3)

    r = service.evaluate_and_create_reservation("u-1", jacuzzi.id, start, start + timedelta(minutes=90))

    assert r.status == "pending"
    assert r.user_name == "Unknown User"


def test_lounge_friday_then_saturday_is_rejected(service, lounge):
    friday = service.evaluate_and_create_reservation("u-1", lounge.id, at(FRI, 18), at(FRI, 20))
    assert friday.status == "pending"

    with pytest.raises(ValidationError) as exc:
        service.evaluate_and_create_reservation("u-1", lounge.id, at(SAT, 10), at(SAT, 12))

    assert "Friday" in exc.value.details


def test_lounge_saturday_then_sunday_is_rejected(service, lounge):
    service.evaluate_and_create_reservation("u-1", lounge.id, at(SAT, 10), at(SAT, 12))

    with pytest.raises(ValidationError):
        service.evaluate_and_create_reservation("u-1", lounge.id, at(SUN, 10), at(SUN, 12))


def test_lounge_saturday_then_next_saturday_is_allowed(service, lounge):
    service.evaluate_and_create_reservation("u-1", lounge.id, at(SAT, 10), at(SAT, 12))

    r = service.evaluate_and_create_reservation("u-1", lounge.id, at(NEXT_SAT, 10), at(NEXT_SAT, 12))

    assert r.status == "pending"


def test_lounge_needs_a_day_of_notice(service, lounge):
    start = NOW + timedelta(hours=5)
    with pytest.raises(ValidationError, match="advance notice"):
        service.evaluate_and_create_reservation("u-1", lounge.id, start, start + timedelta(hours=1))


def test_lounge_visitor_limit(service, lounge):
    with pytest.raises(ValidationError, match="between 1 and 20"):
        service.evaluate_and_create_reservation(
            "u-1", lounge.id, at(FRI, 18), at(FRI, 20), SpecialRequests(visitor_count=25)
        )


def test_grill_only_where_allowed(service, jacuzzi, lounge):
    with pytest.raises(ValidationError, match="grill"):
        service.evaluate_and_create_reservation(
            "u-1", jacuzzi.id, at(FRI, 10), at(FRI, 11), SpecialRequests(grill_usage=True)
        )
    r = service.evaluate_and_create_reservation(
        "u-1", lounge.id, at(FRI, 18), at(FRI, 20), SpecialRequests(grill_usage=True, visitor_count=8)
    )
    assert r.special_requests == {"grill_usage": True, "visitor_count": 8}


class UnreachableStore:
    def query(self, *args, **kwargs):
        raise RuntimeError("store unreachable")


def test_lounge_weekend_rule_fails_open_with_warning(service, lounge, monkeypatch):
    monkeypatch.setattr(service.weekend_rule, "store", UnreachableStore())

    r = service.evaluate_and_create_reservation("u-1", lounge.id, at(SAT, 10), at(SAT, 12))

    assert r.status == "pending"
    assert r.warnings


# —— validation ——

@pytest.mark.parametrize("start,end,message", [
    (at(FRI, 11), at(FRI, 10), "End time must be after start time"),
    (NOW - timedelta(hours=1), NOW + timedelta(hours=1), "Start time must be in the future"),
    (at(FRI, 6), at(FRI, 7), "only available from 07:00 to 21:00"),
    (at(FRI, 20), at(FRI, 21, 30), "only available from 07:00 to 21:00"),
])
def test_invalid_intervals(service, jacuzzi, start, end, message):
    with pytest.raises(ValidationError, match=message):
        service.evaluate_and_create_reservation("u-1", jacuzzi.id, start, end)


def test_hard_duration_ceiling(service, make_amenity):
    amenity = make_amenity(amenity_id="a-deck", name="Yoga Deck", type="yoga-deck",
                           operating_hours={"start": "06:00", "end": "22:00"}, requires_approval=False)
    with pytest.raises(ValidationError, match="cannot exceed 480 minutes"):
        service.evaluate_and_create_reservation("u-1", amenity.id, at(FRI, 7), at(FRI, 16))


def test_closed_day(service, make_amenity):
    amenity = make_amenity(operating_hours={"start": "07:00", "end": "21:00", "days": [1, 2, 3, 4]})  # Monday-Thursday
    with pytest.raises(ValidationError, match="closed on Friday"):
        service.evaluate_and_create_reservation("u-1", amenity.id, at(FRI, 10), at(FRI, 11))


def test_unknown_or_inactive_amenity(service, make_amenity):
    make_amenity(amenity_id="a-off", name="Closed Tub", is_active=False)
    with pytest.raises(NotFoundError):
        service.evaluate_and_create_reservation("u-1", "nope", at(FRI, 10), at(FRI, 11))
    with pytest.raises(NotFoundError):
        service.evaluate_and_create_reservation("u-1", "a-off", at(FRI, 10), at(FRI, 11))


# —— conflicts ——

def test_overlap_is_rejected_but_back_to_back_is_fine(service, jacuzzi):
    service.evaluate_and_create_reservation("u-1", jacuzzi.id, at(FRI, 10), at(FRI, 11))

    with pytest.raises(ConflictError):
        service.evaluate_and_create_reservation("u-2", jacuzzi.id, at(FRI, 10, 30), at(FRI, 11, 30))

    r = service.evaluate_and_create_reservation("u-2", jacuzzi.id, at(FRI, 11), at(FRI, 12))
    assert r.status == "approved"


def test_cancelled_and_denied_reservations_free_the_slot(service, jacuzzi, make_reservation):
    make_reservation(start=at(FRI, 10), end=at(FRI, 11), status="cancelled")
    make_reservation(start=at(FRI, 10), end=at(FRI, 11), status="denied")

    r = service.evaluate_and_create_reservation("u-1", jacuzzi.id, at(FRI, 10), at(FRI, 11))

    assert r.status == "approved"


def test_no_active_overlaps_after_successful_creates(service, jacuzzi):
    for hour in (9, 10, 12, 14):
        service.evaluate_and_create_reservation("u-1", jacuzzi.id, at(FRI, hour), at(FRI, hour + 1))
    for hour in (9, 13):
        with pytest.raises(ConflictError):
            service.evaluate_and_create_reservation("u-2", jacuzzi.id, at(FRI, hour, 30), at(FRI, hour + 1, 30))

    active = [r for r in service.list_amenity_reservations(jacuzzi.id) if r.status in ("pending", "approved")]
    for i, a in enumerate(active):
        for b in active[i + 1:]:
            assert not overlaps(a.start_time, a.end_time, b.start_time, b.end_time)


def test_post_write_race_cancels_the_later_writer(service, store, jacuzzi, monkeypatch):
    original_create = store.create

    def racing_create(collection, item):
        # a concurrent request lands between our pre-check and our write
        original_create(collection, dict(item, id="r-rival", user_id="u-2", created_at=NOW - timedelta(seconds=1)))
        return original_create(collection, item)

    monkeypatch.setattr(store, "create", racing_create)

    with pytest.raises(ConflictError):
        service.evaluate_and_create_reservation("u-1", jacuzzi.id, at(FRI, 10), at(FRI, 11))

    rows = {r.user_id: r for r in service.list_amenity_reservations(jacuzzi.id)}
    assert rows["u-2"].status == "approved"
    assert rows["u-1"].status == "cancelled"
    assert "after the fact" in rows["u-1"].denial_reason


# —— slots ——

def test_available_slots_skip_existing_bookings(service, jacuzzi, make_reservation):
    make_reservation(start=at(FRI, 10), end=at(FRI, 11), status="approved")
    make_reservation(start=at(SAT, 10), end=at(SAT, 11), status="approved")

    slots = list(service.compute_available_slots(jacuzzi.id, FRI))

    starts = [s.start_time for s in slots]
    assert at(FRI, 10) not in starts
    assert at(FRI, 11) in starts
    assert starts[0] == at(FRI, 7)
    assert slots[-1].end_time == at(FRI, 21)


def test_available_slots_on_closed_day_carry_closed_reason(service, make_amenity):
    # stored days count from Sunday == 0, so [1] is Monday only
    amenity = make_amenity(operating_hours={"start": "07:00", "end": "21:00", "days": [1]})

    slots = service.compute_available_slots(amenity.id, FRI)

    assert slots.reason == "closed"
    assert list(slots) == []
    assert len(list(service.compute_available_slots(amenity.id, MON))) == 14


def test_fully_booked_day_has_no_closed_reason(service, jacuzzi, make_reservation):
    make_reservation(start=at(FRI, 7), end=at(FRI, 21), status="approved")

    slots = service.compute_available_slots(jacuzzi.id, FRI)

    assert list(slots) == []
    assert slots.reason is None


def test_available_slots_reject_zero_duration(service, jacuzzi):
    with pytest.raises(ValidationError, match="positive"):
        service.compute_available_slots(jacuzzi.id, FRI, 0)


def test_stored_weekdays_count_from_sunday(service, make_amenity):
    amenity = make_amenity(operating_hours={"startTime": "07:00", "endTime": "21:00", "days": [1, 2, 3, 4, 5]})

    assert list(service.compute_available_slots(amenity.id, SAT)) == []
    assert len(list(service.compute_available_slots(amenity.id, MON))) == 14
    assert len(list(service.compute_available_slots(amenity.id, FRI))) == 14


# —— status changes ——

def test_admin_approves_and_denies(service, lounge):
    first = service.evaluate_and_create_reservation("u-1", lounge.id, at(FRI, 18), at(FRI, 20))
    second = service.evaluate_and_create_reservation("u-2", lounge.id, at(FRI, 10), at(FRI, 12))

    approved = service.set_reservation_status(first.id, "approved", "admin")
    denied = service.set_reservation_status(second.id, "denied", "admin", "Private event")

    assert approved.status == "approved" and approved.processed_at == NOW
    assert denied.status == "denied" and denied.denial_reason == "Private event"

    with pytest.raises(InvalidTransitionError):
        service.set_reservation_status(first.id, "denied", "admin", "Too late")


def test_status_change_needs_admin_and_reason(service, lounge):
    r = service.evaluate_and_create_reservation("u-1", lounge.id, at(FRI, 18), at(FRI, 20))

    with pytest.raises(PermissionDenied):
        service.set_reservation_status(r.id, "approved", "user")
    with pytest.raises(ValidationError):
        service.set_reservation_status(r.id, "denied", "admin")
    with pytest.raises(NotFoundError):
        service.set_reservation_status("missing", "approved", "admin")


def test_owner_cancels_and_others_cannot(service, jacuzzi):
    r = service.evaluate_and_create_reservation("u-1", jacuzzi.id, at(FRI, 10), at(FRI, 11))

    with pytest.raises(PermissionDenied):
        service.cancel_reservation(r.id, "u-2", "user")

    cancelled = service.cancel_reservation(r.id, "u-1", "user")
    assert cancelled.status == "cancelled"
    assert cancelled.cancelled_at == NOW

    with pytest.raises(InvalidTransitionError):
        service.cancel_reservation(r.id, "u-1", "user")


def test_cannot_cancel_elapsed_reservation(service, jacuzzi, make_reservation):
    past = make_reservation(start=NOW - timedelta(hours=2), end=NOW - timedelta(hours=1), status="approved")

    with pytest.raises(InvalidTransitionError, match="past"):
        service.cancel_reservation(past.id, "u-1", "user")


def test_stale_status_write_is_rejected(service, store, lounge):
    r = service.evaluate_and_create_reservation("u-1", lounge.id, at(FRI, 18), at(FRI, 20))
    store.update("reservations", r.id, {"status": "approved"})

    with pytest.raises(ConflictError):
        store.update("reservations", r.id, {"status": "denied"}, expected={"status": "pending"})


# —— queries ——

def test_reservation_visibility(service, jacuzzi):
    r = service.evaluate_and_create_reservation("u-1", jacuzzi.id, at(FRI, 10), at(FRI, 11))

    assert service.get_reservation(r.id, "u-1", "user").id == r.id
    assert service.get_reservation(r.id, "u-admin", "admin").id == r.id
    with pytest.raises(PermissionDenied):
        service.get_reservation(r.id, "u-2", "user")


def test_listing_filters(service, jacuzzi, lounge):
    service.evaluate_and_create_reservation("u-1", jacuzzi.id, at(FRI, 10), at(FRI, 11))
    service.evaluate_and_create_reservation("u-1", lounge.id, at(FRI, 18), at(FRI, 20))
    service.evaluate_and_create_reservation("u-2", jacuzzi.id, at(FRI, 12), at(FRI, 13))

    mine = service.list_user_reservations("u-1")
    assert [r.amenity_id for r in mine] == [lounge.id, jacuzzi.id]  # newest start first
    assert [r.status for r in service.list_user_reservations("u-1", status="pending")] == ["pending"]
    assert len(service.list_reservations("admin", amenity_id=jacuzzi.id)) == 2
    with pytest.raises(PermissionDenied):
        service.list_reservations("user")


def test_bulk_cancel_preview_uses_overlap_rule(service, jacuzzi):
    service.evaluate_and_create_reservation("u-1", jacuzzi.id, at(FRI, 10), at(FRI, 11))
    service.evaluate_and_create_reservation("u-2", jacuzzi.id, at(FRI, 12), at(FRI, 13))

    hits = service.preview_bulk_cancel(jacuzzi.id, at(FRI, 11), at(FRI, 12, 30))

    assert [r.user_id for r in hits] == ["u-2"]
