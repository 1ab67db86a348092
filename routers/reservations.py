from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from app.models import as_naive_utc
from app.reservations import ReservationService
from app.schemas import CancelBody, CreateReservationBody, StatusBody
from routers.deps import get_service

router = APIRouter()


class SweepBody(BaseModel):
    actor_role: str


def _naive(value: datetime | None) -> datetime | None:
    return as_naive_utc(value) if value is not None else None


@router.post("", status_code=201)
def create_reservation(body: CreateReservationBody, service: ReservationService = Depends(get_service)):
    """
    Validate and book a window. The reservation comes back ``approved`` when
    the amenity's auto-approval policy allows it, ``pending`` otherwise.
    Overlaps answer 409, rule violations 400.
    """
    return service.evaluate_and_create_reservation(
        body.user_id,
        body.amenity_id,
        as_naive_utc(body.start_time),
        as_naive_utc(body.end_time),
        body.special_requests,
    )


@router.get("")
def list_user_reservations(
    user_id: str = Query(...),
    status: str | None = Query(default=None),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    service: ReservationService = Depends(get_service),
):
    return service.list_user_reservations(user_id, status, _naive(start_date), _naive(end_date))


@router.get("/all")
def list_all_reservations(
    actor_role: str = Query(...),
    status: str | None = Query(default=None),
    amenity_id: str | None = Query(default=None),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    service: ReservationService = Depends(get_service),
):
    return service.list_reservations(actor_role, status, amenity_id, _naive(start_date), _naive(end_date))


@router.get("/amenity/{amenity_id}")
def list_amenity_reservations(
    amenity_id: str,
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    service: ReservationService = Depends(get_service),
):
    return service.list_amenity_reservations(amenity_id, _naive(start_date), _naive(end_date))


@router.get("/amenity/{amenity_id}/conflicts")
def preview_amenity_closure(
    amenity_id: str,
    start_time: datetime = Query(...),
    end_time: datetime = Query(...),
    service: ReservationService = Depends(get_service),
):
    # Active reservations a maintenance closure over [start_time, end_time) would cancel
    return service.preview_bulk_cancel(amenity_id, as_naive_utc(start_time), as_naive_utc(end_time))


@router.post("/sweep")
def sweep_expired(body: SweepBody, service: ReservationService = Depends(get_service)):
    if body.actor_role != "admin":
        raise HTTPException(status_code=403, detail="Only administrators can trigger a sweep")
    return {"denied": service.sweep_expired_reservations()}


@router.get("/{reservation_id}")
def get_reservation(
    reservation_id: str,
    actor_id: str = Query(...),
    actor_role: str = Query(default="user"),
    service: ReservationService = Depends(get_service),
):
    return service.get_reservation(reservation_id, actor_id, actor_role)


@router.patch("/{reservation_id}/status")
def update_status(reservation_id: str, body: StatusBody, service: ReservationService = Depends(get_service)):
    return service.set_reservation_status(reservation_id, body.status, body.actor_role, body.denial_reason)


@router.post("/{reservation_id}/cancel")
def cancel_reservation(reservation_id: str, body: CancelBody, service: ReservationService = Depends(get_service)):
    return service.cancel_reservation(reservation_id, body.actor_id, body.actor_role)
