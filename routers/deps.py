from fastapi import Depends
from sqlalchemy.orm import Session

from app.catalog import AmenityCatalog
from app.db import get_db
from app.reservations import ReservationService
from app.store import RecordStore


def get_store(db: Session = Depends(get_db)) -> RecordStore:
    return RecordStore(db)


def get_catalog(store: RecordStore = Depends(get_store)) -> AmenityCatalog:
    return AmenityCatalog(store)


def get_service(store: RecordStore = Depends(get_store)) -> ReservationService:
    return ReservationService(store)
