from fastapi import APIRouter, Depends, HTTPException

from app.catalog import AmenityCatalog
from app.schemas import CreateAmenityBody
from routers.deps import get_catalog

router = APIRouter()


@router.get("")
def list_amenities(catalog: AmenityCatalog = Depends(get_catalog)):
    return [a.model_dump() for a in catalog.list_amenities()]


@router.get("/{amenity_id}")
def get_amenity(amenity_id: str, catalog: AmenityCatalog = Depends(get_catalog)):
    amenity = catalog.get_amenity_by_id(amenity_id)
    if amenity is None:
        raise HTTPException(status_code=404, detail="Amenity not found")
    return amenity.model_dump()


@router.post("", status_code=201)
def create_amenity(body: CreateAmenityBody, catalog: AmenityCatalog = Depends(get_catalog)):
    if body.actor_role != "admin":
        raise HTTPException(status_code=403, detail="Only administrators can create amenities")
    amenity = catalog.create_amenity(body.model_dump(exclude={"actor_role"}))
    return amenity.model_dump()
