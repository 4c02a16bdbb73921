from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from ubuntu_shared import haversine_km

from ..auth import get_current_user, get_db
from ..errors import AuthorizationError, InputValidationError, NotFoundError
from ..models import SafeLocation, User
from ..schemas import SafeLocationCreateIn, SafeLocationListOut, SafeLocationOut
from ..utils.audit import record_event


router = APIRouter(prefix="/locations", tags=["locations"])


def _to_out(location: SafeLocation, distance_km: Optional[float] = None) -> SafeLocationOut:
    return SafeLocationOut(
        id=location.id,
        location_name=location.location_name,
        address=location.address,
        latitude=location.latitude,
        longitude=location.longitude,
        verified_by=location.verified_by,
        verification_date=location.verification_date,
        description=location.description,
        safety_features=location.safety_features or [],
        opening_hours=location.opening_hours,
        closing_hours=location.closing_hours,
        usage_count=location.usage_count or 0,
        safety_rating=location.safety_rating,
        is_open=location.is_open(),
        distance_km=round(distance_km, 3) if distance_km is not None else None,
    )


@router.post("", response_model=SafeLocationOut, status_code=status.HTTP_201_CREATED)
def create_location(
    payload: SafeLocationCreateIn,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not user.can_work_with_youth():
        raise AuthorizationError("Only Trusted Mentors and above can verify safe locations")
    location = SafeLocation(
        location_name=payload.location_name,
        address=payload.address,
        latitude=payload.latitude,
        longitude=payload.longitude,
        verified_by=user.id,
        description=payload.description,
        safety_features=list(payload.safety_features),
        opening_hours=payload.opening_hours,
        closing_hours=payload.closing_hours,
    )
    db.add(location)
    db.flush()
    record_event(db, "location.verified", user.id, resource="safe_location", resource_id=location.id, request=request)
    return _to_out(location)


@router.get("", response_model=SafeLocationListOut)
def list_locations(
    latitude: Optional[float] = Query(None, ge=-90, le=90),
    longitude: Optional[float] = Query(None, ge=-180, le=180),
    radius_km: float = Query(10.0, gt=0, le=500),
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if (latitude is None) != (longitude is None):
        raise InputValidationError("latitude and longitude must be supplied together")
    rows = db.query(SafeLocation).filter(SafeLocation.is_active.is_(True)).all()
    if latitude is None:
        rows.sort(key=lambda loc: loc.location_name)
        return SafeLocationListOut(locations=[_to_out(loc) for loc in rows])
    nearby = []
    for loc in rows:
        distance = haversine_km(latitude, longitude, loc.latitude, loc.longitude)
        if distance <= radius_km:
            nearby.append((distance, loc))
    nearby.sort(key=lambda pair: pair[0])
    return SafeLocationListOut(locations=[_to_out(loc, distance) for distance, loc in nearby])


@router.get("/{location_id}", response_model=SafeLocationOut)
def get_location(location_id: UUID, _: User = Depends(get_current_user), db: Session = Depends(get_db)):
    location = db.get(SafeLocation, location_id)
    if location is None:
        raise NotFoundError("Safe location", location_id)
    return _to_out(location)
