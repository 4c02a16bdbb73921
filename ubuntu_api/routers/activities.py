from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..auth import get_current_user, get_db
from ..errors import AuthorizationError, ConflictError, InputValidationError, NotFoundError
from ..models import Activity, ActivityStatus, SafeLocation, User
from ..schemas import ActivityCancelIn, ActivityCreateIn, ActivityListOut, ActivityOut, CoordinatesIn
from ..utils.audit import record_event


router = APIRouter(prefix="/activities", tags=["activities"])


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _get_activity(db: Session, activity_id: UUID) -> Activity:
    activity = db.get(Activity, activity_id)
    if activity is None:
        raise NotFoundError("Activity", activity_id)
    return activity


def _participant_activity(db: Session, activity_id: UUID, user: User) -> Activity:
    activity = _get_activity(db, activity_id)
    if not activity.is_participant(user.id):
        raise AuthorizationError("Only activity participants can do this")
    return activity


@router.post("", response_model=ActivityOut, status_code=status.HTTP_201_CREATED)
def create_activity(
    payload: ActivityCreateIn,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    helper = db.get(User, payload.helper_id)
    if helper is None or not helper.is_active:
        raise NotFoundError("Helper", payload.helper_id)
    if helper.id == user.id:
        raise InputValidationError("Cannot request an activity with yourself as helper")
    start = _naive_utc(payload.scheduled_start)
    end = _naive_utc(payload.scheduled_end)
    if end <= start:
        raise InputValidationError("scheduled_end must be after scheduled_start")
    if payload.location_id is not None:
        location = db.get(SafeLocation, payload.location_id)
        if location is None or not location.is_active:
            raise NotFoundError("Safe location", payload.location_id)
        location.add_usage()
    activity = Activity(
        helper_id=helper.id,
        requester_id=user.id,
        activity_type=payload.activity_type,
        description=payload.description,
        scheduled_start=start,
        scheduled_end=end,
        location_id=payload.location_id,
        status=ActivityStatus.PENDING_APPROVAL.value,
    )
    db.add(activity)
    db.flush()
    record_event(db, "activity.created", user.id, resource="activity", resource_id=activity.id,
                 details={"helper_id": str(helper.id)}, request=request)
    return activity


@router.get("", response_model=ActivityListOut)
def my_activities(
    status_filter: Optional[ActivityStatus] = Query(None, alias="status"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    q = db.query(Activity).filter(or_(Activity.helper_id == user.id, Activity.requester_id == user.id))
    if status_filter is not None:
        q = q.filter(Activity.status == status_filter.value)
    rows = q.order_by(Activity.scheduled_start.desc()).all()
    return ActivityListOut(activities=[ActivityOut.model_validate(a) for a in rows])


@router.get("/{activity_id}", response_model=ActivityOut)
def get_activity(activity_id: UUID, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    activity = _get_activity(db, activity_id)
    if not activity.is_participant(user.id) and not user.is_guardian():
        raise AuthorizationError("Not allowed to view this activity")
    return activity


@router.post("/{activity_id}/approve", response_model=ActivityOut)
def approve_activity(
    activity_id: UUID,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not user.is_guardian():
        raise AuthorizationError("Only Community Guardians can approve activities")
    activity = _get_activity(db, activity_id)
    if not activity.is_pending():
        raise ConflictError(f"Activity is {activity.status}, not pending approval")
    activity.guardian_approval_id = user.id
    activity.status = ActivityStatus.APPROVED.value
    db.flush()
    record_event(db, "activity.approved", user.id, resource="activity", resource_id=activity.id, request=request)
    return activity


@router.post("/{activity_id}/start", response_model=ActivityOut)
def start_activity(
    activity_id: UUID,
    payload: CoordinatesIn,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    activity = _participant_activity(db, activity_id, user)
    if not activity.can_start():
        raise ConflictError(f"Activity is {activity.status}, must be approved to start")
    activity.status = ActivityStatus.ACTIVE.value
    activity.actual_start_time = datetime.utcnow()
    activity.start_latitude = payload.latitude
    activity.start_longitude = payload.longitude
    db.flush()
    record_event(db, "activity.started", user.id, resource="activity", resource_id=activity.id,
                 details={"latitude": payload.latitude, "longitude": payload.longitude}, request=request)
    return activity


@router.post("/{activity_id}/end", response_model=ActivityOut)
def end_activity(
    activity_id: UUID,
    payload: CoordinatesIn,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    activity = _participant_activity(db, activity_id, user)
    if not activity.can_end():
        raise ConflictError(f"Activity is {activity.status}, must be active to end")
    ended = datetime.utcnow()
    activity.status = ActivityStatus.COMPLETED.value
    activity.actual_end_time = ended
    activity.end_latitude = payload.latitude
    activity.end_longitude = payload.longitude
    if activity.actual_start_time is not None:
        activity.duration_minutes = int((ended - activity.actual_start_time).total_seconds() // 60)
    db.flush()
    record_event(db, "activity.completed", user.id, resource="activity", resource_id=activity.id,
                 details={"duration_minutes": activity.duration_minutes}, request=request)
    return activity


@router.post("/{activity_id}/cancel", response_model=ActivityOut)
def cancel_activity(
    activity_id: UUID,
    payload: ActivityCancelIn,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    activity = _participant_activity(db, activity_id, user)
    if not activity.can_cancel():
        raise ConflictError(f"Activity is {activity.status} and can no longer be cancelled")
    activity.status = ActivityStatus.CANCELLED.value
    activity.cancel_reason = payload.reason
    db.flush()
    record_event(db, "activity.cancelled", user.id, resource="activity", resource_id=activity.id,
                 details={"reason": payload.reason}, request=request)
    return activity


@router.post("/{activity_id}/panic", response_model=ActivityOut)
def panic(
    activity_id: UUID,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    activity = _participant_activity(db, activity_id, user)
    if activity.status != ActivityStatus.ACTIVE.value:
        raise ConflictError("Panic is only available during an active activity")
    activity.panic_button_pressed = True
    activity.panic_triggered_at = datetime.utcnow()
    db.flush()
    record_event(
        db,
        "activity.panic",
        user.id,
        resource="activity",
        resource_id=activity.id,
        details={"helper_id": str(activity.helper_id), "requester_id": str(activity.requester_id)},
        level="critical",
        request=request,
        flag_reason="Panic button pressed",
    )
    return activity
