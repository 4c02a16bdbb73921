from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from ..auth import get_current_user, get_db
from ..errors import AuthorizationError, ConflictError, InputValidationError, NotFoundError
from ..models import User, Vouch, VouchStatus
from ..schemas import VouchCreateIn, VouchListOut, VouchOut
from ..utils.audit import record_event


router = APIRouter(prefix="/vouches", tags=["vouches"])


def _get_vouch(db: Session, vouch_id: UUID) -> Vouch:
    vouch = db.get(Vouch, vouch_id)
    if vouch is None:
        raise NotFoundError("Vouch", vouch_id)
    return vouch


@router.post("", response_model=VouchOut, status_code=status.HTTP_201_CREATED)
def create_vouch(
    payload: VouchCreateIn,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not user.can_vouch():
        raise AuthorizationError("Only Trusted Mentors and above can vouch for others")
    if payload.receiver_id == user.id:
        raise InputValidationError("Cannot vouch for yourself")
    receiver = db.get(User, payload.receiver_id)
    if receiver is None:
        raise NotFoundError("User", payload.receiver_id)
    existing = (
        db.query(Vouch)
        .filter(
            Vouch.giver_id == user.id,
            Vouch.receiver_id == receiver.id,
            Vouch.status.in_([VouchStatus.PENDING.value, VouchStatus.ACTIVE.value]),
        )
        .first()
    )
    if existing is not None:
        raise ConflictError("You already have a pending or active vouch for this user")
    vouch = Vouch(
        giver_id=user.id,
        receiver_id=receiver.id,
        relationship_type=payload.relationship_type.value,
        years_known=payload.years_known.value,
        trust_level=payload.trust_level.value,
        trust_with_child=payload.trust_with_child,
        note=payload.note,
        status=VouchStatus.PENDING.value,
    )
    db.add(vouch)
    db.flush()
    record_event(db, "vouch.created", user.id, resource="vouch", resource_id=vouch.id,
                 details={"receiver_id": str(receiver.id)}, request=request)
    return vouch


@router.post("/{vouch_id}/accept", response_model=VouchOut)
def accept_vouch(
    vouch_id: UUID,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    vouch = _get_vouch(db, vouch_id)
    if vouch.receiver_id != user.id:
        raise AuthorizationError("Only the receiver can accept a vouch")
    if vouch.status != VouchStatus.PENDING.value:
        raise ConflictError(f"Vouch is {vouch.status}, not pending")
    vouch.status = VouchStatus.ACTIVE.value
    vouch.accepted_at = datetime.utcnow()
    user.vouch_count = (user.vouch_count or 0) + 1
    db.flush()
    record_event(db, "vouch.accepted", user.id, resource="vouch", resource_id=vouch.id, request=request)
    return vouch


@router.post("/{vouch_id}/revoke", response_model=VouchOut)
def revoke_vouch(
    vouch_id: UUID,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    vouch = _get_vouch(db, vouch_id)
    if vouch.giver_id != user.id:
        raise AuthorizationError("Only the giver can revoke a vouch")
    if vouch.status == VouchStatus.REVOKED.value:
        raise ConflictError("Vouch already revoked")
    was_active = vouch.is_active()
    vouch.revoke(user.id)
    if was_active:
        receiver = db.get(User, vouch.receiver_id)
        if receiver is not None:
            receiver.vouch_count = max((receiver.vouch_count or 0) - 1, 0)
    db.flush()
    record_event(db, "vouch.revoked", user.id, resource="vouch", resource_id=vouch.id,
                 details={"was_active": was_active}, level="warning", request=request)
    return vouch


def _list(db: Session, column, user_id: UUID, status_filter: Optional[VouchStatus]) -> VouchListOut:
    q = db.query(Vouch).filter(column == user_id)
    if status_filter is not None:
        q = q.filter(Vouch.status == status_filter.value)
    rows = q.order_by(Vouch.created_at.desc()).all()
    return VouchListOut(vouches=[VouchOut.model_validate(v) for v in rows])


@router.get("/received", response_model=VouchListOut)
def received(
    status_filter: Optional[VouchStatus] = Query(None, alias="status"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _list(db, Vouch.receiver_id, user.id, status_filter)


@router.get("/given", response_model=VouchListOut)
def given(
    status_filter: Optional[VouchStatus] = Query(None, alias="status"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _list(db, Vouch.giver_id, user.id, status_filter)
