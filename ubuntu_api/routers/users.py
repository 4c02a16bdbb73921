from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ..auth import get_current_user, get_db
from ..config import settings
from ..errors import NotFoundError
from ..models import User
from ..schemas import PaginationOut, UpdateProfileIn, UserListOut, UserOut
from ..utils.audit import record_event


router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return user


@router.patch("/me", response_model=UserOut)
def update_me(
    payload: UpdateProfileIn,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    previous = user.display_name
    user.display_name = payload.display_name
    db.flush()
    record_event(
        db,
        "user.profile_updated",
        user.id,
        resource="user",
        resource_id=user.id,
        details={"display_name": {"from": previous, "to": user.display_name}},
        request=request,
    )
    return user


@router.get("", response_model=UserListOut)
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    q = db.query(User).filter(User.is_active.is_(True))
    total = q.count()
    rows = q.order_by(User.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return UserListOut(
        items=[UserOut.model_validate(u) for u in rows],
        pagination=PaginationOut(page=page, limit=limit, total=total, total_pages=(total + limit - 1) // limit),
    )


@router.get("/{user_id}", response_model=UserOut)
def get_user(user_id: UUID, _: User = Depends(get_current_user), db: Session = Depends(get_db)):
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user
