from __future__ import annotations

import re
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import ActivityStatus, RelationshipType, TrustLevel, VouchStatus, YearsKnown

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class RequestOtpIn(BaseModel):
    phone: str = Field(min_length=1, max_length=32)


class OtpRequestOut(BaseModel):
    success: bool = True
    message: str
    phone: str
    expires_in: int


class VerifyOtpIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone: str = Field(min_length=1, max_length=32)
    otp: str = Field(pattern=r"^\d{6}$", description="6-digit code")
    device_id: str = Field(alias="deviceId", min_length=1, max_length=255)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    phone: str
    display_name: str
    tier: int
    vouch_count: int = 0
    safety_rating: float = 0.0
    verification_status: str = "pending"
    created_at: Optional[datetime] = None


class AuthOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserOut


class UpdateProfileIn(BaseModel):
    display_name: str = Field(min_length=1, max_length=255)

    @field_validator("display_name")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("display_name must not be blank")
        return v


class PaginationOut(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class UserListOut(BaseModel):
    items: List[UserOut]
    pagination: PaginationOut


class VouchCreateIn(BaseModel):
    receiver_id: UUID
    relationship_type: RelationshipType
    years_known: YearsKnown
    trust_level: TrustLevel
    trust_with_child: Optional[bool] = None
    note: Optional[str] = Field(default=None, max_length=2000)


class VouchOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    giver_id: UUID
    receiver_id: UUID
    relationship_type: str
    years_known: str
    trust_level: str
    trust_with_child: Optional[bool] = None
    note: Optional[str] = None
    status: VouchStatus
    created_at: datetime
    accepted_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None


class VouchListOut(BaseModel):
    vouches: List[VouchOut]


class CoordinatesIn(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class ActivityCreateIn(BaseModel):
    helper_id: UUID
    activity_type: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1, max_length=255)
    scheduled_start: datetime
    scheduled_end: datetime
    location_id: Optional[UUID] = None


class ActivityCancelIn(BaseModel):
    reason: str = Field(min_length=1, max_length=2000)


class ActivityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    helper_id: UUID
    requester_id: UUID
    activity_type: str
    description: str
    scheduled_start: datetime
    scheduled_end: datetime
    location_id: Optional[UUID] = None
    guardian_approval_id: Optional[UUID] = None
    status: ActivityStatus
    start_latitude: Optional[float] = None
    start_longitude: Optional[float] = None
    end_latitude: Optional[float] = None
    end_longitude: Optional[float] = None
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    cancel_reason: Optional[str] = None
    panic_button_pressed: bool = False
    panic_triggered_at: Optional[datetime] = None


class ActivityListOut(BaseModel):
    activities: List[ActivityOut]


class SafeLocationCreateIn(CoordinatesIn):
    location_name: str = Field(min_length=1, max_length=255)
    address: str = Field(min_length=1)
    description: Optional[str] = None
    safety_features: List[str] = Field(default_factory=list)
    opening_hours: Optional[str] = None
    closing_hours: Optional[str] = None

    @field_validator("opening_hours", "closing_hours")
    @classmethod
    def valid_hhmm(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not _HHMM.match(v):
            raise ValueError("must be HH:MM (24h)")
        return v


class SafeLocationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    location_name: str
    address: str
    latitude: float
    longitude: float
    verified_by: UUID
    verification_date: datetime
    description: Optional[str] = None
    safety_features: List[str] = Field(default_factory=list)
    opening_hours: Optional[str] = None
    closing_hours: Optional[str] = None
    usage_count: int = 0
    safety_rating: float = 5.0
    is_open: bool = True
    distance_km: Optional[float] = None


class SafeLocationListOut(BaseModel):
    locations: List[SafeLocationOut]
