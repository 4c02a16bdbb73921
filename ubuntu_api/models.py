import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Column,
    String,
    Integer,
    Float,
    DateTime,
    Boolean,
    ForeignKey,
    Index,
    JSON,
    Text,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship


Base = declarative_base()


def default_uuid() -> uuid.UUID:
    return uuid.uuid4()


class UserTier(enum.IntEnum):
    BASIC = 1
    VERIFIED_HELPER = 2
    TRUSTED_MENTOR = 3
    COMMUNITY_GUARDIAN = 4


_TIER_COLORS = {
    UserTier.BASIC: "green",
    UserTier.VERIFIED_HELPER: "blue",
    UserTier.TRUSTED_MENTOR: "gold",
    UserTier.COMMUNITY_GUARDIAN: "purple",
}


class VouchStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    REVOKED = "revoked"


class RelationshipType(str, enum.Enum):
    FAMILY = "family"
    FRIEND = "friend"
    COMMUNITY = "community"
    WORK = "work"
    OTHER = "other"


class YearsKnown(str, enum.Enum):
    LESS_THAN_1 = "<1"
    ONE_TO_3 = "1-3"
    MORE_THAN_3 = "3+"


class TrustLevel(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ActivityStatus(str, enum.Enum):
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    SUSPENDED = "suspended"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("ix_users_phone_verification", "phone", "verification_status"),
        Index("ix_users_tier", "tier"),
    )

    id = Column(Uuid, primary_key=True, default=default_uuid)
    phone = Column(String(20), nullable=False, unique=True)
    display_name = Column(String(255), nullable=False)
    tier = Column(Integer, nullable=False, default=int(UserTier.BASIC))
    vouch_count = Column(Integer, nullable=False, default=0)
    safety_rating = Column(Float, nullable=False, default=0.0)
    verification_status = Column(String(50), nullable=False, default="pending")  # pending|verified|rejected|suspended
    is_active = Column(Boolean, nullable=False, default=True)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    vouches_given = relationship("Vouch", foreign_keys="Vouch.giver_id", back_populates="giver")
    vouches_received = relationship("Vouch", foreign_keys="Vouch.receiver_id", back_populates="receiver")

    def can_vouch(self) -> bool:
        return self.tier >= UserTier.TRUSTED_MENTOR

    def can_work_with_youth(self) -> bool:
        return self.tier >= UserTier.TRUSTED_MENTOR

    def is_guardian(self) -> bool:
        return self.tier >= UserTier.COMMUNITY_GUARDIAN

    def status_color(self) -> str:
        try:
            return _TIER_COLORS[UserTier(self.tier)]
        except ValueError:
            return "gray"


class Vouch(Base):
    __tablename__ = "vouches"
    __table_args__ = (
        Index("ix_vouches_giver_receiver_status", "giver_id", "receiver_id", "status"),
        Index("ix_vouches_receiver_status", "receiver_id", "status"),
    )

    id = Column(Uuid, primary_key=True, default=default_uuid)
    giver_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    receiver_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    relationship_type = Column(String(50), nullable=False)
    years_known = Column(String(10), nullable=False)
    trust_level = Column(String(50), nullable=False)
    trust_with_child = Column(Boolean, nullable=True)
    note = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=VouchStatus.PENDING.value)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    accepted_at = Column(DateTime, nullable=True)
    revoked_at = Column(DateTime, nullable=True)
    revoked_by = Column(Uuid, nullable=True)

    giver = relationship("User", foreign_keys=[giver_id], back_populates="vouches_given")
    receiver = relationship("User", foreign_keys=[receiver_id], back_populates="vouches_received")

    def is_active(self) -> bool:
        return self.status == VouchStatus.ACTIVE.value

    def revoke(self, user_id: uuid.UUID) -> None:
        self.status = VouchStatus.REVOKED.value
        self.revoked_at = datetime.utcnow()
        self.revoked_by = user_id


class SafeLocation(Base):
    __tablename__ = "safe_locations"
    __table_args__ = (Index("ix_safe_locations_verified_by", "verified_by", "verification_date"),)

    id = Column(Uuid, primary_key=True, default=default_uuid)
    location_name = Column(String(255), nullable=False)
    address = Column(Text, nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    verified_by = Column(Uuid, ForeignKey("users.id"), nullable=False)
    verification_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    description = Column(Text, nullable=True)
    safety_features = Column(JSON, nullable=True)
    opening_hours = Column(String(5), nullable=True)  # HH:MM
    closing_hours = Column(String(5), nullable=True)  # HH:MM
    is_active = Column(Boolean, nullable=False, default=True)
    usage_count = Column(Integer, nullable=False, default=0)
    safety_rating = Column(Float, nullable=False, default=5.0)

    verifier = relationship("User")

    def is_open(self, now: Optional[datetime] = None) -> bool:
        if not self.is_active:
            return False
        if not self.opening_hours or not self.closing_hours:
            return True
        now = now or datetime.now()
        open_h, open_m = (int(p) for p in self.opening_hours.split(":"))
        close_h, close_m = (int(p) for p in self.closing_hours.split(":"))
        now_minutes = now.hour * 60 + now.minute
        return open_h * 60 + open_m <= now_minutes <= close_h * 60 + close_m

    def add_usage(self) -> None:
        self.usage_count = (self.usage_count or 0) + 1


class Activity(Base):
    __tablename__ = "activities"
    __table_args__ = (
        Index("ix_activities_helper_status_start", "helper_id", "status", "scheduled_start"),
        Index("ix_activities_requester_status", "requester_id", "status"),
        Index("ix_activities_status_start", "status", "scheduled_start"),
    )

    id = Column(Uuid, primary_key=True, default=default_uuid)
    helper_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    requester_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    activity_type = Column(String(255), nullable=False)
    description = Column(String(255), nullable=False)
    scheduled_start = Column(DateTime, nullable=False)
    scheduled_end = Column(DateTime, nullable=False)
    location_id = Column(Uuid, ForeignKey("safe_locations.id"), nullable=True)
    guardian_approval_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    status = Column(String(50), nullable=False, default=ActivityStatus.PENDING_APPROVAL.value)
    start_latitude = Column(Float, nullable=True)
    start_longitude = Column(Float, nullable=True)
    end_latitude = Column(Float, nullable=True)
    end_longitude = Column(Float, nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    actual_start_time = Column(DateTime, nullable=True)
    actual_end_time = Column(DateTime, nullable=True)
    cancel_reason = Column(Text, nullable=True)
    panic_button_pressed = Column(Boolean, nullable=False, default=False)
    panic_triggered_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    helper = relationship("User", foreign_keys=[helper_id])
    requester = relationship("User", foreign_keys=[requester_id])
    location = relationship("SafeLocation")

    def is_participant(self, user_id: uuid.UUID) -> bool:
        return user_id in (self.helper_id, self.requester_id)

    def is_pending(self) -> bool:
        return self.status == ActivityStatus.PENDING_APPROVAL.value

    def can_start(self) -> bool:
        return self.status == ActivityStatus.APPROVED.value

    def can_end(self) -> bool:
        return self.status == ActivityStatus.ACTIVE.value

    def can_cancel(self) -> bool:
        return self.status in (ActivityStatus.PENDING_APPROVAL.value, ActivityStatus.APPROVED.value)

    def duration_hours(self) -> float:
        if not self.actual_start_time or not self.actual_end_time:
            return 0.0
        return (self.actual_end_time - self.actual_start_time).total_seconds() / 3600


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_user_action_created", "user_id", "action", "created_at"),
        Index("ix_audit_action_created", "action", "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=default_uuid)
    user_id = Column(Uuid, nullable=True)
    action = Column(String(100), nullable=False)
    resource = Column(String(255), nullable=True)
    resource_id = Column(Uuid, nullable=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(255), nullable=True)
    level = Column(String(50), nullable=False, default="info")  # info|warning|error|critical
    flagged = Column(Boolean, nullable=False, default=False)
    flag_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def set_flagged(self, reason: str) -> None:
        self.flagged = True
        self.flag_reason = reason
