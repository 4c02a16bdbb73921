import datetime as dt
import logging
import uuid
from typing import Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from ubuntu_shared import InvalidPhoneError, mask_phone, normalize_sa_phone

from .config import settings
from .database import SessionLocal
from .errors import AuthenticationError, AuthorizationError, InputValidationError
from .models import User
from .otp_utils import OtpService
from .schemas import AuthOut, OtpRequestOut, UserOut
from .utils.audit import record_event

logger = logging.getLogger("ubuntu.auth")

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(user: User, device_id: str) -> str:
    now = dt.datetime.now(dt.timezone.utc)
    payload = {
        "sub": str(user.id),
        "phone": user.phone,
        "tier": int(user.tier),
        "device_id": device_id,
        "iat": int(now.timestamp()),
        "exp": int((now + settings.jwt_expires_delta).timestamp()),
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def decode_access_token(token: str) -> dict:
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=["HS256"],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
            leeway=settings.JWT_CLOCK_SKEW_SECS,
            options={"require": ["exp", "iat", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired", code="TOKEN_EXPIRED")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token", code="INVALID_TOKEN")


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    if creds is None or not creds.credentials:
        raise AuthenticationError("Missing bearer token")
    payload = decode_access_token(creds.credentials)
    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise AuthenticationError("Invalid token payload", code="INVALID_TOKEN")
    user = db.get(User, user_id)
    if user is None:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthorizationError("User account is inactive", code="ACCOUNT_INACTIVE")
    return user


def find_user_by_phone(db: Session, phone: str) -> Optional[User]:
    return db.query(User).filter(User.phone == phone).one_or_none()


def create_user(db: Session, phone: str, **defaults) -> User:
    defaults.setdefault("display_name", f"User {phone[-4:]}")
    defaults.setdefault("tier", settings.DEFAULT_USER_TIER)
    user = User(phone=phone, **defaults)
    db.add(user)
    db.flush()
    return user


def _normalize(phone: str) -> str:
    try:
        return normalize_sa_phone(phone)
    except InvalidPhoneError as exc:
        raise InputValidationError("Invalid South African phone number", details={"field": "phone", "reason": str(exc)})


class AuthOrchestrator:
    """Phone-number login: OTP issuance, verification and session tokens."""

    def __init__(self, db: Session, otp: OtpService, request: Optional[Request] = None):
        self.db = db
        self.otp = otp
        self.request = request

    def _canonical(self, phone: str) -> str:
        canonical = _normalize(phone)
        if self.request is not None:
            self.request.state.phone = mask_phone(canonical)
        return canonical

    def request_otp(self, phone: str) -> OtpRequestOut:
        canonical = self._canonical(phone)
        self.otp.issue(canonical)
        record_event(
            self.db,
            "auth.otp_requested",
            None,
            details={"phone": mask_phone(canonical)},
            request=self.request,
        )
        return OtpRequestOut(
            message="OTP sent to phone number",
            phone=mask_phone(canonical),
            expires_in=self.otp.config.ttl_secs,
        )

    def verify_otp(self, phone: str, code: str, device_id: str) -> AuthOut:
        canonical = self._canonical(phone)
        self.otp.verify(canonical, code)
        user = find_user_by_phone(self.db, canonical)
        if user is None:
            user = create_user(self.db, canonical)
            record_event(self.db, "user.created", user.id, resource="user", resource_id=user.id, request=self.request)
            logger.info("Created user %s for %s", user.id, mask_phone(canonical))
        if not user.is_active:
            raise AuthorizationError("User account is inactive", code="ACCOUNT_INACTIVE")
        user.last_login_at = dt.datetime.utcnow()
        self.db.flush()
        token = create_access_token(user, device_id)
        record_event(
            self.db,
            "auth.login",
            user.id,
            details={"device_id": device_id},
            request=self.request,
        )
        return AuthOut(
            access_token=token,
            expires_in=int(settings.jwt_expires_delta.total_seconds()),
            user=UserOut.model_validate(user),
        )
