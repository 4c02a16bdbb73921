from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ..auth import AuthOrchestrator, get_db
from ..otp_utils import OtpService, get_otp_service
from ..schemas import AuthOut, OtpRequestOut, RequestOtpIn, VerifyOtpIn


router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/request-otp", response_model=OtpRequestOut)
def request_otp(
    payload: RequestOtpIn,
    request: Request,
    db: Session = Depends(get_db),
    otp: OtpService = Depends(get_otp_service),
):
    return AuthOrchestrator(db, otp, request).request_otp(payload.phone)


@router.post("/verify-otp", response_model=AuthOut)
def verify_otp(
    payload: VerifyOtpIn,
    request: Request,
    db: Session = Depends(get_db),
    otp: OtpService = Depends(get_otp_service),
):
    return AuthOrchestrator(db, otp, request).verify_otp(payload.phone, payload.otp, payload.device_id)
