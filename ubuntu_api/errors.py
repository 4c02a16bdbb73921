import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ubuntu_shared import OTPError, OtpFailure, OTPInvalidCodeError

logger = logging.getLogger("ubuntu.errors")


class AppError(Exception):
    code = "INTERNAL_SERVER_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.details = details


class InputValidationError(AppError):
    code = "VALIDATION_ERROR"
    status_code = 400


class AuthenticationError(AppError):
    code = "AUTHENTICATION_ERROR"
    status_code = 401

    def __init__(self, message: str = "Authentication failed", **kwargs):
        super().__init__(message, **kwargs)


class AuthorizationError(AppError):
    code = "AUTHORIZATION_ERROR"
    status_code = 403

    def __init__(self, message: str = "Access denied", **kwargs):
        super().__init__(message, **kwargs)


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} with ID {resource_id} not found" if resource_id else f"{resource} not found"
        super().__init__(message)


class ConflictError(AppError):
    code = "CONFLICT_ERROR"
    status_code = 409


# OTP failure kind -> (HTTP status, error code)
OTP_ERROR_STATUS = {
    OtpFailure.NOT_FOUND: (400, "OTP_NOT_FOUND"),
    OtpFailure.EXPIRED: (400, "OTP_EXPIRED"),
    OtpFailure.TOO_MANY_ATTEMPTS: (429, "OTP_TOO_MANY_ATTEMPTS"),
    OtpFailure.INVALID_CODE: (400, "OTP_INVALID"),
    OtpFailure.DELIVERY_FAILURE: (503, "OTP_DELIVERY_FAILED"),
}


def error_body(code: str, message: str, details: Any = None) -> dict:
    body: Dict[str, Any] = {
        "code": code,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if details:
        body["details"] = jsonable_encoder(details)
    return {"error": body}


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.code, exc.message, exc.details))


async def otp_error_handler(request: Request, exc: OTPError) -> JSONResponse:
    status_code, code = OTP_ERROR_STATUS[exc.kind]
    details = None
    if isinstance(exc, OTPInvalidCodeError):
        details = {"attempts_remaining": exc.attempts_remaining}
    headers = {"Retry-After": "30"} if exc.kind is OtpFailure.DELIVERY_FAILURE else None
    return JSONResponse(status_code=status_code, content=error_body(code, exc.message, details), headers=headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [
        {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=error_body("VALIDATION_ERROR", "Request validation failed", {"fields": fields}),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict):
        code = str(detail.get("code") or "HTTP_ERROR")
        message = str(detail.get("message") or code)
        details = {k: v for k, v in detail.items() if k not in ("code", "message")}
    else:
        code = "HTTP_ERROR"
        message = str(detail)
        details = None
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(code, message, details),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content=error_body("INTERNAL_SERVER_ERROR", "An unexpected error occurred"))
