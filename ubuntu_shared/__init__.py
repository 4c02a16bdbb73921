from .otp import (
    OTPConfig,
    OtpEntry,
    OtpFailure,
    OTPError,
    OTPNotFoundError,
    OTPExpiredError,
    OTPAttemptsExceededError,
    OTPInvalidCodeError,
    OTPDeliveryError,
    OtpStore,
    OtpIssuer,
    OtpVerifier,
    generate_otp_code,
    sweep_expired,
    from_env as otp_config_from_env,
)
from .sms_provider import SmsProvider, SmsDeliveryError, provider_from_env
from .rate_limit import SlidingWindowLimiter, RedisRateLimiter
from .env import env_bool, env_float, env_int, env_list
from .phone_utils import (
    InvalidPhoneError,
    normalize_sa_phone,
    mask_phone,
)
from .geo import haversine_km

__all__ = [
    "OTPConfig",
    "OtpEntry",
    "OtpFailure",
    "OTPError",
    "OTPNotFoundError",
    "OTPExpiredError",
    "OTPAttemptsExceededError",
    "OTPInvalidCodeError",
    "OTPDeliveryError",
    "OtpStore",
    "OtpIssuer",
    "OtpVerifier",
    "generate_otp_code",
    "sweep_expired",
    "otp_config_from_env",
    "SmsProvider",
    "SmsDeliveryError",
    "provider_from_env",
    "SlidingWindowLimiter",
    "RedisRateLimiter",
    "env_bool",
    "env_float",
    "env_int",
    "env_list",
    "InvalidPhoneError",
    "normalize_sa_phone",
    "mask_phone",
    "haversine_km",
]
