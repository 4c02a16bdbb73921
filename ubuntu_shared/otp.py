import dataclasses
import logging
import os
import secrets
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Protocol, Tuple

from .env_loader import ensure_loaded as _ensure_env_loaded
from .phone_utils import mask_phone

logger = logging.getLogger("ubuntu.otp")

Clock = Callable[[], float]

OTP_MIN = 100000
OTP_MAX = 999999


class OtpFailure(str, Enum):
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    INVALID_CODE = "invalid_code"
    DELIVERY_FAILURE = "delivery_failure"


class OTPError(Exception):
    """Base exception for OTP operations."""

    kind: OtpFailure = OtpFailure.INVALID_CODE
    default_message = "OTP verification failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class OTPNotFoundError(OTPError):
    kind = OtpFailure.NOT_FOUND
    default_message = "No pending OTP for this phone number"


class OTPExpiredError(OTPError):
    kind = OtpFailure.EXPIRED
    default_message = "OTP has expired, request a new one"


class OTPAttemptsExceededError(OTPError):
    kind = OtpFailure.TOO_MANY_ATTEMPTS
    default_message = "Too many failed attempts, request a new OTP"


class OTPInvalidCodeError(OTPError):
    kind = OtpFailure.INVALID_CODE
    default_message = "Invalid OTP"

    def __init__(self, message: Optional[str] = None, attempts_remaining: int = 0):
        super().__init__(message)
        self.attempts_remaining = attempts_remaining


class OTPDeliveryError(OTPError):
    kind = OtpFailure.DELIVERY_FAILURE
    default_message = "Could not deliver the verification code, please try again"


_FAILURE_ERRORS = {
    OtpFailure.NOT_FOUND: OTPNotFoundError,
    OtpFailure.EXPIRED: OTPExpiredError,
    OtpFailure.TOO_MANY_ATTEMPTS: OTPAttemptsExceededError,
}


@dataclass
class OTPConfig:
    ttl_secs: int = 300
    max_attempts: int = 3
    sweep_interval_secs: int = 60


def from_env(prefix: str = "") -> OTPConfig:
    _ensure_env_loaded()
    p = f"{prefix}_" if prefix else ""
    return OTPConfig(
        ttl_secs=int(os.getenv(f"{p}OTP_TTL_SECS", "300")),
        max_attempts=int(os.getenv(f"{p}OTP_MAX_ATTEMPTS", "3")),
        sweep_interval_secs=int(os.getenv(f"{p}OTP_SWEEP_INTERVAL_SECS", "60")),
    )


def generate_otp_code() -> str:
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))


@dataclass
class OtpEntry:
    code: str
    expires_at: float
    attempts: int = 0

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class OtpStore:
    """In-memory pending codes, at most one per phone number.

    Not persisted: pending codes are lost on restart and must be re-requested.
    """

    def __init__(self, clock: Clock = time.time):
        self.clock = clock
        self._entries: Dict[str, OtpEntry] = {}
        self._lock = threading.Lock()

    def put(self, phone: str, entry: OtpEntry) -> None:
        with self._lock:
            self._entries[phone] = dataclasses.replace(entry)

    def get(self, phone: str) -> Optional[OtpEntry]:
        with self._lock:
            entry = self._entries.get(phone)
            return dataclasses.replace(entry) if entry is not None else None

    def delete(self, phone: str, *, code: Optional[str] = None) -> None:
        with self._lock:
            entry = self._entries.get(phone)
            if entry is None:
                return
            if code is not None and entry.code != code:
                return
            del self._entries[phone]

    def check(self, phone: str, submitted_code: str, now: float, max_attempts: int) -> Tuple[Optional[OtpFailure], int]:
        """Match ``submitted_code`` against the pending entry in one locked step.

        Returns ``(failure, attempts)``; ``failure`` is ``None`` when the code
        matched and the entry was consumed.
        """
        with self._lock:
            entry = self._entries.get(phone)
            if entry is None:
                return OtpFailure.NOT_FOUND, 0
            if entry.is_expired(now):
                del self._entries[phone]
                return OtpFailure.EXPIRED, entry.attempts
            if entry.attempts >= max_attempts:
                del self._entries[phone]
                return OtpFailure.TOO_MANY_ATTEMPTS, entry.attempts
            if not secrets.compare_digest(submitted_code.encode(), entry.code.encode()):
                entry.attempts += 1
                return OtpFailure.INVALID_CODE, entry.attempts
            del self._entries[phone]
            return None, entry.attempts

    def purge_expired(self, now: Optional[float] = None) -> int:
        now = self.clock() if now is None else now
        with self._lock:
            expired = [phone for phone, entry in self._entries.items() if entry.is_expired(now)]
            for phone in expired:
                del self._entries[phone]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class OtpNotifier(Protocol):
    def send_code(self, phone: str, code: str) -> None:  # pragma: no cover - interface
        ...


class OtpIssuer:
    def __init__(self, store: OtpStore, config: OTPConfig, notifier: Optional[OtpNotifier] = None):
        self.store = store
        self.config = config
        self.notifier = notifier

    def generate(self, phone: str) -> str:
        code = generate_otp_code()
        expires_at = self.store.clock() + self.config.ttl_secs
        self.store.put(phone, OtpEntry(code=code, expires_at=expires_at))
        if self.notifier is not None:
            try:
                self.notifier.send_code(phone, code)
            except Exception as exc:
                # Only drop our own code; a concurrent re-issue may already have replaced it.
                self.store.delete(phone, code=code)
                logger.warning("OTP delivery failed for %s: %s", mask_phone(phone), exc)
                raise OTPDeliveryError() from exc
        logger.debug("OTP issued for %s, expires in %ss", mask_phone(phone), self.config.ttl_secs)
        return code


class OtpVerifier:
    def __init__(self, store: OtpStore, config: OTPConfig):
        self.store = store
        self.config = config

    def verify(self, phone: str, submitted_code: str) -> None:
        """Check ``submitted_code`` for ``phone``; raises an ``OTPError`` on failure.

        Expiry is checked on access, so correctness never depends on the sweeper.
        A successful check consumes the code.
        """
        failure, attempts = self.store.check(
            phone, (submitted_code or "").strip(), self.store.clock(), self.config.max_attempts
        )
        if failure is None:
            return
        if failure is OtpFailure.INVALID_CODE:
            raise OTPInvalidCodeError(attempts_remaining=max(self.config.max_attempts - attempts, 0))
        raise _FAILURE_ERRORS[failure]()


def sweep_expired(store: OtpStore) -> int:
    purged = store.purge_expired()
    if purged:
        logger.debug("Purged %s expired OTP entries", purged)
    return purged
