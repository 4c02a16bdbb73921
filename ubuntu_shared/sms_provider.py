from __future__ import annotations

import logging
import os
import re
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

import httpx

from .env import env_float, env_int
from .env_loader import ensure_loaded as _ensure_env_loaded
from .phone_utils import mask_phone

logger = logging.getLogger("ubuntu.sms")

DEFAULT_TEMPLATE = "Your Ubuntu Network verification code is: {code}. Valid for 5 minutes. Do not share this code."
TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class SmsDeliveryError(RuntimeError):
    """Raised when a backend could not hand the message to the carrier."""


class SmsBackend(Protocol):
    def send(self, phone: str, message: str) -> None:  # pragma: no cover - interface
        ...


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    backoff_secs: float = 0.5
    timeout_secs: float = 5.0


@dataclass
class LogBackend:
    def send(self, phone: str, message: str) -> None:
        logger.info("SMS log backend to=%s msg=%s", mask_phone(phone), _mask_code_in_message(message))


@dataclass
class HttpBackend:
    url: str
    auth_token: Optional[str] = None
    sender_name: Optional[str] = None
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    transport: Optional[httpx.BaseTransport] = None

    def send(self, phone: str, message: str) -> None:
        if not (self.url or "").strip():
            raise SmsDeliveryError("OTP_SMS_HTTP_URL must be configured for the http SMS provider")
        payload = {"to": phone, "message": message}
        if self.sender_name:
            payload["sender"] = self.sender_name
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        retry = self.retry
        with httpx.Client(timeout=retry.timeout_secs, transport=self.transport) as client:
            _send_with_retry(
                lambda: client.post(self.url, json=payload, headers=headers),
                backend_name="http",
                retry=retry,
            )


@dataclass
class TwilioBackend:
    """Twilio Programmable SMS over its REST API.

    Uses the account SID and auth token as HTTP basic credentials and sends from
    ``from_number`` (an E.164 Twilio number).
    """

    account_sid: str
    auth_token: str
    from_number: str
    api_base: str = TWILIO_API_BASE
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    transport: Optional[httpx.BaseTransport] = None

    def send(self, phone: str, message: str) -> None:
        if not (self.account_sid and self.auth_token and self.from_number):
            raise SmsDeliveryError("Twilio backend not fully configured")
        url = f"{self.api_base.rstrip('/')}/Accounts/{self.account_sid}/Messages.json"
        data = {"To": phone, "From": self.from_number, "Body": message}
        retry = self.retry
        with httpx.Client(
            timeout=retry.timeout_secs,
            transport=self.transport,
            auth=(self.account_sid, self.auth_token),
        ) as client:
            _send_with_retry(lambda: client.post(url, data=data), backend_name="twilio", retry=retry)


@dataclass
class SmsProvider:
    backend: SmsBackend
    template: str = DEFAULT_TEMPLATE
    fallback: Optional[SmsBackend] = None

    def build_message(self, code: str) -> str:
        try:
            return self.template.format(code=code)
        except (KeyError, IndexError, ValueError):
            return DEFAULT_TEMPLATE.format(code=code)

    def send_code(self, phone: str, code: str) -> None:
        message = self.build_message(code)
        try:
            self.backend.send(phone, message)
            logger.debug("OTP dispatched via %s to=%s code=%s", _name(self.backend), mask_phone(phone), _mask_code(code))
            return
        except Exception as exc:
            if self.fallback is None:
                logger.error("SMS backend %s failed for %s: %s", _name(self.backend), mask_phone(phone), exc)
                if isinstance(exc, SmsDeliveryError):
                    raise
                raise SmsDeliveryError(str(exc)) from exc
            logger.warning(
                "Primary SMS backend %s failed for %s (%s), trying %s",
                _name(self.backend),
                mask_phone(phone),
                exc,
                _name(self.fallback),
            )
        try:
            self.fallback.send(phone, message)
        except SmsDeliveryError:
            raise
        except Exception as exc:
            raise SmsDeliveryError(str(exc)) from exc

    def __repr__(self) -> str:  # pragma: no cover - helper for logging
        return f"SmsProvider({_name(self.backend)})"


def resolve_backend(provider: Optional[str] = None) -> SmsBackend:
    _ensure_env_loaded()
    name = (provider or os.getenv("OTP_SMS_PROVIDER", "log") or "log").strip().lower()
    retry = RetryPolicy(
        max_attempts=env_int("SMS_MAX_RETRIES", default=3),
        backoff_secs=env_float("SMS_BACKOFF_SECS", default=0.5),
        timeout_secs=env_float("SMS_TIMEOUT_SECS", default=5.0),
    )
    if name == "log":
        return LogBackend()
    if name == "http":
        return HttpBackend(
            url=os.getenv("OTP_SMS_HTTP_URL", ""),
            auth_token=os.getenv("OTP_SMS_HTTP_AUTH_TOKEN", "") or None,
            sender_name=os.getenv("OTP_SMS_SENDER_NAME", "") or None,
            retry=retry,
        )
    if name == "twilio":
        return TwilioBackend(
            account_sid=os.getenv("TWILIO_ACCOUNT_SID", ""),
            auth_token=os.getenv("TWILIO_AUTH_TOKEN", ""),
            from_number=os.getenv("TWILIO_PHONE_NUMBER", ""),
            retry=retry,
        )
    raise ValueError(f"Unsupported OTP_SMS_PROVIDER '{name}'")


def provider_from_env() -> SmsProvider:
    """Build the SMS provider described by the OTP_SMS_* environment variables."""
    _ensure_env_loaded()
    fallback_name = os.getenv("OTP_SMS_FALLBACK_PROVIDER", "").strip()
    return SmsProvider(
        backend=resolve_backend(),
        template=os.getenv("OTP_SMS_TEMPLATE", "") or DEFAULT_TEMPLATE,
        fallback=resolve_backend(fallback_name) if fallback_name else None,
    )


def _name(backend: object) -> str:
    return type(backend).__name__


def _mask_code(code: str) -> str:
    if not code:
        return ""
    digits = re.sub(r"\D", "", code)
    if len(digits) <= 2:
        return "*" * len(digits)
    return "*" * (len(digits) - 2) + digits[-2:]


def _mask_code_in_message(message: str) -> str:
    if not message:
        return ""
    return re.sub(r"(\d{2,})", lambda m: _mask_code(m.group(0)), message)


def _send_with_retry(
    callable_fn: Callable[[], httpx.Response],
    backend_name: str,
    retry: RetryPolicy,
) -> None:
    delay = retry.backoff_secs
    attempts = max(retry.max_attempts, 1)
    for attempt in range(1, attempts + 1):
        try:
            res = callable_fn()
            if res.status_code >= 400:
                raise SmsDeliveryError(f"{backend_name} SMS failed ({res.status_code}): {res.text}")
            return
        except (httpx.HTTPError, SmsDeliveryError) as exc:
            if attempt == attempts:
                if isinstance(exc, SmsDeliveryError):
                    raise
                raise SmsDeliveryError(f"{backend_name} SMS failed: {exc}") from exc
            logger.warning("%s SMS attempt %s failed: %s", backend_name, attempt, exc)
            if delay > 0:
                time.sleep(delay)
            delay *= 2
