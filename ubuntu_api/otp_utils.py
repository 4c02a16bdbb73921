from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from ubuntu_shared import otp as shared_otp
from ubuntu_shared.otp import OTPConfig, OTPError, OtpIssuer, OtpNotifier, OtpStore, OtpVerifier
from ubuntu_shared.sms_provider import provider_from_env

from .metrics import OTP_REQUESTS, OTP_VERIFICATIONS

logger = logging.getLogger("ubuntu.otp")


@dataclass
class OtpService:
    config: OTPConfig
    store: OtpStore
    issuer: OtpIssuer
    verifier: OtpVerifier

    def issue(self, phone: str) -> str:
        try:
            code = self.issuer.generate(phone)
        except OTPError as exc:
            OTP_REQUESTS.labels(exc.kind.value).inc()
            raise
        OTP_REQUESTS.labels("sent").inc()
        return code

    def verify(self, phone: str, code: str) -> None:
        try:
            self.verifier.verify(phone, code)
        except OTPError as exc:
            OTP_VERIFICATIONS.labels(exc.kind.value).inc()
            raise
        OTP_VERIFICATIONS.labels("success").inc()

    def sweep(self) -> int:
        return shared_otp.sweep_expired(self.store)


def build_otp_service(
    *,
    config: Optional[OTPConfig] = None,
    notifier: Optional[OtpNotifier] = None,
    clock=time.time,
) -> OtpService:
    cfg = config or shared_otp.from_env()
    store = OtpStore(clock=clock)
    provider = notifier if notifier is not None else provider_from_env()
    logger.info("OTP service ready: ttl=%ss max_attempts=%s notifier=%r", cfg.ttl_secs, cfg.max_attempts, provider)
    return OtpService(
        config=cfg,
        store=store,
        issuer=OtpIssuer(store, cfg, notifier=provider),
        verifier=OtpVerifier(store, cfg),
    )


def get_otp_service(request: Request) -> OtpService:
    return request.app.state.otp
