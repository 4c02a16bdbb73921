import threading

import pytest

from ubuntu_shared import otp as otp_mod
from ubuntu_shared.otp import (
    OTPAttemptsExceededError,
    OTPConfig,
    OtpFailure,
    OTPDeliveryError,
    OTPExpiredError,
    OTPInvalidCodeError,
    OTPNotFoundError,
    OtpEntry,
    OtpIssuer,
    OtpStore,
    OtpVerifier,
    sweep_expired,
)

PHONE = "+27821234567"


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    def send_code(self, phone, code):
        if self.fail:
            raise RuntimeError("gateway down")
        self.sent.append((phone, code))


def _otp(clock, notifier=None, **cfg):
    config = OTPConfig(**cfg)
    store = OtpStore(clock=clock)
    return store, OtpIssuer(store, config, notifier=notifier), OtpVerifier(store, config)


def test_generated_codes_are_six_digits():
    for _ in range(200):
        code = otp_mod.generate_otp_code()
        assert len(code) == 6 and code.isdigit()
        assert 100000 <= int(code) <= 999999


def test_issue_sends_code_and_stores_entry(clock):
    notifier = RecordingNotifier()
    store, issuer, _ = _otp(clock, notifier)
    code = issuer.generate(PHONE)
    assert notifier.sent == [(PHONE, code)]
    entry = store.get(PHONE)
    assert entry.code == code
    assert entry.attempts == 0
    assert entry.expires_at == clock.now + 300


def test_correct_code_succeeds_once(clock):
    _, issuer, verifier = _otp(clock)
    code = issuer.generate(PHONE)
    verifier.verify(PHONE, code)
    with pytest.raises(OTPNotFoundError):
        verifier.verify(PHONE, code)


def test_reissue_invalidates_previous_code(clock, monkeypatch):
    codes = iter(["111111", "222222"])
    monkeypatch.setattr(otp_mod, "generate_otp_code", lambda: next(codes))
    _, issuer, verifier = _otp(clock)
    issuer.generate(PHONE)
    issuer.generate(PHONE)
    with pytest.raises(OTPInvalidCodeError):
        verifier.verify(PHONE, "111111")
    verifier.verify(PHONE, "222222")


def test_reissue_resets_attempts(clock, monkeypatch):
    monkeypatch.setattr(otp_mod, "generate_otp_code", lambda: "123456")
    store, issuer, verifier = _otp(clock)
    issuer.generate(PHONE)
    with pytest.raises(OTPInvalidCodeError):
        verifier.verify(PHONE, "000000")
    issuer.generate(PHONE)
    assert store.get(PHONE).attempts == 0


def test_wrong_codes_count_down_then_lock_out(clock, monkeypatch):
    monkeypatch.setattr(otp_mod, "generate_otp_code", lambda: "123456")
    store, issuer, verifier = _otp(clock)
    issuer.generate(PHONE)
    remaining = []
    for _ in range(3):
        with pytest.raises(OTPInvalidCodeError) as exc:
            verifier.verify(PHONE, "000000")
        remaining.append(exc.value.attempts_remaining)
    assert remaining == [2, 1, 0]
    # Fourth attempt is refused even with the right code, and the entry is gone.
    with pytest.raises(OTPAttemptsExceededError):
        verifier.verify(PHONE, "123456")
    assert store.get(PHONE) is None
    with pytest.raises(OTPNotFoundError):
        verifier.verify(PHONE, "123456")


def test_expired_code_is_rejected_even_if_correct(clock):
    store, issuer, verifier = _otp(clock, ttl_secs=300)
    code = issuer.generate(PHONE)
    clock.advance(301)
    with pytest.raises(OTPExpiredError):
        verifier.verify(PHONE, code)
    assert store.get(PHONE) is None


def test_code_is_valid_exactly_at_expiry(clock):
    _, issuer, verifier = _otp(clock, ttl_secs=300)
    code = issuer.generate(PHONE)
    clock.advance(300)
    verifier.verify(PHONE, code)


def test_unknown_phone_is_not_found(clock):
    _, _, verifier = _otp(clock)
    with pytest.raises(OTPNotFoundError):
        verifier.verify(PHONE, "123456")


def test_delivery_failure_removes_entry(clock):
    store, issuer, _ = _otp(clock, RecordingNotifier(fail=True))
    with pytest.raises(OTPDeliveryError) as exc:
        issuer.generate(PHONE)
    assert isinstance(exc.value.__cause__, RuntimeError)
    assert store.get(PHONE) is None


def test_conditional_delete_keeps_newer_code(clock):
    store = OtpStore(clock=clock)
    store.put(PHONE, OtpEntry(code="222222", expires_at=clock.now + 60))
    store.delete(PHONE, code="111111")
    assert store.get(PHONE).code == "222222"
    store.delete(PHONE)
    assert store.get(PHONE) is None


def test_store_returns_copies(clock):
    store = OtpStore(clock=clock)
    store.put(PHONE, OtpEntry(code="123456", expires_at=clock.now + 60))
    entry = store.get(PHONE)
    entry.attempts = 99
    assert store.get(PHONE).attempts == 0
    assert store.check(PHONE, "000000", clock.now, 3) == (OtpFailure.INVALID_CODE, 1)
    assert store.check("+27820000000", "000000", clock.now, 3) == (OtpFailure.NOT_FOUND, 0)


def test_sweep_purges_only_expired(clock):
    store = OtpStore(clock=clock)
    store.put(PHONE, OtpEntry(code="123456", expires_at=clock.now + 10))
    store.put("+27820000000", OtpEntry(code="654321", expires_at=clock.now + 500))
    clock.advance(60)
    assert sweep_expired(store) == 1
    assert len(store) == 1
    assert store.get("+27820000000") is not None


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("OTP_TTL_SECS", "120")
    monkeypatch.setenv("OTP_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("OTP_SWEEP_INTERVAL_SECS", "0")
    cfg = otp_mod.from_env()
    assert (cfg.ttl_secs, cfg.max_attempts, cfg.sweep_interval_secs) == (120, 5, 0)


class BarrierClock:
    """Clock that, once armed, holds every caller until all have arrived."""

    def __init__(self, parties: int, start: float = 1_000_000.0):
        self.now = start
        self.barrier = threading.Barrier(parties, timeout=5)
        self.armed = False

    def __call__(self) -> float:
        if self.armed:
            self.barrier.wait()
        return self.now


def test_concurrent_wrong_guesses_respect_attempt_limit(monkeypatch):
    monkeypatch.setattr(otp_mod, "generate_otp_code", lambda: "123456")
    threads_count = 8
    clock = BarrierClock(threads_count)
    store, issuer, verifier = _otp(clock, max_attempts=3)
    issuer.generate(PHONE)
    clock.armed = True

    results = []
    lock = threading.Lock()

    def guess(i):
        try:
            verifier.verify(PHONE, f"{900000 + i}")
            outcome = "ok"
        except OTPInvalidCodeError:
            outcome = "invalid"
        except OTPAttemptsExceededError:
            outcome = "locked"
        except OTPNotFoundError:
            outcome = "gone"
        with lock:
            results.append(outcome)

    workers = [threading.Thread(target=guess, args=(i,)) for i in range(threads_count)]
    for w in workers:
        w.start()
    for w in workers:
        w.join(timeout=10)

    assert len(results) == threads_count
    # Only three guesses are ever compared; the first one past the limit clears the entry.
    assert results.count("invalid") == 3
    assert results.count("locked") == 1
    assert results.count("gone") == threads_count - 4
    assert store.get(PHONE) is None
