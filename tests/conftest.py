import os
import tempfile
import uuid

import pytest


# Ensure sensible defaults for tests before app import
_DB_DIR = tempfile.mkdtemp(prefix="ubuntu-tests-")
os.environ["ENV"] = "dev"
os.environ["DB_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["RATE_LIMIT_BACKEND"] = "memory"
os.environ["RATE_LIMIT_PER_MINUTE"] = "100000"
os.environ["OTP_SMS_PROVIDER"] = "log"
os.environ["OTP_SWEEP_INTERVAL_SECS"] = "0"
os.environ.pop("OTP_SMS_FALLBACK_PROVIDER", None)

from fastapi.testclient import TestClient  # noqa: E402

from ubuntu_api.database import SessionLocal, engine  # noqa: E402
from ubuntu_api.main import create_app  # noqa: E402
from ubuntu_api.models import Base, User  # noqa: E402

from .utils import TEST_CODE, unique_phone  # noqa: E402


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fixed_code(monkeypatch):
    monkeypatch.setattr("ubuntu_shared.otp.generate_otp_code", lambda: TEST_CODE)
    return TEST_CODE


@pytest.fixture
def client():
    return TestClient(create_app())


def set_tier(user_id, tier: int) -> None:
    db = SessionLocal()
    try:
        user = db.get(User, user_id)
        user.tier = tier
        db.commit()
    finally:
        db.close()


@pytest.fixture
def login(client, fixed_code):
    """Sign in a new user; returns ``(headers, user_json)``."""

    def _login(phone: str = None, tier: int = None, device_id: str = "device-test"):
        phone = phone or unique_phone()
        r = client.post("/auth/request-otp", json={"phone": phone})
        assert r.status_code == 200, r.text
        r = client.post("/auth/verify-otp", json={"phone": phone, "otp": fixed_code, "deviceId": device_id})
        assert r.status_code == 200, r.text
        body = r.json()
        if tier is not None:
            set_tier(uuid.UUID(body["user"]["id"]), tier)
            body["user"]["tier"] = tier
        return {"Authorization": f"Bearer {body['access_token']}"}, body["user"]

    return _login
