from fastapi import FastAPI
from fastapi.testclient import TestClient

from ubuntu_shared import SlidingWindowLimiter


def _app(**kwargs) -> FastAPI:
    app = FastAPI()
    app.add_middleware(SlidingWindowLimiter, **kwargs)

    @app.get("/ping")
    def ping():
        return {"ok": True}

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/auth/request-otp")
    def otp():
        return {"ok": True}

    return app


def test_limit_exceeded_returns_429_with_retry_after():
    client = TestClient(_app(limit_per_minute=2))
    assert client.get("/ping").status_code == 200
    assert client.get("/ping").status_code == 200
    r = client.get("/ping")
    assert r.status_code == 429
    assert r.json()["error"]["code"] == "rate_limited"
    assert int(r.headers["Retry-After"]) >= 1


def test_excluded_paths_are_not_limited():
    client = TestClient(_app(limit_per_minute=1))
    for _ in range(5):
        assert client.get("/health").status_code == 200


def test_authenticated_clients_get_boost():
    client = TestClient(_app(limit_per_minute=1, auth_boost=3))
    headers = {"Authorization": "Bearer abc"}
    assert [client.get("/ping", headers=headers).status_code for _ in range(4)] == [200, 200, 200, 429]


def test_auth_paths_have_lower_ceiling():
    client = TestClient(_app(limit_per_minute=1000))
    codes = [client.post("/auth/request-otp").status_code for _ in range(21)]
    assert codes[:20] == [200] * 20
    assert codes[20] == 429
