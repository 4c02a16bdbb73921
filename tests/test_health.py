def test_health_endpoint(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json().get("status") == "ok"
    assert r.headers["X-Content-Type-Options"] == "nosniff"


def test_metrics_exposes_otp_counters(client, fixed_code):
    client.post("/auth/request-otp", json={"phone": "0821234567"})
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "ubuntu_otp_requests_total" in r.text
    assert "ubuntu_http_requests_total" in r.text


def test_unknown_route_uses_error_envelope(client):
    r = client.get("/does-not-exist")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "HTTP_ERROR"


def test_run_serves_on_configured_host_and_port(monkeypatch):
    import uvicorn

    from ubuntu_api import main
    from ubuntu_api.config import settings

    calls = []
    monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
    monkeypatch.setattr(settings, "APP_HOST", "127.0.0.1")
    monkeypatch.setattr(settings, "APP_PORT", 9123)
    main.run()
    assert calls == [(main.app, {"host": "127.0.0.1", "port": 9123})]
