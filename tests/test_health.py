# tests/test_health.py
def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}

def test_health_db(client):
    r = client.get("/health/db")
    assert r.status_code == 200
    assert r.json()["db"] == "ok"

def test_request_id_is_echoed(client):
    r = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert r.headers["X-Request-ID"] == "abc123"

def test_admin_requires_key(client):
    r = client.post("/admin/email/send-test")  # no header
    assert r.status_code == 401
    assert r.json()["success"] is False

def test_admin_accepts_key(client, auth):
    r = client.post("/admin/email/send-test", headers=auth)
    # Background task returns immediately
    assert r.status_code in (200, 202)
    assert r.json().get("queued") is True

def test_api_fails_closed_without_configured_key(client, monkeypatch):
    monkeypatch.delenv("ADMIN_API_KEY", raising=False)
    r = client.get("/api/users", headers={"X-API-Key": "anything"})
    assert r.status_code == 500

def test_unknown_route_uses_error_envelope(client):
    r = client.get("/nope")
    assert r.status_code == 404
    assert r.json() == {"success": False, "message": "Not Found", "error": None}

def test_admin_dispatch_nothing_due(client, auth):
    r = client.post("/admin/dispatch", headers=auth)
    assert r.status_code == 200
    assert r.json() == {"dispatched": {}}

def test_admin_run_group_queues(client, auth, mocker):
    run = mocker.patch("concisely.routers.email_admin.process_frequency_group", return_value={})
    r = client.post("/admin/run/daily", headers=auth)
    assert r.json() == {"queued": True, "frequency": "daily"}
    run.assert_called_once_with("daily")

def test_admin_run_rejects_unknown_group(client, auth):
    r = client.post("/admin/run/hourly", headers=auth)
    assert r.status_code == 422
