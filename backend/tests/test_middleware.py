import time
from datetime import datetime, timedelta, timezone
from bank_admin.core import middleware
from bank_admin.core.config import settings
from bank_admin.models.session import UserSession
from bank_admin.services.session_service import as_utc


def test_security_headers(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.headers["x-frame-options"] == "SAMEORIGIN"
    assert response.headers["x-content-type-options"] == "nosniff"
    assert response.headers["permissions-policy"] == "camera=(), microphone=(), geolocation=()"
    assert response.headers["strict-transport-security"].startswith("max-age=31536000")
    assert "default-src 'self'" in response.headers["content-security-policy"]


def test_no_csp_in_development(client, monkeypatch):
    monkeypatch.setattr(settings, "APP_ENV", "development")
    response = client.get("/health")
    assert "content-security-policy" not in response.headers
    assert response.headers["x-frame-options"] == "SAMEORIGIN"


def test_rate_gate_rejects_eleventh_request(client):
    for _ in range(10):
        response = client.post("/auth/forgot-password", data={"email": "nobody@b.com"})
        assert response.status_code == 200

    response = client.post("/auth/forgot-password", data={"email": "nobody@b.com"})
    assert response.status_code == 429
    assert int(response.headers["retry-after"]) > 0
    assert response.json() == {"error": "Too many requests, please try again later."}


def test_rate_gate_ignores_get_requests(client):
    for _ in range(12):
        assert client.get("/auth/login").status_code == 200


def test_rate_gate_covers_reset_password_paths(client):
    for _ in range(10):
        client.post("/auth/reset-password", data={})
    assert client.post("/auth/reset-password", data={}).status_code == 429


def test_path_rules():
    assert middleware.is_protected("/dashboard")
    assert middleware.is_protected("/api/banks/")
    assert middleware.is_protected("/profile")
    assert not middleware.is_protected("/auth/login")
    assert not middleware.is_protected("/health")
    assert middleware.is_rate_limited("/auth/register")
    assert middleware.is_rate_limited("/api/auth/token")
    assert not middleware.is_rate_limited("/api/banks/")


def _expiry(db):
    db.expire_all()
    return as_utc(db.query(UserSession).first().expires_at)


def test_browsing_slides_expiry_but_api_does_not(user_client, db):
    row = db.query(UserSession).first()
    row.expires_at = datetime.now(timezone.utc) + timedelta(hours=1)
    db.commit()

    assert user_client.get("/api/banks/").status_code == 200
    assert _expiry(db) < datetime.now(timezone.utc) + timedelta(hours=2)

    assert user_client.get("/dashboard").status_code == 200
    assert _expiry(db) > datetime.now(timezone.utc) + timedelta(days=6)


def test_invalid_cookie_is_cleared(client):
    client.cookies.set("session", "garbage")
    response = client.get("/health")
    assert response.status_code == 200
    assert 'session=""' in response.headers["set-cookie"]


def test_store_timeout_counts_as_unauthenticated(user_client, monkeypatch):
    def slow_resolve(*args):
        time.sleep(0.5)

    monkeypatch.setattr(middleware, "resolve_session", slow_resolve)
    monkeypatch.setattr(settings, "SESSION_STORE_TIMEOUT_SECONDS", 0.05)

    response = user_client.get("/dashboard", follow_redirects=False)
    assert response.status_code == 302
    # The cookie may still be good; it is kept
    assert "set-cookie" not in response.headers


def test_store_error_counts_as_unauthenticated(user_client, monkeypatch):
    def broken_resolve(*args):
        raise RuntimeError("session store unavailable")

    monkeypatch.setattr(middleware, "resolve_session", broken_resolve)

    response = user_client.get("/dashboard", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"].startswith("/auth/login?returnUrl=")
    assert "set-cookie" not in response.headers

    assert user_client.get("/health").status_code == 200
