from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse
from fastapi.testclient import TestClient
from conftest import login
from bank_admin.main import app
from bank_admin.models.audit import AuthAuditLog, EmailVerification
from bank_admin.models.session import UserSession
from bank_admin.models.user import User
from bank_admin.services import session_service as session_module
from bank_admin.services.user_service import user_service

NEW_PASSWORD = "N3w!Passw0rd"


def _register(client, **overrides):
    data = {
        "username": "newuser",
        "email": "New.User@Example.com",
        "password": "Str0ng!Pass",
        "confirm_password": "Str0ng!Pass",
        "first_name": "New",
        "last_name": "User",
        "terms": "on",
    }
    data.update(overrides)
    return client.post("/auth/register", data=data, follow_redirects=False)


def test_login_issues_cookie_and_resolves_identity(client, make_user):
    make_user()

    response = login(client)
    assert response.status_code == 303
    assert response.headers["location"] == "/dashboard"
    cookie = response.headers["set-cookie"].lower()
    assert cookie.startswith("session=")
    assert "httponly" in cookie
    assert "samesite=strict" in cookie
    assert "max-age=604800" in cookie

    response = client.get("/dashboard")
    assert response.status_code == 200
    assert response.json()["email"] == "a@b.com"


def test_protected_route_without_cookie_redirects_with_return_url(client):
    response = client.get("/dashboard/banks", follow_redirects=False)
    assert response.status_code == 302

    location = urlparse(response.headers["location"])
    assert location.path == "/auth/login"
    assert parse_qs(location.query)["returnUrl"] == ["/dashboard/banks"]


def test_return_url_keeps_query_string(client):
    response = client.get("/api/banks/?include_deleted=true", follow_redirects=False)
    location = urlparse(response.headers["location"])
    assert parse_qs(location.query)["returnUrl"] == ["/api/banks/?include_deleted=true"]


def test_login_redirects_to_return_url(client, make_user):
    make_user()
    response = login(client, returnUrl="/dashboard/banks")
    assert response.headers["location"] == "/dashboard/banks"


def test_login_ignores_offsite_return_url(client, make_user):
    make_user()
    response = login(client, returnUrl="https://evil.example.com/")
    assert response.headers["location"] == "/dashboard"


def test_login_email_is_case_insensitive(client, make_user):
    make_user()
    response = login(client, email="  A@B.COM ")
    assert response.status_code == 303


def test_inactive_user_gets_distinct_error_and_no_session(client, db, make_user):
    make_user(is_active=False)

    response = login(client)
    assert response.status_code == 400
    assert response.json()["detail"] == "Your account is inactive. Please contact support."
    assert "set-cookie" not in response.headers
    assert db.query(UserSession).count() == 0


def test_wrong_password_and_unknown_email_look_the_same(client, make_user):
    make_user()

    wrong_password = login(client, password="Wr0ng!pass")
    unknown_email = login(client, email="nobody@b.com")

    assert wrong_password.status_code == unknown_email.status_code == 400
    assert wrong_password.json() == unknown_email.json() == {"detail": "Invalid email or password"}


def test_login_validation_errors(client):
    response = client.post("/auth/login", data={"email": "", "password": "x"})
    assert response.status_code == 400
    assert response.json()["errors"]["email"] == ["Email is required"]

    response = client.post("/auth/login", data={"email": "not-an-email"})
    body = response.json()
    assert response.status_code == 400
    assert "email" in body["errors"]
    assert "password" in body["errors"]
    # The submitted email is echoed back for the form; the password never is
    assert body["email"] == "not-an-email"


def test_lockout_after_five_failures(client, make_user):
    make_user()
    for _ in range(5):
        assert login(client, password="Wr0ng!pass").status_code == 400

    # Even the right password is refused while locked
    response = login(client)
    assert response.status_code == 429
    assert response.json()["detail"] == "Too many failed attempts. Please try again in 15 minutes."


def test_successful_login_clears_failures(client, make_user):
    make_user()
    for _ in range(4):
        login(client, password="Wr0ng!pass")
    assert login(client).status_code == 303

    client.cookies.clear()
    for _ in range(4):
        login(client, password="Wr0ng!pass")
    assert login(client).status_code == 303


def test_login_page_redirects_signed_in_users(user_client):
    response = user_client.get("/auth/login?returnUrl=/profile", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "/profile"


def test_login_page_for_visitors(client):
    response = client.get("/auth/login")
    assert response.status_code == 200
    assert response.json() == {"returnUrl": "/dashboard"}


def test_login_records_audit_event(client, db, make_user):
    user = make_user()
    login(client)
    events = db.query(AuthAuditLog).filter(AuthAuditLog.user_id == user.id).all()
    assert [event.event for event in events] == ["login"]
    assert "ip" in events[0].data


def test_session_creation_failure_is_generic(client, make_user, monkeypatch):
    make_user()
    monkeypatch.setattr(session_module.session_service, "create_session", lambda *args, **kwargs: None)

    response = login(client)
    assert response.status_code == 500
    assert response.json()["detail"] == "Authentication service error"


def test_unexpected_failure_hides_details(client, make_user, monkeypatch):
    make_user()

    def broken(*args, **kwargs):
        raise RuntimeError("connection refused on 10.0.0.5")

    monkeypatch.setattr(user_service, "get_by_email", broken)
    response = login(client)
    assert response.status_code == 500
    assert response.json()["detail"] == "An error occurred during login. Please try again later."


def test_fingerprint_mismatch_ends_session(client, db, make_user):
    make_user()
    login(client, fingerprint="fp-1")

    assert client.get("/dashboard", headers={"X-Session-Fingerprint": "fp-1"}).status_code == 200

    response = client.get("/dashboard", headers={"X-Session-Fingerprint": "fp-2"}, follow_redirects=False)
    assert response.status_code == 302
    assert db.query(UserSession).count() == 0


def test_register_creates_user_and_signs_in(client, db):
    response = _register(client)
    assert response.status_code == 303
    assert response.headers["location"] == "/dashboard"

    user = db.query(User).filter(User.username == "newuser").first()
    assert user.email == "new.user@example.com"
    assert user.is_email_verified is False
    assert db.query(EmailVerification).filter(EmailVerification.user_id == user.id).count() == 1

    assert client.get("/dashboard").json()["username"] == "newuser"


def test_register_validation(client):
    response = _register(
        client,
        username="x",
        password="weakpass",
        confirm_password="weakpass",
        first_name="J0hn",
        terms="",
    )
    errors = response.json()["errors"]
    assert response.status_code == 400
    assert errors["username"] == ["Username must be at least 3 characters"]
    assert errors["password"] == ["Password must contain uppercase, lowercase, numbers, and special characters"]
    assert "first_name" in errors
    assert errors["terms"] == ["You must accept the terms and conditions"]

    response = _register(client, confirm_password="Str0ng!Passx")
    assert response.json()["errors"] == {"confirm_password": ["Passwords don't match"]}


def test_register_requires_terms(client):
    data = {
        "username": "newuser",
        "email": "new@example.com",
        "password": "Str0ng!Pass",
        "confirm_password": "Str0ng!Pass",
    }
    response = client.post("/auth/register", data=data)
    assert response.status_code == 400
    assert response.json()["errors"] == {"terms": ["You must accept the terms and conditions"]}


def test_register_rejects_taken_email_and_username(client, make_user):
    make_user(email="new.user@example.com", username="someone")
    response = _register(client)
    assert response.status_code == 400
    assert response.json()["detail"] == "An account with this email already exists"

    response = _register(client, email="other@example.com", username="someone")
    assert response.json()["detail"] == "This username is already taken"


def test_verify_email(client, db):
    _register(client)
    user = db.query(User).filter(User.username == "newuser").first()
    token = db.query(EmailVerification).filter(EmailVerification.user_id == user.id).first().token

    assert client.get("/auth/verify-email", params={"token": "bogus"}).status_code == 400
    response = client.get("/auth/verify-email", params={"token": token})
    assert response.status_code == 200

    db.expire_all()
    assert db.query(User).filter(User.id == user.id).first().is_email_verified is True
    # Tokens are single use
    assert client.get("/auth/verify-email", params={"token": token}).status_code == 400


def test_logout_deletes_session(user_client, db):
    response = user_client.post("/auth/logout", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"].startswith("/auth/login?message=")
    assert db.query(UserSession).count() == 0

    response = user_client.get("/dashboard", follow_redirects=False)
    assert response.status_code == 302


def test_logout_via_get(user_client, db):
    response = user_client.get("/auth/logout", follow_redirects=False)
    assert response.status_code == 303
    assert db.query(UserSession).count() == 0


def test_forgot_password_does_not_reveal_accounts(client, make_user):
    make_user()
    known = client.post("/auth/forgot-password", data={"email": "a@b.com"})
    unknown = client.post("/auth/forgot-password", data={"email": "nobody@b.com"})
    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()


def test_password_reset_revokes_sessions(user_client, db):
    user_client.post("/auth/forgot-password", data={"email": "a@b.com"})
    db.expire_all()
    user = db.query(User).filter(User.email == "a@b.com").first()
    token = user.reset_token
    assert token
    assert db.query(UserSession).filter(UserSession.user_id == user.id).count() == 1

    assert user_client.get("/auth/reset-password", params={"token": token}).json() == {"token": token}

    response = user_client.post("/auth/reset-password", data={
        "token": token, "password": NEW_PASSWORD, "confirm_password": NEW_PASSWORD,
    })
    assert response.status_code == 200
    assert db.query(UserSession).filter(UserSession.user_id == user.id).count() == 0

    # The old cookie is now stale: redirected, and the cookie is cleared
    response = user_client.get("/dashboard", follow_redirects=False)
    assert response.status_code == 302
    assert 'session=""' in response.headers["set-cookie"]

    assert login(user_client).status_code == 400
    assert login(user_client, password=NEW_PASSWORD).status_code == 303

    # Reset tokens are single use
    response = user_client.post("/auth/reset-password", data={
        "token": token, "password": NEW_PASSWORD, "confirm_password": NEW_PASSWORD,
    })
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid or expired token"


def test_expired_reset_token(client, db, make_user):
    user = make_user()
    token = user_service.start_password_reset(db, user)
    user.reset_token_expiry = datetime.now(timezone.utc) - timedelta(minutes=1)
    db.commit()

    response = client.get("/auth/reset-password", params={"token": token}, follow_redirects=False)
    assert response.status_code == 302
    assert "error=" in response.headers["location"]

    response = client.post("/auth/reset-password", data={
        "token": token, "password": NEW_PASSWORD, "confirm_password": NEW_PASSWORD,
    })
    assert response.status_code == 400


def test_unhandled_error_returns_generic_body(make_user, monkeypatch):
    make_user()

    def broken(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(user_service, "find_conflict", broken)
    with TestClient(app, raise_server_exceptions=False) as client:
        response = _register(client)
    assert response.status_code == 500
    assert response.json() == {"message": "An unexpected error occurred", "code": "UNKNOWN"}
