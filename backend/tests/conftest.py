import os

# Settings are read at import time, so the environment must be ready first
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOGIN_FAILURE_DELAY_MIN"] = "0"
os.environ["LOGIN_FAILURE_DELAY_MAX"] = "0"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["APP_ENV"] = "test"

import pytest
from fastapi.testclient import TestClient
from bank_admin.core.database import Base, SessionLocal, engine
from bank_admin.main import app
from bank_admin.models.user import UserRole
from bank_admin.services.login_throttle import login_throttle
from bank_admin.services.rate_limiter import rate_limiter
from bank_admin.services.user_service import user_service

DEFAULT_PASSWORD = "P@ssw0rd1"


@pytest.fixture(autouse=True)
def fresh_state():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    login_throttle.reset()
    rate_limiter.reset()
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_user(db):
    def _make_user(email="a@b.com", username=None, password=DEFAULT_PASSWORD,
                   role=UserRole.USER, is_active=True):
        user = user_service.create_user(
            db,
            username=username or email.split("@")[0],
            email=email,
            password=password,
            role=role,
        )
        if not is_active:
            user.is_active = False
            db.commit()
            db.refresh(user)
        return user
    return _make_user


def login(client, email="a@b.com", password=DEFAULT_PASSWORD, **extra):
    """POST the login form without following the redirect"""
    return client.post(
        "/auth/login",
        data={"email": email, "password": password, **extra},
        follow_redirects=False,
    )


@pytest.fixture
def user_client(client, make_user):
    make_user()
    response = login(client)
    assert response.status_code == 303
    return client


@pytest.fixture
def admin_client(client, make_user):
    make_user(email="admin@example.com", username="admin", role=UserRole.ADMIN)
    response = login(client, email="admin@example.com")
    assert response.status_code == 303
    return client
