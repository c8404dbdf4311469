"""
pytest configuration – point the app at a throwaway SQLite file,
initialise tables, and reset rate-limit state between tests.
Provides a shared session-scoped admin token.
"""
import itertools
import os
import tempfile

_tmpdir = tempfile.mkdtemp(prefix="exhibit-tests-")
os.environ["EXHIBIT_DATABASE_URL"] = f"sqlite:///{os.path.join(_tmpdir, 'test.db')}"
os.environ["EXHIBIT_ENVIRONMENT"] = "development"
os.environ["EXHIBIT_BCRYPT_ROUNDS"] = "4"
os.environ["EXHIBIT_LOG_FORMAT"] = "text"
os.environ.pop("EXHIBIT_SMTP_HOST", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from exhibit_api import clock  # noqa: E402
from exhibit_api.auth.seed import seed_superadmin  # noqa: E402
from exhibit_api.config import settings  # noqa: E402
from exhibit_api.database import db_session, drop_db, init_db  # noqa: E402
from exhibit_api.main import app  # noqa: E402
from exhibit_api.models import User  # noqa: E402
from exhibit_api.rate_limit import build_rate_limiters, limiter  # noqa: E402

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "changeme"
DEFAULT_PASSWORD = "s3cret-pass"

_seq = itertools.count(1)


@pytest.fixture(autouse=True, scope="session")
def create_tables():
    init_db()
    seed_superadmin()
    yield
    drop_db()


@pytest.fixture(autouse=True)
def fresh_rate_limits():
    """Every test starts with empty counters, slowapi off and the real clock."""
    app.state.rate_limiters = build_rate_limiters(settings)
    limiter.enabled = False
    previous = clock.set_clock(clock.Clock())
    yield
    clock.set_clock(previous)
    limiter.enabled = True


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def frozen_clock():
    frozen = clock.FrozenClock()
    previous = clock.set_clock(frozen)
    yield frozen
    clock.set_clock(previous)


# Session-scoped admin token: sign-in happens ONCE per test run
_session_token: str | None = None


@pytest.fixture(scope="session")
def admin_token() -> str:
    global _session_token
    if _session_token is None:
        client = TestClient(app)
        resp = client.post("/auth/signin", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
        assert resp.status_code == 200, f"Sign-in failed: {resp.text}"
        _session_token = resp.json()["token"]
    return _session_token


def unique_email(prefix: str = "member") -> str:
    return f"{prefix}{next(_seq)}@example.com"


def make_user(
    email: str | None = None,
    password: str = DEFAULT_PASSWORD,
    role: str = "user",
    is_verified: bool = True,
    is_active: bool = True,
) -> User:
    """Insert a user directly, bypassing the signup endpoint and its rate limit."""
    with db_session() as session:
        user = User(
            first_name="Test",
            last_name="Member",
            email=email or unique_email(),
            role=role,
            is_verified=is_verified,
            is_active=is_active,
            profile_picture=settings.default_profile_picture,
        )
        user.set_password(password)
        session.add(user)
        session.flush()
        session.refresh(user)
        return user


def sign_in(client: TestClient, email: str, password: str = DEFAULT_PASSWORD) -> str:
    resp = client.post("/auth/signin", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()["token"]


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
