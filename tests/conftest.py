"""
Shared pytest fixtures for the ToTracker test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - user / other_user: Pre-created local accounts
    - auth_headers / other_headers: Bearer headers for those accounts
"""

import pytest

from totracker import create_app
from totracker.models import db as _db
from totracker.models.auth import User
from totracker.services.jwt_service import generate_access_token
from totracker.utils.crypto import hash_password

TEST_PASSWORD = "correct-horse-battery"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    """Factory: create and commit a local account."""
    def _make(email, name="Test User", password=TEST_PASSWORD):
        user = User(email=email, name=name, password_hash=hash_password(password), auth_provider="local")
        _db.session.add(user)
        _db.session.commit()
        return user
    return _make


@pytest.fixture()
def headers_for():
    """Factory: bearer headers for a user."""
    def _headers(user):
        return {"Authorization": f"Bearer {generate_access_token(user.id, user.email)}"}
    return _headers


@pytest.fixture()
def user(make_user):
    return make_user("owner@totracker.dev", name="Story Owner")


@pytest.fixture()
def other_user(make_user):
    return make_user("other@totracker.dev", name="Someone Else")


@pytest.fixture()
def auth_headers(user, headers_for):
    return headers_for(user)


@pytest.fixture()
def other_headers(other_user, headers_for):
    return headers_for(other_user)
