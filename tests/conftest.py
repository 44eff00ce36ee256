"""
Shared pytest fixtures for the Public Pulse test suite.

Provides:
    - app: Flask application (session-scoped), local storage under a temp dir
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - citizen / other_citizen / gov_user / admin_user: registered users
    - departments: "Water Works" and "Roads"
    - auth_header(user_or_subject): bearer header signed for the test identity provider
"""

import uuid

import pytest

from public_pulse import create_app
from public_pulse.integrations.object_storage import LocalStorageBackend
from public_pulse.models import db as _db
from public_pulse.models.user import (
    ROLE_ADMIN,
    ROLE_CITIZEN,
    ROLE_GOVERNMENT,
    Department,
    User,
)
from public_pulse.services import identity_service


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app(tmp_path_factory):
    """Create the Flask application once per test session."""
    application = create_app("testing")
    application.extensions["storage"] = LocalStorageBackend(
        str(tmp_path_factory.mktemp("uploads")),
        application.config["SECRET_KEY"],
    )
    return application


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


@pytest.fixture()
def storage(app):
    return app.extensions["storage"]


# ── Identity helpers ─────────────────────────────────────────────────────


def make_user(role=ROLE_CITIZEN, name=None, department_id=None, external_id=None):
    """Persist a user bound to a fresh identity-provider subject."""
    subject = external_id or f"sub-{uuid.uuid4().hex[:12]}"
    user = User(
        external_id=subject,
        name=name or f"{role.title()} {subject[-4:]}",
        email=f"{subject}@example.org",
        role=role,
        department_id=department_id,
    )
    _db.session.add(user)
    _db.session.commit()
    return user


def bearer(subject, email=None):
    return {"Authorization": f"Bearer {identity_service.issue_token(subject, email=email)}"}


@pytest.fixture()
def auth_header():
    """``auth_header(user)`` or ``auth_header("raw-subject")``."""
    def _header(who):
        if isinstance(who, User):
            return bearer(who.external_id, who.email)
        return bearer(who)
    return _header


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def citizen():
    return make_user(ROLE_CITIZEN, name="Ada Citizen")


@pytest.fixture()
def other_citizen():
    return make_user(ROLE_CITIZEN, name="Ben Citizen")


@pytest.fixture()
def departments():
    water = Department(name="Water Works")
    _db.session.add(water)
    _db.session.flush()
    roads = Department(name="Roads")
    _db.session.add(roads)
    _db.session.commit()
    return water, roads


@pytest.fixture()
def gov_user(departments):
    return make_user(ROLE_GOVERNMENT, name="Gia Government", department_id=departments[1].id)


@pytest.fixture()
def admin_user():
    return make_user(ROLE_ADMIN, name="Alex Admin")
