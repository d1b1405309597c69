"""
Pytest configuration and shared fixtures.

Provides a test application, database session, test client and small
factories for users and devices.  The ``testing`` configuration uses an
in-memory SQLite database; the schema is created before and dropped
after every test so tests never see each other's rows.
"""

import pytest
from flask import g

from app import create_app
from app.extensions import db as _db
from app.models.device import Device
from app.models.enums import DeviceCategory, DeviceStatus
from app.models.user import Role, User
from app.services import user_service


@pytest.fixture()
def app():
    """
    Create a Flask application configured for testing, with a fresh
    schema and the built-in roles.
    """
    app = create_app("testing")

    @app.before_request
    def _reload_identity():
        # The test app context outlives each request; drop Flask-Login's
        # cached user so every request resolves its own session cookie.
        g.pop("_login_user", None)

    with app.app_context():
        _db.create_all()
        user_service.ensure_roles()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture()
def db_session(app):  # pylint: disable=redefined-outer-name
    """Provide the scoped SQLAlchemy session bound to the test app."""
    return _db.session


@pytest.fixture()
def client(app):  # pylint: disable=redefined-outer-name
    """
    Provide a Flask test client for making HTTP requests.

    Usage in tests::

        def test_health(client):
            response = client.get("/health")
            assert response.status_code == 200
    """
    with app.test_client() as test_client:
        yield test_client


# -- Factories -------------------------------------------------------------


@pytest.fixture()
def make_user(db_session):  # pylint: disable=redefined-outer-name
    """Create a user with the given role: ``make_user("admin")``."""
    counter = {"n": 0}

    def _make_user(role_name: str = "user", **attrs) -> User:
        counter["n"] += 1
        role = Role.query.filter_by(role_name=role_name).one()
        user = User(
            email=attrs.pop("email", f"{role_name}{counter['n']}@example.com"),
            first_name=attrs.pop("first_name", role_name.title()),
            last_name=attrs.pop("last_name", str(counter["n"])),
            role_id=role.id,
            **attrs,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture()
def make_device(db_session):  # pylint: disable=redefined-outer-name
    """
    Insert a device directly, bypassing the service layer.

    Any column may be overridden, e.g. ``make_device(status="dead")``.
    """

    def _make_device(**attrs) -> Device:
        values = {
            "project": "Phoenix",
            "project_group": "Mobile QA",
            "type": DeviceCategory.SMARTPHONE,
            "status": DeviceStatus.AVAILABLE,
        }
        values.update(attrs)
        if isinstance(values["status"], str):
            values["status"] = DeviceStatus(values["status"])
        device = Device(**values)
        db_session.add(device)
        db_session.commit()
        return device

    return _make_device


@pytest.fixture()
def admin(make_user):  # pylint: disable=redefined-outer-name
    return make_user("admin")


@pytest.fixture()
def login(client):  # pylint: disable=redefined-outer-name
    """Log the test client in as ``user`` via the dev-login route."""

    def _login(user: User):
        response = client.post("/auth/dev-login", json={"user_id": user.id})
        assert response.status_code == 200, response.get_json()
        return response

    return _login
