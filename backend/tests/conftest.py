"""
Pytest fixtures for Stockroom backend tests.

Provides an app backed by in-memory SQLite, users of every role, and
Bearer auth headers for the API tests.
"""

import pytest

from stockroom import create_app
from stockroom.extensions import db
from stockroom.permissions import ROLE_ADMIN, ROLE_MANAGER, ROLE_NONE, ROLE_VIEWER
from stockroom.services import auth_service, session_service


PASSWORD = "Password123!"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'BCRYPT_ROUNDS': 4,
}


@pytest.fixture(scope='function')
def app_config():
    return dict(TEST_CONFIG)


@pytest.fixture(scope='function')
def app():
    """Fresh application and schema for every test."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


def make_user(email: str, role: str):
    return auth_service.provision_user(
        email=email,
        password=PASSWORD,
        role=role,
        created_by="tests",
    )


@pytest.fixture(scope='function')
def admin(app):
    return make_user("admin@stockroom.test", ROLE_ADMIN)


@pytest.fixture(scope='function')
def manager(app):
    return make_user("manager@stockroom.test", ROLE_MANAGER)


@pytest.fixture(scope='function')
def viewer(app):
    return make_user("viewer@stockroom.test", ROLE_VIEWER)


@pytest.fixture(scope='function')
def nobody(app):
    return make_user("nobody@stockroom.test", ROLE_NONE)


def auth_headers(user) -> dict:
    """Issue a session for `user` and return the Authorization header."""
    _session, token = session_service.create_session(user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope='function')
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture(scope='function')
def manager_headers(manager):
    return auth_headers(manager)


@pytest.fixture(scope='function')
def viewer_headers(viewer):
    return auth_headers(viewer)


@pytest.fixture(scope='function')
def nobody_headers(nobody):
    return auth_headers(nobody)


@pytest.fixture(scope='function')
def widget(manager):
    """Widget / PN1 / M1 in WH1 with 10 on hand."""
    from stockroom.services import inventory_service

    return inventory_service.create_cell(
        name="Widget",
        part_number="PN1",
        model_no="M1",
        warehouse="WH1",
        initial_quantity=10,
        actor=manager,
    )
