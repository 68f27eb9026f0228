"""
Pytest fixtures for the invoicing backend tests.

Provides an app over in-memory SQLite, a recording push channel with
synchronous delivery, a stub PDF renderer, seeded users and auth helpers.
"""

import pytest

from invoicing import create_app
from invoicing.authorization import Identity
from invoicing.extensions import db
from invoicing.models import Role
from invoicing.services.push_service import InMemoryPushChannel


STUB_PDF = b"%PDF-1.4\n% stub invoice\n%%EOF"


class StubRenderer:
    """Records snapshots and returns fixed bytes."""

    def __init__(self):
        self.snapshots = []

    def render(self, snapshot: dict) -> bytes:
        self.snapshots.append(snapshot)
        return STUB_PDF


class FlakyPushChannel(InMemoryPushChannel):
    """Fails the first `failures` sends, then delivers."""

    def __init__(self, failures: int = 0):
        super().__init__()
        self.failures = failures
        self.attempts = 0

    def send_to_user(self, user_id, event, payload):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConnectionError("push transport unavailable")
        super().send_to_user(user_id, event, payload)

    def send_to_group(self, group, event, payload):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConnectionError("push transport unavailable")
        super().send_to_group(group, event, payload)


class BrokenPushChannel(InMemoryPushChannel):
    """Never delivers."""

    def send_to_user(self, user_id, event, payload):
        raise ConnectionError("push transport down")

    def send_to_group(self, group, event, payload):
        raise ConnectionError("push transport down")


def make_app(push_channel=None, renderer=None):
    return create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'JWT_SECRET_KEY': 'test-signing-key-with-enough-length-0123456789',
        'BCRYPT_ROUNDS': 4,
        'PUSH_ASYNC': False,
        'PUSH_MAX_RETRIES': 2,
        'PUSH_RETRY_BACKOFF': 0,
        'PUSH_CHANNEL': push_channel or InMemoryPushChannel(),
        'INVOICE_RENDERER': renderer or StubRenderer(),
    })


@pytest.fixture(scope='function')
def push_channel():
    return InMemoryPushChannel()


@pytest.fixture(scope='function')
def renderer():
    return StubRenderer()


@pytest.fixture(scope='function')
def app(push_channel, renderer):
    """Fresh application and schema for each test."""
    app = make_app(push_channel=push_channel, renderer=renderer)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def token_service(app):
    return app.extensions["token_service"]


@pytest.fixture(scope='function')
def admin(token_service):
    return token_service.register("admin_a", "admin_a@example.com", "AdminPass1", Role.ADMIN)


@pytest.fixture(scope='function')
def user_u(token_service):
    return token_service.register("user_u", "user_u@example.com", "UserPass1", Role.USER)


@pytest.fixture(scope='function')
def other_user(token_service):
    return token_service.register("user_v", "user_v@example.com", "UserPass2", Role.USER)


def identity_for(user) -> Identity:
    return Identity(user_id=user.id, username=user.username, email=user.email, role=user.role)


def login(client, username: str, password: str, role: str) -> dict:
    """Log in through the API and return the JSON body."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password,
        'role': role,
    })
    assert response.status_code == 200, response.get_json()
    return response.get_json()


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin):
    return auth_headers(login(client, "admin_a", "AdminPass1", "Admin")["accessToken"])


@pytest.fixture(scope='function')
def user_headers(client, user_u):
    return auth_headers(login(client, "user_u", "UserPass1", "User")["accessToken"])


@pytest.fixture(scope='function')
def other_headers(client, other_user):
    return auth_headers(login(client, "user_v", "UserPass2", "User")["accessToken"])
