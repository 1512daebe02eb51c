"""
Shared fixtures for BudgetBuddy tests.

Every test gets its own SQLite file under pytest's tmp_path, so tests never
share state. The ML service is replaced by an httpx.MockTransport; no
network traffic leaves the process.
"""

import httpx
import pytest
from faker import Faker

from api import create_app
from engine import FinanceEngine
from setup_sqlite import create_database

fake = Faker()

PASSWORD = "correct-horse-battery"
JWT_SECRET = "test-jwt-secret"


class FakeMLService:
    """Canned responses keyed by (method, path); records every request."""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, method, path, *responses):
        """Queue (status, json) responses; the last one repeats."""
        self.routes[(method, path)] = list(responses)

    def handler(self, request):
        self.requests.append(request)
        responses = self.routes.get((request.method, request.url.path))
        if not responses:
            return httpx.Response(404, json={"detail": "Not Found"})
        status, payload = responses.pop(0) if len(responses) > 1 else responses[0]
        return httpx.Response(status, json=payload)

    @property
    def transport(self):
        return httpx.MockTransport(self.handler)

    def paths(self):
        return [request.url.path for request in self.requests]


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "budgetbuddy.db"
    assert create_database(path)
    return path


@pytest.fixture
def engine(db_path):
    return FinanceEngine(db_path)


@pytest.fixture
def ledger(engine):
    return engine.ledger


def make_user(engine):
    return engine.register_user(fake.name(), fake.unique.email(), PASSWORD)


@pytest.fixture
def user(engine):
    return make_user(engine)


@pytest.fixture
def other_user(engine):
    return make_user(engine)


@pytest.fixture
def account(engine, user):
    return engine.create_account(user['id'], 'checking')


@pytest.fixture
def savings(engine, user):
    return engine.create_account(user['id'], 'savings')


@pytest.fixture
def ml_service():
    return FakeMLService()


@pytest.fixture
def app(db_path, ml_service):
    return create_app({
        "TESTING": True,
        "DATABASE_PATH": db_path,
        "JWT_SECRET": JWT_SECRET,
        "ML_TRANSPORT": ml_service.transport,
    })


@pytest.fixture
def client(app):
    return app.test_client()


def login_headers(client, email, password=PASSWORD):
    response = client.post('/api/users/login', json={"email": email, "password": password})
    assert response.status_code == 200, response.get_json()
    return {"Authorization": f"Bearer {response.get_json()['token']}"}


@pytest.fixture
def registered(client):
    """A user registered through the API: (user dict, auth headers)."""
    email = fake.unique.email()
    response = client.post('/api/users/register', json={
        "name": fake.name(), "email": email, "password": PASSWORD,
    })
    assert response.status_code == 201
    return response.get_json(), login_headers(client, email)


@pytest.fixture
def auth_headers(registered):
    return registered[1]
