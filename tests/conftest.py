"""Shared fixtures: an app wired to an in-memory mongomock server."""

import mongomock
import pytest
from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError

from presale.config import DEFAULTS, _deep_copy
from presale.main import create_app

ADMIN_PASSWORD = "correct-horse-battery"
JWT_SECRET = "test-signing-key"


@pytest.fixture
def config():
    cfg = _deep_copy(DEFAULTS)
    cfg["database"]["name"] = "presale_test"
    cfg["auth"]["admin_password"] = ADMIN_PASSWORD
    cfg["auth"]["jwt_secret"] = JWT_SECRET
    # Minimum bcrypt cost keeps the suite fast
    cfg["auth"]["bcrypt_rounds"] = 4
    return cfg


@pytest.fixture
def mongo_client():
    return mongomock.MongoClient()


@pytest.fixture
def client_factory(mongo_client):
    calls = []

    def factory(url, **kwargs):
        calls.append((url, kwargs))
        return mongo_client

    factory.calls = calls
    return factory


class UnreachableClient:
    """Stands in for a MongoClient whose server never answers."""

    def __init__(self, *args, **kwargs):
        self.closed = False

    def server_info(self):
        raise ServerSelectionTimeoutError("localhost:27017: connection refused")

    def close(self):
        self.closed = True


@pytest.fixture
def app(config, client_factory):
    return create_app(config, client_factory=client_factory)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def store(app):
    return app.state.store


@pytest.fixture
def auth_manager(app):
    return app.state.auth_manager


@pytest.fixture
def db(mongo_client, config):
    return mongo_client[config["database"]["name"]]


@pytest.fixture
def token(client):
    assert client.get("/api/init-admin").status_code == 200
    resp = client.post("/api/authenticate", json={"password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    return resp.json()["token"]


@pytest.fixture
def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}
