"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient

from white_duck.config import Settings
from white_duck.engine import DuckDBEngine
from white_duck.server import create_app

TEST_API_KEY = "test_api_key_for_testing"
TEST_USER = "admin"
TEST_PASSWORD = "correct horse battery staple"


@pytest.fixture
def settings():
    """Settings for an in-memory database with known credentials."""
    return Settings(
        duckdb_mode="memory",
        auth_enabled=True,
        api_key=TEST_API_KEY,
        jwt_secret_key="test-secret",
        default_user=TEST_USER,
        default_password=TEST_PASSWORD,
        log_dir="",
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    """Test client with the application lifespan running."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def api_headers():
    """Headers with the API key."""
    return {"X-API-Key": TEST_API_KEY}


@pytest.fixture
def token(client):
    response = client.post("/api/auth/login", json={"username": TEST_USER, "password": TEST_PASSWORD})
    assert response.status_code == 200
    return response.json()["token"]


@pytest.fixture
def bearer_headers(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def engine():
    """Standalone in-memory engine."""
    with DuckDBEngine(":memory:") as duck:
        yield duck
