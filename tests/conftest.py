import os

# Must be set before the application modules read their settings
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient

from main import app
from repositories import reset_repositories


@pytest.fixture(autouse=True)
def reset_state():
    """Reset repositories before each test."""
    reset_repositories()


@pytest.fixture()
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def auth_headers(client):
    response = client.post("/login", json={"username": "user1", "password": "password123"})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}
