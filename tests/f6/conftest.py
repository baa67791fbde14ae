"""Fixtures for Web API tests."""

import pytest
from fastapi.testclient import TestClient

from mentra.web.api import create_app
from mentra.web.auth import create_access_token


@pytest.fixture
def client():
    """Test client sharing one event loop across requests and sockets."""
    with TestClient(create_app()) as test_client:
        yield test_client


@pytest.fixture
def auth():
    """Authorization headers for a user."""

    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user)}"}

    return _headers
