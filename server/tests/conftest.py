"""
Pytest configuration and shared fixtures for the admin proxy tests.
"""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from regadmin.clients.backend_client import BackendClient
from regadmin.config import Settings
from regadmin.main import create_app

STATIC_KEY = "static-admin-key"
ALLOWLISTED_EMAIL = "Boss@Example.com"


def make_settings(**overrides) -> Settings:
    values = {
        "supabase_url": "https://backend.example.test",
        "supabase_service_role_key": "service-role-key",
        "admin_api_key": STATIC_KEY,
        "admin_emails": f"ops@example.com, {ALLOWLISTED_EMAIL}",
        "log_format": "text",
        "log_level": "WARNING",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def mock_backend():
    """Backend client double; every call is recorded on it."""
    return MagicMock(spec=BackendClient)


@pytest.fixture
def app(settings, mock_backend):
    return create_app(settings, backend=mock_backend)


@pytest.fixture
def client(app):
    """FastAPI test client that returns 500 responses instead of raising."""
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def admin_headers():
    return {"X-Admin-Key": STATIC_KEY}


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test requiring a live backend"
    )
