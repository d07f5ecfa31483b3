"""
Pytest configuration and fixtures for CityGuard tests.
"""
from datetime import datetime, timedelta
from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient

from cityguard import create_app
from cityguard.core.config import Settings

ACCESS_SECRET = "test-access-secret-0123456789abcdefghijklmnop"
REFRESH_SECRET = "test-refresh-secret-0123456789abcdefghijklmno"
PASSWORD = "Passw0rd1"


class FakeClock:
    """Settable clock standing in for ``get_current_time``."""

    def __init__(self, start: datetime = datetime(2025, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "JWT_SECRET": ACCESS_SECRET,
        "JWT_REFRESH_SECRET": REFRESH_SECRET,
        "BCRYPT_ROUNDS": 4,
        "STORAGE_BACKEND": "memory",
        "RATE_LIMIT_ENABLED": False,
        "LOG_LEVEL": "WARNING",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def registration(email: str = "a@x.com", user_type: str = "citizen", **extra: Any) -> Dict[str, Any]:
    payload = {
        "email": email,
        "password": PASSWORD,
        "firstName": "Ada",
        "lastName": "Lovelace",
        "userType": user_type,
    }
    payload.update(extra)
    return payload


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def app(settings: Settings, clock: FakeClock):
    """A test application on in-memory storage driven by the fake clock."""
    return create_app(settings, clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def service(app):
    return app.state.auth_service
