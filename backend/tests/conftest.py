"""Test fixtures and configuration for pytest."""

import base64
import os
import tempfile
from pathlib import Path
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient

# Patch settings before importing app modules
_temp_dir = tempfile.mkdtemp()
os.environ["EVENTDROP_DATA_ROOT_PATH"] = os.path.join(_temp_dir, "events")
os.environ["EVENTDROP_UPLOAD_TEMP_PATH"] = os.path.join(_temp_dir, "uploads")
os.environ.setdefault("EVENTDROP_LOG_LEVEL", "WARNING")

from eventdrop.core.config import settings
from eventdrop.core.rate_limit import auth_limiter
from eventdrop.main import app

ADMIN_PASSWORD = "longpass1"
GUEST_PASSWORD = "guestpw1"

_PATCHED_SETTINGS = (
    "data_root_path",
    "upload_temp_path",
    "upload_max_file_size_bytes",
    "upload_max_total_size_bytes",
    "allow_event_creation",
    "auth_rate_limit_max_attempts",
    "auth_rate_limit_window_seconds",
    "auth_rate_limit_block_seconds",
)


def basic_auth(user: str, password: str) -> dict[str, str]:
    token = base64.b64encode(f"{user}:{password}".encode("utf-8")).decode("ascii")
    return {"Authorization": f"Basic {token}"}


ADMIN_AUTH = basic_auth("admin", ADMIN_PASSWORD)
GUEST_AUTH = basic_auth("guest", GUEST_PASSWORD)


class FakeClock:
    """Manually advanced monotonic clock for limiter tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_auth_limiter():
    """在每个测试前后清理认证限流器状态"""
    auth_limiter.clear_all()
    yield
    auth_limiter.clear_all()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="function")
def data_dirs(tmp_path: Path) -> Generator[dict[str, Path], None, None]:
    """Point the data root and upload staging at fresh temp directories."""
    original = {name: getattr(settings, name) for name in _PATCHED_SETTINGS}
    data_root = tmp_path / "events"
    upload_temp = tmp_path / "uploads"
    settings.data_root_path = str(data_root)
    settings.upload_temp_path = str(upload_temp)

    yield {"data_root": data_root, "upload_temp": upload_temp}

    for name, value in original.items():
        setattr(settings, name, value)


@pytest.fixture
def client(data_dirs: dict[str, Path]) -> Generator[TestClient, None, None]:
    """Create a test client with fresh data directories."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def create_event(client: TestClient) -> Callable[..., dict]:
    """Factory creating an event through the API; returns the response body."""

    def _create(event_id: str = "party", guest_password: str | None = None, **overrides) -> dict:
        payload = {
            "name": "Summer Party",
            "eventId": event_id,
            "adminPassword": ADMIN_PASSWORD,
            "adminPasswordConfirm": ADMIN_PASSWORD,
        }
        if guest_password is not None:
            payload["guestPassword"] = guest_password
        payload.update(overrides)
        response = client.post("/api/events", json=payload)
        assert response.status_code == 200, response.text
        return response.json()

    return _create
