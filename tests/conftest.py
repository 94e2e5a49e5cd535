"""Pytest fixtures for the tunnel switcher tests."""

import asyncio
import json
import os
import shutil
import tempfile
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing the app
TEST_DATA_DIR = Path(tempfile.mkdtemp(prefix="tunnel-switcher-tests-"))
TEST_WIREGUARD_DIR = TEST_DATA_DIR / "wireguard"
os.environ["DATA_DIR"] = str(TEST_DATA_DIR)
os.environ["WIREGUARD_DIR"] = str(TEST_WIREGUARD_DIR)
os.environ["CONTAINERS_TO_RESTART"] = "gluetun, ,qbittorrent"
os.environ["RESTART_TIMEOUT_SECONDS"] = "5"
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_DEFAULT_PASSWORD"] = "switcher"
os.environ["SESSION_SECRET"] = "test-secret-key-for-testing-only"
os.environ["PASSWORD_MIN_LENGTH"] = "12"
os.environ["PASSWORD_MAX_ATTEMPTS"] = "3"
os.environ["PASSWORD_LOCK_TIME"] = "900"
os.environ["HTTPS_ENABLED"] = "false"
os.environ["APP_ENV"] = "test"

from tunnel_switcher.deps import get_supervisor  # noqa: E402
from tunnel_switcher.exceptions import ContainerRestartError  # noqa: E402
from tunnel_switcher.main import app  # noqa: E402

STRONG_PASSWORD = "Sw1tcher!Pass"

SAMPLE_LOCATIONS = {
    "fr": {"countryNameKey": "country.france", "keywords": ["france", "paris"]},
    "de": {"countryNameKey": "country.germany", "keywords": ["germany", "berlin"]},
    "ch": {"countryNameKey": "country.switzerland", "keywords": ["switzerland"]},
}


def write_users(path: Path, users: list) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"users": users}, indent=2))


def read_users(path: Path) -> dict:
    return {u["username"]: u for u in json.loads(path.read_text())["users"]}


class FakeSupervisor:
    """Stands in for docker: records restarts and fails the configured names."""

    def __init__(self, failing=(), delay: float = 0):
        self.failing = set(failing)
        self.delay = delay
        self.restarted = []

    async def restart(self, name: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.restarted.append(name)
        if name in self.failing:
            raise ContainerRestartError(f"No such container: {name}")


class FakeClock:
    def __init__(self, start: datetime = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def data_dir() -> Generator[Path, None, None]:
    """Fresh data directory with an unbootstrapped admin and a few configs."""
    shutil.rmtree(TEST_DATA_DIR, ignore_errors=True)
    TEST_WIREGUARD_DIR.mkdir(parents=True)

    write_users(TEST_DATA_DIR / "security" / "users.json", [
        {"username": "admin", "passwordHash": None, "mustChangePassword": True,
         "failedAttempts": 0, "lockedUntil": None},
    ])
    (TEST_DATA_DIR / "locations.json").write_text(json.dumps(SAMPLE_LOCATIONS))
    (TEST_WIREGUARD_DIR / "france.conf").write_text("[Interface]\nPrivateKey = fr\n")
    (TEST_WIREGUARD_DIR / "Switzerland.conf").write_text("[Interface]\nPrivateKey = ch\n")

    yield TEST_DATA_DIR

    shutil.rmtree(TEST_DATA_DIR, ignore_errors=True)


@pytest.fixture
def supervisor() -> FakeSupervisor:
    return FakeSupervisor(failing={"qbittorrent"})


@pytest.fixture
def client(data_dir: Path, supervisor: FakeSupervisor) -> Generator[TestClient, None, None]:
    """Test client with the container supervisor replaced."""
    app.dependency_overrides[get_supervisor] = lambda: supervisor

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def auth_client(client: TestClient) -> TestClient:
    """Client logged in as admin with the forced password change done."""
    response = client.post("/api/auth/login", json={"username": "admin", "password": "switcher"})
    assert response.status_code == 200
    assert response.json()["mustChangePassword"] is True

    response = client.post(
        "/api/auth/change-password",
        json={"newPassword": STRONG_PASSWORD},
        follow_redirects=False,
    )
    assert response.status_code == 303
    return client
