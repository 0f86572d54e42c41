import os
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest
from fastapi.testclient import TestClient

# Keep audit output out of the working tree
os.environ.setdefault("SHORTENER_LOG_DIR", tempfile.mkdtemp(prefix="shortener-logs-"))
os.environ.pop("SHORTENER_LOG_API_URL", None)

from app import app, get_locator, get_store
from geo import GeoLocator
from registry import UrlStore, create_store


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float = 0, seconds: float = 0) -> None:
        self.now += timedelta(minutes=minutes, seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> UrlStore:
    return create_store(clock=clock)


@pytest.fixture
def client(store: UrlStore) -> Generator[TestClient, None, None]:
    """
    Test client wired to a fresh store and a locator without a GeoIP database
    """
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_locator] = lambda: GeoLocator()

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
